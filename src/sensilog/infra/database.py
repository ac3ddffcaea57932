"""
SensiLog persistence layer.

SQLAlchemy ORM models for users, settings records, synced match records and
the supporting tables, plus a DatabaseManager exposing the data operations
used by the API and the sync job.

SQLite is the default backend; any SQLAlchemy URL can be configured.
All timestamps are stored as naive UTC.
"""

import logging
import time
import uuid
from collections.abc import Iterable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    create_engine,
    text,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker

from sensilog.core.config import get_config
from sensilog.core.utils import isoformat, utc_now

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".sensilog" / "sensilog.db"
Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Database Models
# =============================================================================


class User(Base):
    """A player account, created on first successful Riot login."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String(255), unique=True, nullable=False)
    riot_puuid = Column(String(100), unique=True, index=True)
    game_name = Column(String(50))
    tag_line = Column(String(10))

    # OAuth tokens from the identity provider, never returned to clients
    access_token = Column(Text)
    refresh_token = Column(Text)
    token_expires_at = Column(DateTime)

    is_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    settings_records = relationship(
        "SettingsRecord", back_populates="user", cascade="all, delete-orphan"
    )
    match_records = relationship("MatchRecord", back_populates="user", cascade="all, delete-orphan")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "email": self.email,
            "riotPuuid": self.riot_puuid,
            "gameName": self.game_name,
            "tagLine": self.tag_line,
            "isAdmin": bool(self.is_admin),
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


settings_record_tags = Table(
    "settings_record_tags",
    Base.metadata,
    Column(
        "settings_record_id",
        String(36),
        ForeignKey("settings_records.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("tag_id", String(36), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class SettingsRecord(Base):
    """A snapshot of a user's input-device settings."""

    __tablename__ = "settings_records"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    sensitivity = Column(Float, nullable=False)
    dpi = Column(Integer, nullable=False)
    mouse_device = Column(String(100))
    keyboard_device = Column(String(100))
    mousepad = Column(String(100))
    tags = Column(JSON, default=list, nullable=False)
    comment = Column(String(500))

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    user = relationship("User", back_populates="settings_records")

    __table_args__ = (Index("idx_settings_user_created", "user_id", "created_at"),)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "sensitivity": self.sensitivity,
            "dpi": self.dpi,
            "mouseDevice": self.mouse_device,
            "keyboardDevice": self.keyboard_device,
            "mousepad": self.mousepad,
            "tags": list(self.tags or []),
            "comment": self.comment,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


class MatchRecord(Base):
    """One synced match from the player's perspective. Never updated."""

    __tablename__ = "match_data"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    match_id = Column(String(100), unique=True, nullable=False)

    game_start_time = Column(DateTime, nullable=False)
    game_end_time = Column(DateTime)
    map_name = Column(String(50))
    game_mode = Column(String(50))
    agent_name = Column(String(50))

    # Raw counters
    kills = Column(Integer)
    deaths = Column(Integer)
    assists = Column(Integer)
    damage_dealt = Column(Integer)
    headshot_count = Column(Integer)
    bodyshot_count = Column(Integer)
    legshot_count = Column(Integer)
    rounds_played = Column(Integer)

    # Derived once at ingestion
    combat_score = Column(Float)
    kd_ratio = Column(Float)
    adr = Column(Float)
    headshot_percentage = Column(Float)

    team_won = Column(Boolean)
    rank_tier = Column(String(50))

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, nullable=False)

    user = relationship("User", back_populates="match_records")

    __table_args__ = (
        Index("idx_match_user_start", "user_id", "game_start_time"),
        Index("idx_match_map", "map_name"),
        Index("idx_match_agent", "agent_name"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "matchId": self.match_id,
            "gameStartTime": isoformat(self.game_start_time),
            "gameEndTime": isoformat(self.game_end_time),
            "mapName": self.map_name,
            "gameMode": self.game_mode,
            "agentName": self.agent_name,
            "kills": self.kills,
            "deaths": self.deaths,
            "assists": self.assists,
            "damageDealt": self.damage_dealt,
            "headshotCount": self.headshot_count,
            "bodyshotCount": self.bodyshot_count,
            "legshotCount": self.legshot_count,
            "roundsPlayed": self.rounds_played,
            "combatScore": self.combat_score,
            "kdRatio": self.kd_ratio,
            "adr": self.adr,
            "headshotPercentage": self.headshot_percentage,
            "teamWon": self.team_won,
            "rankTier": self.rank_tier,
            "createdAt": isoformat(self.created_at),
        }


class Tag(Base):
    __tablename__ = "tags"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(50), unique=True, nullable=False)
    color = Column(String(7), default="#007bff", nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)


class Team(Base):
    __tablename__ = "teams"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)


class TeamMember(Base):
    __tablename__ = "team_members"

    id = Column(String(36), primary_key=True, default=_new_id)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), default="member", nullable=False)
    joined_at = Column(DateTime, default=utc_now, nullable=False)


class AdminAction(Base):
    """Audit trail of administrative actions."""

    __tablename__ = "admin_actions"

    id = Column(String(36), primary_key=True, default=_new_id)
    admin_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    target_user_id = Column(String(36), ForeignKey("users.id"))
    action_type = Column(String(50), nullable=False)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(36))
    details = Column(JSON)
    created_at = Column(DateTime, default=utc_now, nullable=False)


class SyncJob(Base):
    """Persistent tracking for background match sync jobs."""

    __tablename__ = "sync_jobs"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    status = Column(String(20), default="pending", nullable=False)
    requested_count = Column(Integer, nullable=False)
    fetched_count = Column(Integer, default=0, nullable=False)
    inserted_count = Column(Integer, default=0, nullable=False)
    skipped_count = Column(Integer, default=0, nullable=False)
    error_message = Column(Text)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)

    __table_args__ = (
        Index("idx_sync_job_status", "status"),
        Index("idx_sync_job_user_created", "user_id", "created_at"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobId": self.id,
            "status": self.status,
            "requestedCount": self.requested_count,
            "fetchedCount": self.fetched_count,
            "insertedCount": self.inserted_count,
            "skippedCount": self.skipped_count,
            "error": self.error_message,
            "createdAt": isoformat(self.created_at),
            "startedAt": isoformat(self.started_at),
            "completedAt": isoformat(self.completed_at),
        }


SETTINGS_FIELDS = ("sensitivity", "dpi", "mouse_device", "keyboard_device", "mousepad", "tags", "comment")

MATCH_FIELDS = (
    "match_id",
    "game_start_time",
    "game_end_time",
    "map_name",
    "game_mode",
    "agent_name",
    "kills",
    "deaths",
    "assists",
    "damage_dealt",
    "headshot_count",
    "bodyshot_count",
    "legshot_count",
    "rounds_played",
    "combat_score",
    "kd_ratio",
    "adr",
    "headshot_percentage",
    "team_won",
    "rank_tier",
)


# =============================================================================
# Database Manager
# =============================================================================


def _default_database_url() -> str:
    configured = get_config().database.url
    if configured:
        return configured
    return f"sqlite:///{DEFAULT_DB_PATH}"


class DatabaseManager:
    """Manages database connections and operations."""

    def __init__(self, database_url: str | None = None, echo: bool | None = None):
        """Initialize database connection and create tables."""
        self.database_url = database_url or _default_database_url()
        url = make_url(self.database_url)

        connect_args: dict[str, Any] = {}
        if url.get_backend_name() == "sqlite":
            if url.database and url.database != ":memory:":
                Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
            # Sessions are used from the sync worker thread too
            connect_args["check_same_thread"] = False

        if echo is None:
            echo = get_config().database.echo

        self.engine = create_engine(self.database_url, echo=echo, connect_args=connect_args)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

        Base.metadata.create_all(self.engine)

        logger.info(f"Database initialized at: {url.render_as_string(hide_password=True)}")

    def get_session(self) -> Session:
        """Get a database session."""
        return self.SessionLocal()

    def dispose(self) -> None:
        self.engine.dispose()

    def ping(self) -> float:
        """Run a trivial query; returns the round-trip time in milliseconds."""
        started = time.perf_counter()
        session = self.get_session()
        try:
            session.execute(text("SELECT 1"))
        finally:
            session.close()
        return round((time.perf_counter() - started) * 1000, 2)

    # =========================================================================
    # User Operations
    # =========================================================================

    def get_user_by_id(self, user_id: str) -> User | None:
        session = self.get_session()
        try:
            return session.get(User, user_id)
        finally:
            session.close()

    def get_user_by_puuid(self, puuid: str) -> User | None:
        session = self.get_session()
        try:
            return session.query(User).filter(User.riot_puuid == puuid).first()
        finally:
            session.close()

    def upsert_oauth_user(
        self,
        puuid: str,
        email: str,
        game_name: str | None,
        tag_line: str | None,
        access_token: str | None = None,
        refresh_token: str | None = None,
        expires_in: int | None = None,
        is_admin: bool = False,
    ) -> User:
        """
        Create the user on first login, refresh tokens and names afterwards.

        Args:
            puuid: Riot player id from the identity provider
            email: Email reported by the provider; matches an unlinked user or sets it on creation
            game_name: Riot game name
            tag_line: Riot tag line
            access_token: Provider access token
            refresh_token: Provider refresh token
            expires_in: Provider access token lifetime in seconds
            is_admin: Admin flag applied when the user is created

        Returns:
            The created or updated User
        """
        expires_at = utc_now() + timedelta(seconds=expires_in) if expires_in else None

        session = self.get_session()
        try:
            user = session.query(User).filter(User.riot_puuid == puuid).first()
            if user is None:
                # Account unlinked earlier: relink it instead of duplicating the email
                user = (
                    session.query(User)
                    .filter(User.email == email, User.riot_puuid.is_(None))
                    .first()
                )
                if user is not None:
                    user.riot_puuid = puuid
                    logger.info(f"Relinking user {user.id} to Riot account {game_name}#{tag_line}")
            if user is None:
                user = User(riot_puuid=puuid, email=email, is_admin=is_admin)
                session.add(user)
                logger.info(f"Creating user for Riot account {game_name}#{tag_line}")

            user.game_name = game_name
            user.tag_line = tag_line
            user.access_token = access_token
            user.refresh_token = refresh_token
            user.token_expires_at = expires_at
            user.updated_at = utc_now()

            session.commit()
            session.refresh(user)
            return user
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def link_riot_account(
        self, user_id: str, puuid: str, game_name: str, tag_line: str
    ) -> User | None:
        session = self.get_session()
        try:
            user = session.get(User, user_id)
            if user is None:
                return None
            user.riot_puuid = puuid
            user.game_name = game_name
            user.tag_line = tag_line
            user.updated_at = utc_now()
            session.commit()
            session.refresh(user)
            return user
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def unlink_riot_account(self, user_id: str) -> User | None:
        session = self.get_session()
        try:
            user = session.get(User, user_id)
            if user is None:
                return None
            user.riot_puuid = None
            user.game_name = None
            user.tag_line = None
            user.updated_at = utc_now()
            session.commit()
            session.refresh(user)
            return user
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # =========================================================================
    # Settings Record Operations
    # =========================================================================

    def list_settings_records(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
        start: datetime | None = None,
        end: datetime | None = None,
        tags: list[str] | None = None,
    ) -> tuple[list[SettingsRecord], int]:
        """
        List a user's settings records, newest first.

        Args:
            user_id: Owning user
            limit: Page size
            offset: Pagination offset
            start: Only records created at or after this time
            end: Only records created at or before this time
            tags: Only records carrying every one of these tags

        Returns:
            (records for the page, total matching records)
        """
        session = self.get_session()
        try:
            query = session.query(SettingsRecord).filter(SettingsRecord.user_id == user_id)
            if start is not None:
                query = query.filter(SettingsRecord.created_at >= start)
            if end is not None:
                query = query.filter(SettingsRecord.created_at <= end)
            query = query.order_by(SettingsRecord.created_at.desc())

            if tags:
                # Tags live in a JSON column; filter in Python for portability
                wanted = set(tags)
                matching = [r for r in query.all() if wanted.issubset(r.tags or [])]
                return matching[offset : offset + limit], len(matching)

            total = query.count()
            return query.offset(offset).limit(limit).all(), total
        finally:
            session.close()

    def create_settings_record(self, user_id: str, data: dict[str, Any]) -> SettingsRecord:
        session = self.get_session()
        try:
            record = SettingsRecord(user_id=user_id)
            for key in SETTINGS_FIELDS:
                if key in data:
                    setattr(record, key, data[key])
            if record.tags is None:
                record.tags = []
            session.add(record)
            session.commit()
            session.refresh(record)
            return record
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get_settings_record(self, user_id: str, record_id: str) -> SettingsRecord | None:
        session = self.get_session()
        try:
            return (
                session.query(SettingsRecord)
                .filter(SettingsRecord.id == record_id, SettingsRecord.user_id == user_id)
                .first()
            )
        finally:
            session.close()

    def update_settings_record(
        self, user_id: str, record_id: str, updates: dict[str, Any]
    ) -> SettingsRecord | None:
        """Overwrite the given fields in place. Returns None if not owned."""
        session = self.get_session()
        try:
            record = (
                session.query(SettingsRecord)
                .filter(SettingsRecord.id == record_id, SettingsRecord.user_id == user_id)
                .first()
            )
            if record is None:
                return None

            for key, value in updates.items():
                if key in SETTINGS_FIELDS:
                    setattr(record, key, value)
            record.updated_at = utc_now()

            session.commit()
            session.refresh(record)
            return record
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def delete_settings_record(self, user_id: str, record_id: str) -> bool:
        session = self.get_session()
        try:
            deleted = (
                session.query(SettingsRecord)
                .filter(SettingsRecord.id == record_id, SettingsRecord.user_id == user_id)
                .delete(synchronize_session=False)
            )
            session.commit()
            return deleted > 0
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get_settings_history(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[SettingsRecord]:
        """Settings records created within [start, end], newest first."""
        session = self.get_session()
        try:
            return (
                session.query(SettingsRecord)
                .filter(
                    SettingsRecord.user_id == user_id,
                    SettingsRecord.created_at >= start,
                    SettingsRecord.created_at <= end,
                )
                .order_by(SettingsRecord.created_at.desc())
                .all()
            )
        finally:
            session.close()

    # =========================================================================
    # Match Record Operations
    # =========================================================================

    def list_match_records(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        maps: list[str] | None = None,
        agents: list[str] | None = None,
        game_mode: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[MatchRecord], int]:
        """Filtered, paginated match records, newest first, with total count."""
        session = self.get_session()
        try:
            query = session.query(MatchRecord).filter(MatchRecord.user_id == user_id)

            if start is not None:
                query = query.filter(MatchRecord.game_start_time >= start)
            if end is not None:
                query = query.filter(MatchRecord.game_start_time <= end)
            if maps:
                query = query.filter(MatchRecord.map_name.in_(maps))
            if agents:
                query = query.filter(MatchRecord.agent_name.in_(agents))
            if game_mode:
                query = query.filter(MatchRecord.game_mode == game_mode)

            total = query.count()
            records = (
                query.order_by(MatchRecord.game_start_time.desc()).offset(offset).limit(limit).all()
            )
            return records, total
        finally:
            session.close()

    def get_matches_in_range(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[MatchRecord]:
        """Match records started within [start, end], oldest first."""
        session = self.get_session()
        try:
            return (
                session.query(MatchRecord)
                .filter(
                    MatchRecord.user_id == user_id,
                    MatchRecord.game_start_time >= start,
                    MatchRecord.game_start_time <= end,
                )
                .order_by(MatchRecord.game_start_time.asc())
                .all()
            )
        finally:
            session.close()

    def get_matches(
        self, user_id: str, start: datetime | None = None, end: datetime | None = None
    ) -> list[MatchRecord]:
        """All match records of the user, optionally bounded by start time, newest first."""
        session = self.get_session()
        try:
            query = session.query(MatchRecord).filter(MatchRecord.user_id == user_id)
            if start is not None:
                query = query.filter(MatchRecord.game_start_time >= start)
            if end is not None:
                query = query.filter(MatchRecord.game_start_time <= end)
            return query.order_by(MatchRecord.game_start_time.desc()).all()
        finally:
            session.close()

    def save_match_records(self, user_id: str, matches: Iterable[dict[str, Any]]) -> tuple[int, int]:
        """
        Insert match records whose external id is not stored yet.

        Each row is committed on its own so a unique-constraint race with a
        concurrent sync only skips that row.

        Returns:
            (inserted, skipped)
        """
        inserted = 0
        skipped = 0

        session = self.get_session()
        try:
            for match in matches:
                match_id = match["match_id"]
                exists = (
                    session.query(MatchRecord.id).filter(MatchRecord.match_id == match_id).first()
                )
                if exists:
                    skipped += 1
                    continue

                record = MatchRecord(user_id=user_id)
                for key in MATCH_FIELDS:
                    if key in match:
                        setattr(record, key, match[key])
                session.add(record)

                try:
                    session.commit()
                    inserted += 1
                except IntegrityError:
                    session.rollback()
                    skipped += 1
                    logger.debug(f"Match {match_id} inserted concurrently, skipping")
        finally:
            session.close()

        return inserted, skipped


# Global database instance (lazy initialization)
_db_manager: DatabaseManager | None = None


def get_db() -> DatabaseManager:
    """Get the global database manager instance."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


def set_db(manager: DatabaseManager | None) -> None:
    """Replace (or with None, reset) the global database manager."""
    global _db_manager
    _db_manager = manager
