"""
Configuration Management for SensiLog

Provides configuration loading from multiple sources:
- Default values
- Configuration files (YAML, TOML, JSON)
- Environment variables

Configuration precedence (highest to lowest):
1. Environment variables (SENSILOG_* and the conventional names below)
2. Configuration file
3. Default values

The configuration is built once per process and read through get_config().
"""

import json
import logging
import os
import tomllib
from dataclasses import asdict, dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


# ============================================================================
# Configuration Dataclasses
# ============================================================================


@dataclass
class AppConfig:
    """Deployment-level settings."""

    # "development" enables mock auth, mock match data and detailed errors
    environment: str = "development"
    enable_mock_auth: bool = False
    frontend_url: str = "http://localhost:3000"
    cors_origins: list[str] = field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )


@dataclass
class DatabaseConfig:
    """Relational storage settings."""

    # Any SQLAlchemy URL; None means SQLite under ~/.sensilog
    url: str | None = None
    echo: bool = False


@dataclass
class AuthConfig:
    """Bearer token and Riot OAuth settings."""

    jwt_secret: str | None = None
    algorithm: str = "HS256"
    token_expiry_days: int = 7

    riot_client_id: str | None = None
    riot_client_secret: str | None = None
    riot_redirect_uri: str = "http://localhost:3000/auth/callback"
    oauth_timeout: float = 10.0


@dataclass
class RiotConfig:
    """VALORANT match API settings."""

    api_key: str | None = None
    region: str = "ap"
    request_timeout: float = 10.0

    # Fixed pause between match detail requests
    request_delay_seconds: float = 1.5

    # Sliding window applied to every outbound request
    rate_limit_requests: int = 100
    rate_limit_window_seconds: float = 120.0


@dataclass
class SyncConfig:
    """Background match sync settings."""

    default_count: int = 10
    max_count: int = 20
    cooldown_minutes: int = 5
    # Off: the last-sync lookup always reports no prior sync
    enforce_cooldown: bool = False
    job_retention_days: int = 7


@dataclass
class RateLimitConfig:
    """HTTP rate limiting (slowapi)."""

    # None: enabled only in production
    enabled: bool | None = None
    default_limits: list[str] = field(default_factory=lambda: ["100/minute"])
    callback_limit: str = "10/minute"
    sync_limit: str = "5/minute"


@dataclass
class ServerConfig:
    """HTTP server settings used by the sensilog-web launcher."""

    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1
    reload: bool = False


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: str | None = None
    file_max_bytes: int = 10 * 1024 * 1024  # 10MB
    file_backup_count: int = 5


@dataclass
class SensiLogConfig:
    """Main configuration container."""

    app: AppConfig = field(default_factory=AppConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    riot: RiotConfig = field(default_factory=RiotConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    # Version of the config format
    config_version: str = "1.0"

    @property
    def is_production(self) -> bool:
        return self.app.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.app.environment.lower() == "development"

    @property
    def mock_auth_enabled(self) -> bool:
        """Mock OAuth and mock match data are served outside production only."""
        if self.is_production:
            return False
        return self.is_development or self.app.enable_mock_auth

    @property
    def rate_limit_enabled(self) -> bool:
        if self.rate_limit.enabled is None:
            return self.is_production
        return self.rate_limit.enabled


_SECTIONS = ("app", "database", "auth", "riot", "sync", "rate_limit", "logging", "server")


# ============================================================================
# Configuration Loading
# ============================================================================


def get_default_config_paths() -> list[Path]:
    """Get the default paths to search for configuration files."""
    home = Path.home()
    xdg_config = os.environ.get("XDG_CONFIG_HOME", str(home / ".config"))

    return [
        Path.cwd() / "sensilog.yaml",
        Path.cwd() / "sensilog.toml",
        Path.cwd() / "sensilog.json",
        home / ".config" / "sensilog" / "config.yaml",
        home / ".config" / "sensilog" / "config.toml",
        Path(xdg_config) / "sensilog" / "config.yaml",
    ]


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load configuration from a YAML file."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_toml_config(path: Path) -> dict[str, Any]:
    """Load configuration from a TOML file."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def load_json_config(path: Path) -> dict[str, Any]:
    """Load configuration from a JSON file."""
    with open(path) as f:
        return json.load(f)


def load_config_file(path: Path) -> dict[str, Any]:
    """Load configuration from a file, detecting format from extension."""
    if not path.exists():
        return {}

    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return load_yaml_config(path)
    elif suffix == ".toml":
        return load_toml_config(path)
    elif suffix == ".json":
        return load_json_config(path)
    else:
        logger.warning(f"Unknown config file format: {suffix}")
        return {}


# Later entries win when several variables are set
ENV_MAPPINGS: dict[str, tuple[str, str]] = {
    "SENSILOG_ENV": ("app", "environment"),
    "ENABLE_MOCK_AUTH": ("app", "enable_mock_auth"),
    "FRONTEND_URL": ("app", "frontend_url"),
    "SENSILOG_FRONTEND_URL": ("app", "frontend_url"),
    "DATABASE_URL": ("database", "url"),
    "SENSILOG_DATABASE_URL": ("database", "url"),
    "JWT_SECRET": ("auth", "jwt_secret"),
    "SENSILOG_JWT_SECRET": ("auth", "jwt_secret"),
    "RIOT_CLIENT_ID": ("auth", "riot_client_id"),
    "RIOT_CLIENT_SECRET": ("auth", "riot_client_secret"),
    "RIOT_REDIRECT_URI": ("auth", "riot_redirect_uri"),
    "RIOT_API_KEY": ("riot", "api_key"),
    "SENSILOG_RIOT_REGION": ("riot", "region"),
    "SENSILOG_RIOT_REQUEST_DELAY": ("riot", "request_delay_seconds"),
    "SENSILOG_SYNC_COOLDOWN_MINUTES": ("sync", "cooldown_minutes"),
    "SENSILOG_ENFORCE_SYNC_COOLDOWN": ("sync", "enforce_cooldown"),
    "SENSILOG_RATE_LIMIT": ("rate_limit", "enabled"),
    "SENSILOG_LOG_LEVEL": ("logging", "level"),
    "SENSILOG_LOG_FILE": ("logging", "file"),
    "PORT": ("server", "port"),
    "SENSILOG_HOST": ("server", "host"),
    "SENSILOG_PORT": ("server", "port"),
    "SENSILOG_WORKERS": ("server", "workers"),
}

# Values under these keys stay strings even when they look numeric
_STRING_KEYS = {"jwt_secret", "api_key", "riot_client_id", "riot_client_secret", "url", "host"}


def load_env_config() -> dict[str, Any]:
    """Load configuration from environment variables."""
    config: dict[str, Any] = {}

    for env_var, (section, key) in ENV_MAPPINGS.items():
        value: Any = os.environ.get(env_var)
        if value is None:
            continue

        # Type conversion
        if key in _STRING_KEYS:
            pass
        elif value.lower() in ("true", "false"):
            value = value.lower() == "true"
        elif value.isdigit():
            value = int(value)
        else:
            try:
                value = float(value)
            except ValueError:
                pass

        config.setdefault(section, {})[key] = value

    return config


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge two configuration dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result


def dict_to_config(data: dict[str, Any]) -> SensiLogConfig:
    """Convert a dictionary to SensiLogConfig, ignoring unknown keys."""
    config = SensiLogConfig()

    for section_name in _SECTIONS:
        section_data = data.get(section_name)
        if not isinstance(section_data, dict):
            continue
        section = getattr(config, section_name)
        for key, value in section_data.items():
            if hasattr(section, key):
                setattr(section, key, value)
            else:
                logger.warning(f"Unknown config key: {section_name}.{key}")

    return config


def config_to_dict(config: SensiLogConfig) -> dict[str, Any]:
    """Convert SensiLogConfig to a dictionary."""
    return asdict(config)


def load_config(config_file: Path | None = None, include_env: bool = True) -> SensiLogConfig:
    """
    Load configuration from all sources.

    Args:
        config_file: Explicit path to a config file (optional)
        include_env: Whether to include environment variables

    Returns:
        Merged SensiLogConfig
    """
    config_data: dict[str, Any] = {}

    if config_file:
        config_data = load_config_file(config_file)
        logger.info(f"Loaded config from: {config_file}")
    else:
        for path in get_default_config_paths():
            if path.exists():
                config_data = load_config_file(path)
                logger.info(f"Loaded config from: {path}")
                break

    if include_env:
        config_data = merge_configs(config_data, load_env_config())

    return dict_to_config(config_data)


# ============================================================================
# Global Configuration
# ============================================================================

_global_config: SensiLogConfig | None = None


def get_config() -> SensiLogConfig:
    """Get the global configuration, loading it if necessary."""
    global _global_config

    if _global_config is None:
        _global_config = load_config()

    return _global_config


def set_config(config: SensiLogConfig) -> None:
    """Set the global configuration."""
    global _global_config
    _global_config = config


def reset_config() -> None:
    """Reset the global configuration to defaults."""
    global _global_config
    _global_config = None


# ============================================================================
# Logging
# ============================================================================


def setup_logging(config: LoggingConfig) -> None:
    """Configure the root logger from a LoggingConfig."""
    level = getattr(logging, str(config.level).upper(), logging.INFO)
    logging.basicConfig(level=level, format=config.format)
    logging.getLogger().setLevel(level)

    if config.file:
        log_path = Path(config.file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_path,
            maxBytes=config.file_max_bytes,
            backupCount=config.file_backup_count,
        )
        handler.setFormatter(logging.Formatter(config.format))
        logging.getLogger().addHandler(handler)
        logger.info(f"Logging to file: {log_path}")
