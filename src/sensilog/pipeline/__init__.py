"""
SensiLog Pipeline - Background match sync.
"""

from sensilog.pipeline.sync import MatchSyncService, check_sync_cooldown, start_sync_job

__all__ = ["MatchSyncService", "check_sync_cooldown", "start_sync_job"]
