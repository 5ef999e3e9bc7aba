"""Poll daemons that keep the job store in step with the scheduler."""

from .base import PollDaemon, fan_out
from .daemons import backfill_user, build_daemons
from .groups import sync_all_groups, sync_user_groups
from .jobs import sync_all_histories, sync_current_jobs, sync_user_history

__all__ = [
    "PollDaemon",
    "backfill_user",
    "build_daemons",
    "fan_out",
    "sync_all_groups",
    "sync_all_histories",
    "sync_current_jobs",
    "sync_user_groups",
    "sync_user_history",
]
