"""Wiring of the three poll daemons, plus the new-user backfill."""

import functools
import logging
import threading

from ..config import BatchmonConfig, DaemonSettings
from ..database import JobStore
from ..remote import RemoteExecutor
from .base import PollDaemon, fan_out
from .groups import sync_all_groups, sync_user_groups
from .jobs import sync_all_histories, sync_current_jobs, sync_user_history

logger = logging.getLogger(__name__)


def build_daemons(
    executor: RemoteExecutor,
    store: JobStore,
    settings: dict[str, DaemonSettings] | None = None,
    stop_event: threading.Event | None = None,
    window: str | None = None,
    max_workers: int | None = None,
) -> list[PollDaemon]:
    """Create (but do not start) the jobs, old-jobs and groups daemons.

    All three share ``stop_event`` so one ``set()`` shuts them all down.
    """
    settings = settings or BatchmonConfig.daemon_settings()
    stop_event = stop_event or threading.Event()
    work = {
        "jobs": functools.partial(sync_current_jobs, executor, store),
        "old-jobs": functools.partial(
            sync_all_histories, executor, store, window=window, max_workers=max_workers
        ),
        "groups": functools.partial(sync_all_groups, executor, store, max_workers=max_workers),
    }
    return [PollDaemon(settings[name], task, stop_event) for name, task in work.items()]


def backfill_user(executor: RemoteExecutor, store: JobStore, user: str, window: str | None = None) -> dict:
    """Fetch a newly registered user's groups and job history concurrently.

    Called after a first successful login so the user does not wait for the
    next groups/old-jobs cycle.
    """
    tasks = {
        "groups": functools.partial(sync_user_groups, executor, store, user),
        "history": functools.partial(sync_user_history, executor, store, user, window=window),
    }
    logger.info(f"Backfilling groups and history for {user}")
    return fan_out(lambda name: tasks[name](), tasks, label=f"backfill-{user}")
