"""Current and historical job synchronization."""

import functools
import logging

from ..config import BatchmonConfig
from ..database import JobStore
from ..parsers import parse_jmanl_output, parse_jobstat_output
from ..remote import RemoteExecutor
from .base import fan_out

logger = logging.getLogger(__name__)


def sync_current_jobs(executor: RemoteExecutor, store: JobStore, now: int | None = None) -> dict:
    """Pull the cluster-wide job listing and reconcile it into the store.

    Every parsed job is upserted; running jobs that dropped off the listing
    are marked ended (a listed job that failed to parse still counts as
    listed); the cluster summary replaces the stored snapshot.

    Returns:
        dict: {fetched, errors, completed}
    """
    logger.info("[ Pulling jobs... ]")
    output = executor.execute("jobstat", ["-anL"], wrap_in_pty=True)
    snapshot = parse_jobstat_output(output)

    store.upsert_jobs(snapshot.jobs, now=now)
    completed = store.mark_completed(snapshot.active_ids, now=now)
    store.set_cluster_status(snapshot.cluster)

    logger.info(
        f"[ Jobs pulled! ] {len(snapshot.jobs)} current, "
        f"{len(completed)} completed, {snapshot.errors} unparseable"
    )
    return {"fetched": len(snapshot.jobs), "errors": snapshot.errors, "completed": len(completed)}


def sync_user_history(
    executor: RemoteExecutor,
    store: JobStore,
    user: str,
    window: str | None = None,
    now: int | None = None,
) -> dict:
    """Pull one user's finished jobs from jmanl and upsert them.

    Ended state comes straight from the records; no reconciliation happens
    here.

    Returns:
        dict: {user, fetched, errors}
    """
    window = window or BatchmonConfig.HISTORY_WINDOW
    output = executor.execute("jmanl", [user, window, "raw"], wrap_in_pty=True)
    records, errors = parse_jmanl_output(output)
    store.upsert_jobs(records, now=now)
    logger.info(f"Pulled {len(records)} old jobs for {user}")
    return {"user": user, "fetched": len(records), "errors": errors}


def sync_all_histories(
    executor: RemoteExecutor,
    store: JobStore,
    window: str | None = None,
    max_workers: int | None = None,
) -> dict:
    """Run ``sync_user_history`` for every known user concurrently."""
    logger.info("[ Pulling old jobs... ]")
    task = functools.partial(sync_user_history, executor, store, window=window)
    stats = fan_out(task, store.get_users(), max_workers=max_workers, label="old-jobs")
    logger.info(f"[ Old jobs pulled! ] {stats['succeeded']}/{stats['total']} users")
    return stats
