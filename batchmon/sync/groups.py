"""Group-membership synchronization."""

import functools
import logging

from ..database import JobStore
from ..parsers import parse_groups_output
from ..remote import RemoteExecutor
from .base import fan_out

logger = logging.getLogger(__name__)


def sync_user_groups(executor: RemoteExecutor, store: JobStore, user: str) -> list[str]:
    """Look up one user's groups and record them."""
    output = executor.execute("groups", [user])
    groups = parse_groups_output(output)
    store.set_user_groups(user, groups)
    logger.info(f"Got groups for {user}: {groups}")
    return groups


def sync_all_groups(executor: RemoteExecutor, store: JobStore, max_workers: int | None = None) -> dict:
    logger.info("[ Pulling groups... ]")
    task = functools.partial(sync_user_groups, executor, store)
    stats = fan_out(task, store.get_users(), max_workers=max_workers, label="groups")
    logger.info(f"[ Groups pulled! ] {stats['succeeded']}/{stats['total']} users")
    return stats
