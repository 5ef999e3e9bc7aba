"""Database layer: ORM models, engine helpers and the job store."""

from .models import Base, Group, Job, PastStat, User, UserGroup
from .session import ADMIN_GROUP, MEMORY_DB, get_engine, get_session, init_db
from .store import REDACTED_OWNER, JobStore, LoginResult

__all__ = [
    "ADMIN_GROUP",
    "Base",
    "Group",
    "Job",
    "JobStore",
    "LoginResult",
    "MEMORY_DB",
    "PastStat",
    "REDACTED_OWNER",
    "User",
    "UserGroup",
    "get_engine",
    "get_session",
    "init_db",
]
