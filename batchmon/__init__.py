"""batchmon - PBS job monitor backed by an SQLAlchemy job store."""

from .config import BatchmonConfig, DaemonSettings
from .database import JobStore, LoginResult, init_db
from .parsers import ClusterStatus, JobRecord, JobState, parse_jmanl_output, parse_jobstat_output
from .remote import RemoteExecutor, verify_login

__version__ = "0.1.0"

__all__ = [
    "BatchmonConfig",
    "ClusterStatus",
    "DaemonSettings",
    "JobRecord",
    "JobState",
    "JobStore",
    "LoginResult",
    "RemoteExecutor",
    "init_db",
    "parse_jmanl_output",
    "parse_jobstat_output",
    "verify_login",
]
