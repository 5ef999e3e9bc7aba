"""Configuration for batchmon.

All env-var reading is centralised here.  Call load_dotenv() at import time
so the class attrs below pick up values from a .env file if present.

Quickstart:
  Copy .env.example → .env and set REMOTE_USERNAME / REMOTE_HOSTNAME.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

# Load .env on import.  Calling this multiple times is harmless.
load_dotenv(find_dotenv())

# Default SQLite data directory (relative to project root)
_DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


@dataclass(frozen=True)
class DaemonSettings:
    """Explicit settings handed to a poll daemon at construction."""
    name: str
    period: float          # seconds between cycles
    startup_delay: float   # grace period before the first cycle


class BatchmonConfig:
    # ------------------------------------------------------------ Remote
    REMOTE_USERNAME = os.getenv("REMOTE_USERNAME", "")
    REMOTE_HOSTNAME = os.getenv("REMOTE_HOSTNAME", "")
    SSH_CONTROL_PATH = os.getenv("SSH_CONTROL_PATH", "~/.ssh/batchmon-%r@%h:%p")
    VERIFY_LOGIN_SCRIPT = os.getenv(
        "VERIFY_LOGIN_SCRIPT",
        "/opt/metis/el8/contrib/admin/batchmon/verify_login.sh",
    )

    # ------------------------------------------------------------ Store
    DB_PATH = Path(os.getenv("DB_PATH", _DEFAULT_DATA_DIR / "batchmon.db"))

    # ------------------------------------------------------------ Daemons
    JOBS_DAEMON_PERIOD = int(os.getenv("JOBS_DAEMON_PERIOD", str(60 * 5)))
    OLD_JOBS_DAEMON_PERIOD = int(os.getenv("OLD_JOBS_DAEMON_PERIOD", str(60 * 30)))
    GROUPS_DAEMON_PERIOD = int(os.getenv("GROUPS_DAEMON_PERIOD", str(60 * 60)))
    DAEMON_STARTUP_DELAY = int(os.getenv("DAEMON_STARTUP_DELAY", "5"))

    # Time-window keyword passed to jmanl (day, week, month, year, ...)
    HISTORY_WINDOW = os.getenv("HISTORY_WINDOW", "year")

    # ------------------------------------------------------------ Logging
    LOG_LEVEL = os.getenv("BATCHMON_LOG_LEVEL", "INFO").upper()

    # ------------------------------------------------------------ Validate
    @classmethod
    def validate_remote(cls):
        """Fail fast at startup if the remote host is not configured."""
        required = {
            "REMOTE_USERNAME": cls.REMOTE_USERNAME,
            "REMOTE_HOSTNAME": cls.REMOTE_HOSTNAME,
        }
        missing = [k for k, v in required.items() if not v]
        if missing:
            raise EnvironmentError(
                "Missing required environment variables for remote polling:\n"
                + "".join(f"  {k}\n" for k in missing)
                + "\nSee .env.example for a template."
            )

    @classmethod
    def daemon_settings(cls) -> dict[str, DaemonSettings]:
        """Return the settings for each poll daemon, keyed by daemon name."""
        return {
            "jobs": DaemonSettings("jobs", cls.JOBS_DAEMON_PERIOD, cls.DAEMON_STARTUP_DELAY),
            "old-jobs": DaemonSettings("old-jobs", cls.OLD_JOBS_DAEMON_PERIOD, cls.DAEMON_STARTUP_DELAY),
            "groups": DaemonSettings("groups", cls.GROUPS_DAEMON_PERIOD, cls.DAEMON_STARTUP_DELAY),
        }
