"""Remote access to the scheduler host."""

from .auth import make_verifier, verify_login
from .command import RemoteExecutor, SessionGuard, build_remote_command, strip_script_framing

__all__ = [
    "RemoteExecutor",
    "SessionGuard",
    "build_remote_command",
    "make_verifier",
    "strip_script_framing",
    "verify_login",
]
