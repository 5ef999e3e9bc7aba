"""Login verification against the cluster's own credentials."""

import functools
import logging
import subprocess
from typing import Callable

from ..config import BatchmonConfig
from ..exceptions import RemoteError
from .command import RemoteExecutor

logger = logging.getLogger(__name__)


def verify_login(
    executor: RemoteExecutor,
    username: str,
    password: str,
    script: str | None = None,
) -> bool:
    """Run the remote verify script; exit status 0 means the credentials are valid.

    Output is ignored.  Any failure to reach the host counts as a failed login.
    """
    script = script or BatchmonConfig.VERIFY_LOGIN_SCRIPT
    try:
        code = executor.status(script, [username, password])
    except (RemoteError, OSError, subprocess.SubprocessError) as e:
        logger.error(f"Couldn't verify login for {username}: {e}")
        return False
    return code == 0


def make_verifier(executor: RemoteExecutor, script: str | None = None) -> Callable[[str, str], bool]:
    """Bind ``verify_login`` to an executor, for ``JobStore.login``."""
    return functools.partial(verify_login, executor, script=script)
