"""Remote command execution over a shared OpenSSH session.

One multiplexed master connection (``ControlMaster``) is opened per process
and reused by every command.  Before each command the master is checked and,
if it has gone away, re-established with exponential backoff.  Commands hold
the session guard shared; a reconnect holds it exclusively, so only one
thread ever rebuilds the master while the others wait and then reuse it.
"""

import logging
import os
import shlex
import subprocess
import threading
from contextlib import contextmanager
from typing import Sequence

from tenacity import before_sleep_log, retry, retry_if_exception_type, wait_exponential

from ..config import BatchmonConfig
from ..exceptions import RemoteCommandError, RemoteConnectionError

logger = logging.getLogger(__name__)

# Lines `script` itself prints around the wrapped command
SCRIPT_FRAMING = ("Script started", "Script done")


class SessionGuard:
    """Shared/exclusive lock.  Waiting writers block new readers."""

    def __init__(self):
        self._cond = threading.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def shared(self):
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def exclusive(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


def build_remote_command(command: str, args: Sequence[str] = (), wrap_in_pty: bool = False) -> str:
    """Quote a command line for the remote shell.

    With ``wrap_in_pty`` the command runs under ``script -q -c ... /dev/null``
    so that tools which only format their output for a terminal behave.
    """
    inner = shlex.join([command, *args])
    if not wrap_in_pty:
        return inner
    return shlex.join(["script", "-q", "-c", inner, "/dev/null"])


def strip_script_framing(output: str) -> str:
    """Drop the ``Script started``/``Script done`` lines if present."""
    lines = output.splitlines(keepends=True)
    return "".join(line for line in lines if not line.startswith(SCRIPT_FRAMING))


class RemoteExecutor:
    """Run commands on the scheduler host through one shared SSH master.

    Args:
        username: Remote account
        hostname: Scheduler login host
        control_path: ssh ControlPath for the master socket
        timeout: Default per-command timeout in seconds (None = no timeout)
    """

    def __init__(
        self,
        username: str,
        hostname: str,
        control_path: str | None = None,
        timeout: float | None = None,
    ):
        self.destination = f"{username}@{hostname}"
        self.control_path = os.path.expanduser(control_path or BatchmonConfig.SSH_CONTROL_PATH)
        self.timeout = timeout
        self._guard = SessionGuard()

    @classmethod
    def from_config(cls, timeout: float | None = None) -> "RemoteExecutor":
        """Build an executor from ``BatchmonConfig``; fails fast if unconfigured."""
        BatchmonConfig.validate_remote()
        return cls(
            BatchmonConfig.REMOTE_USERNAME,
            BatchmonConfig.REMOTE_HOSTNAME,
            control_path=BatchmonConfig.SSH_CONTROL_PATH,
            timeout=timeout,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _ssh(self, *args: str) -> list[str]:
        # Never fall back to an interactive prompt if the master has gone away
        return ["ssh", "-o", f"ControlPath={self.control_path}", "-o", "BatchMode=yes", *args]

    # ------------------------------------------------------------------
    # Session management
    # ------------------------------------------------------------------

    def is_alive(self) -> bool:
        """True if the master connection answers ``ssh -O check``."""
        result = subprocess.run(
            self._ssh("-O", "check", self.destination),
            capture_output=True, text=True,
        )
        return result.returncode == 0

    def connect(self) -> None:
        """Start the background master connection (one attempt).

        Raises:
            RemoteConnectionError: If ssh could not establish the master
        """
        cmd = self._ssh(
            "-M", "-N", "-f",
            "-o", "ControlPersist=yes",
            "-o", "StrictHostKeyChecking=yes",
            self.destination,
        )
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            raise RemoteConnectionError(
                f"Timed out connecting to {self.destination} after {self.timeout}s"
            ) from None
        if result.returncode != 0:
            raise RemoteConnectionError(
                f"Error starting connection to {self.destination}: {result.stderr.strip()}"
            )
        logger.info(f"Connected to {self.destination}")

    @retry(
        retry=retry_if_exception_type(RemoteConnectionError),
        wait=wait_exponential(multiplier=1, max=60),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )
    def _reconnect(self) -> None:
        self.connect()

    def ensure_session(self) -> None:
        """Make sure the master is up, reconnecting (with backoff) if not.

        Several threads may find the session dead at once.  The first to get
        the exclusive guard reconnects; the rest re-check and find it alive.
        """
        with self._guard.shared():
            if self.is_alive():
                return
        with self._guard.exclusive():
            if self.is_alive():
                return
            logger.warning(f"Session to {self.destination} is down, reconnecting")
            self._reconnect()

    def close(self) -> None:
        """Stop the master connection, if any."""
        with self._guard.exclusive():
            subprocess.run(
                self._ssh("-O", "exit", self.destination),
                capture_output=True, text=True,
            )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _run(self, remote_command: str, timeout: float | None) -> subprocess.CompletedProcess:
        with self._guard.shared():
            return subprocess.run(
                self._ssh(self.destination, remote_command),
                capture_output=True, text=True, timeout=timeout,
            )

    def execute(
        self,
        command: str,
        args: Sequence[str] = (),
        wrap_in_pty: bool = False,
        timeout: float | None = None,
    ) -> str:
        """Run a command remotely and return its stdout.

        Args:
            command: Program to run on the remote host
            args: Its arguments
            wrap_in_pty: Run under ``script`` so the program sees a terminal
            timeout: Seconds before giving up (defaults to the executor's)

        Raises:
            RemoteCommandError: If the command wrote to stderr, exited
                non-zero or timed out
        """
        self.ensure_session()
        remote_command = build_remote_command(command, args, wrap_in_pty)
        timeout = self.timeout if timeout is None else timeout
        logger.debug(f"Running {remote_command!r} on {self.destination}")

        try:
            result = self._run(remote_command, timeout)
        except subprocess.TimeoutExpired:
            raise RemoteCommandError(command, None, f"timed out after {timeout}s") from None

        if result.stderr or result.returncode != 0:
            raise RemoteCommandError(command, result.returncode, result.stderr)

        if wrap_in_pty:
            return strip_script_framing(result.stdout)
        return result.stdout

    def status(self, command: str, args: Sequence[str] = ()) -> int:
        """Run a command and return only its exit code.

        Makes a single connection attempt instead of the reconnect loop.

        Raises:
            RemoteConnectionError: If the session is down and cannot be opened
        """
        if not self.is_alive():
            with self._guard.exclusive():
                if not self.is_alive():
                    self.connect()
        try:
            result = self._run(build_remote_command(command, args), self.timeout)
        except subprocess.TimeoutExpired:
            raise RemoteCommandError(command, None, f"timed out after {self.timeout}s") from None
        return result.returncode
