"""Exception types raised by batchmon."""


class BatchmonError(Exception):
    """Base class for batchmon errors."""


class RemoteError(BatchmonError):
    """Failure talking to the remote scheduler host."""


class RemoteConnectionError(RemoteError):
    """The shared SSH session could not be established."""


class RemoteCommandError(RemoteError):
    """A remote command wrote to stderr or exited non-zero."""

    def __init__(self, command: str, returncode: int | None, stderr: str):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"Remote command {command!r} failed (exit {returncode}): {stderr.strip()[:200]}"
        )


class ParseError(BatchmonError, ValueError):
    """Scheduler output (or one record of it) could not be parsed."""
