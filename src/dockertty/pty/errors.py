"""Exceptions raised by PTY sessions."""

from __future__ import annotations


class PtyError(Exception):
    """Base class for all PTY session errors."""


class SpawnError(PtyError):
    """Allocating the pty or starting the child process failed.

    The underlying OS error is chained as ``__cause__``.
    """

    def __init__(self, argv: list[str], message: str) -> None:
        super().__init__(message)
        self.argv = list(argv)


class PtyIOError(PtyError, OSError):
    """A read or write on the pty master failed."""


class PtyClosedError(PtyIOError):
    """The pty was already closed when the operation was attempted."""


class GeometryError(PtyError, OSError):
    """The window-size ioctl failed. ``errno`` holds the platform code."""


class CloseTimeoutError(PtyError):
    """The child was still alive after the configured number of kills."""

    def __init__(self, pid: int, kill_count: int) -> None:
        super().__init__(
            f"process {pid} still running after {kill_count} kill signal(s)"
        )
        self.pid = pid
        self.kill_count = kill_count
