"""Terminal geometry — get and set the window size of a pty.

The kernel exchanges window sizes as a ``struct winsize``: four unsigned
16-bit fields (rows, cols, xpixels, ypixels). The pixel fields are legacy
and always sent as zero. ``WindowSize`` is that wire contract; everything
above it speaks in (width, height).
"""

from __future__ import annotations

import fcntl
import struct
import termios
from dataclasses import dataclass
from typing import Protocol

from dockertty.pty.errors import GeometryError

_WINSIZE_FORMAT = "HHHH"
_U16_MAX = 0xFFFF


@dataclass(frozen=True)
class WindowSize:
    """The OS window-size descriptor."""

    rows: int
    cols: int
    xpixels: int = 0
    ypixels: int = 0

    def pack(self) -> bytes:
        for name in ("rows", "cols", "xpixels", "ypixels"):
            value = getattr(self, name)
            if not 0 <= value <= _U16_MAX:
                raise ValueError(f"{name} out of range for winsize: {value}")
        return struct.pack(
            _WINSIZE_FORMAT, self.rows, self.cols, self.xpixels, self.ypixels
        )

    @classmethod
    def unpack(cls, data: bytes) -> WindowSize:
        rows, cols, xpixels, ypixels = struct.unpack(_WINSIZE_FORMAT, data)
        return cls(rows=rows, cols=cols, xpixels=xpixels, ypixels=ypixels)


class TerminalControl(Protocol):
    """Platform terminal-control calls used for geometry."""

    def get_window_size(self, fd: int) -> WindowSize: ...

    def set_window_size(self, fd: int, size: WindowSize) -> None: ...


class IoctlTerminalControl:
    """POSIX implementation via ``TIOCGWINSZ`` / ``TIOCSWINSZ``."""

    def get_window_size(self, fd: int) -> WindowSize:
        buf = struct.pack(_WINSIZE_FORMAT, 0, 0, 0, 0)
        try:
            result = fcntl.ioctl(fd, termios.TIOCGWINSZ, buf)
        except OSError as e:
            raise GeometryError(e.errno, f"TIOCGWINSZ failed: {e.strerror}") from e
        return WindowSize.unpack(result)

    def set_window_size(self, fd: int, size: WindowSize) -> None:
        try:
            fcntl.ioctl(fd, termios.TIOCSWINSZ, size.pack())
        except OSError as e:
            raise GeometryError(e.errno, f"TIOCSWINSZ failed: {e.strerror}") from e


def default_terminal_control() -> TerminalControl:
    """Return the terminal-control implementation for this platform."""
    return IoctlTerminalControl()


class TerminalGeometry:
    """Window size of one pty, addressed by its master fd.

    Resize and query use their own ioctl and share no Python state with the
    data channel, so they may run while another thread is blocked in a read.
    """

    def __init__(self, fd: int, control: TerminalControl | None = None) -> None:
        self._fd = fd
        self._control = control or default_terminal_control()

    def resize(self, width: int, height: int) -> None:
        """Set the pty to ``height`` rows by ``width`` columns."""
        self._control.set_window_size(self._fd, WindowSize(rows=height, cols=width))

    def current_size(self) -> tuple[int, int]:
        """Return ``(width, height)`` as last set on the pty."""
        size = self._control.get_window_size(self._fd)
        return size.cols, size.rows
