"""PTY process management — one child process on one pseudo-terminal.

A session spawns the child with the pty as its controlling terminal,
exposes raw byte I/O and window-size control, and shuts the child down
with an escalating signal protocol. A watcher thread releases the pty as
soon as the child exits.
"""

from dockertty.pty.errors import (
    CloseTimeoutError,
    GeometryError,
    PtyClosedError,
    PtyError,
    PtyIOError,
    SpawnError,
)
from dockertty.pty.geometry import TerminalGeometry, WindowSize
from dockertty.pty.launcher import ProcessLauncher, build_command, recording_filename
from dockertty.pty.session import Session, SessionInfo, spawn
from dockertty.pty.shutdown import ShutdownController, ShutdownState

__all__ = [
    "CloseTimeoutError",
    "GeometryError",
    "ProcessLauncher",
    "PtyClosedError",
    "PtyError",
    "PtyIOError",
    "Session",
    "SessionInfo",
    "ShutdownController",
    "ShutdownState",
    "SpawnError",
    "TerminalGeometry",
    "WindowSize",
    "build_command",
    "recording_filename",
    "spawn",
]
