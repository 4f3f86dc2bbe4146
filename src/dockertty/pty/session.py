"""PTY session — one child process attached to one pseudo-terminal."""

from __future__ import annotations

import errno
import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator

from dockertty.config import SessionConfig
from dockertty.pty.channel import PtyIOChannel
from dockertty.pty.errors import GeometryError, PtyClosedError
from dockertty.pty.geometry import TerminalControl, TerminalGeometry
from dockertty.pty.launcher import LaunchedProcess, ProcessLauncher, build_command
from dockertty.pty.shutdown import ShutdownController, ShutdownState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionInfo:
    """Descriptive fields of a session, e.g. for a window title."""

    command: str
    argv: tuple[str, ...] = ()
    pid: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {"command": self.command, "argv": list(self.argv), "pid": self.pid}


class Session:
    """A running child process and the pty it is attached to.

    Built by ``spawn()`` (or ``Session.start()`` for an arbitrary argv). The
    exit watcher is already running when the constructor returns, so the
    pty is released when the child exits even if ``close()`` is never
    called.

    Usage::

        with spawn("web-1", "bash") as session:
            session.resize(120, 40)
            session.write(b"ls\\n")
            print(session.read())
    """

    def __init__(
        self,
        launched: LaunchedProcess,
        config: SessionConfig | None = None,
        *,
        terminal_control: TerminalControl | None = None,
        on_exit: Callable[[Session, int | None], None] | None = None,
    ) -> None:
        self._config = config or SessionConfig()
        self._proc = launched.proc
        self._argv = list(launched.argv)
        self._on_exit = on_exit

        self._channel = PtyIOChannel(launched.master_fd)
        self._geometry = TerminalGeometry(launched.master_fd, terminal_control)
        self._shutdown = ShutdownController(
            self._proc,
            self._channel,
            close_signal=self._config.close_signal,
            close_timeout=self._config.close_timeout,
            drain_timeout=self._config.drain_timeout,
            max_kill_attempts=self._config.max_kill_attempts,
            on_closed=self._handle_closed,
        )
        try:
            self._shutdown.start()
        except Exception:
            self._proc.kill()
            self._proc.wait()
            self._channel.close()
            raise

    @classmethod
    def start(
        cls,
        argv: list[str],
        config: SessionConfig | None = None,
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        on_exit: Callable[[Session, int | None], None] | None = None,
    ) -> Session:
        """Launch ``argv`` on a new pty and wrap it in a session.

        Raises:
            SpawnError: the pty or the process could not be created.
        """
        config = config or SessionConfig()
        child_env = dict(env or {})
        if config.term:
            child_env["TERM"] = config.term
        launched = ProcessLauncher().launch(argv, cwd=cwd, env=child_env or None)
        return cls(launched, config, on_exit=on_exit)

    def _handle_closed(self, exit_code: int | None) -> None:
        if self._on_exit is not None:
            self._on_exit(self, exit_code)

    # ------------------------------------------------------------------
    # Data channel
    # ------------------------------------------------------------------

    def read(self, size: int = 4096) -> bytes:
        """Read pty output. Blocks; returns ``b""`` once the child is gone."""
        return self._channel.read(size)

    async def aread(self, size: int = 4096) -> bytes:
        return await self._channel.aread(size)

    def write(self, data: bytes) -> int:
        """Send input to the child. Raises ``PtyClosedError`` after exit."""
        return self._channel.write(data)

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def resize(self, width: int, height: int) -> None:
        with self._hold_for_geometry():
            self._geometry.resize(width, height)

    def current_size(self) -> tuple[int, int]:
        """Return ``(width, height)``."""
        with self._hold_for_geometry():
            return self._geometry.current_size()

    @contextmanager
    def _hold_for_geometry(self) -> Iterator[None]:
        try:
            with self._channel.hold():
                yield
        except PtyClosedError as e:
            raise GeometryError(errno.EBADF, "pty is closed") from e

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Stop the child: close signal, then SIGKILL every ``close_timeout``."""
        self._shutdown.close()

    def wait_closed(self, timeout: float | None = None) -> bool:
        return self._shutdown.wait_closed(timeout)

    @property
    def closed(self) -> bool:
        return self._shutdown.closed

    @property
    def state(self) -> ShutdownState:
        return self._shutdown.state

    @property
    def exit_code(self) -> int | None:
        return self._shutdown.exit_code

    @property
    def kill_count(self) -> int:
        return self._shutdown.kill_count

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def config(self) -> SessionConfig:
        return self._config

    def info(self) -> SessionInfo:
        return SessionInfo(
            command=os.path.basename(self._argv[0]),
            argv=tuple(self._argv[1:]),
            pid=self._proc.pid,
        )

    def __enter__(self) -> Session:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<Session pid={self.pid} state={self.state.value} argv={self._argv!r}>"


def spawn(
    target_id: str,
    args_line: str = "",
    use_recorder: bool = False,
    config: SessionConfig | None = None,
    *,
    cwd: str | None = None,
    on_exit: Callable[[Session, int | None], None] | None = None,
) -> Session:
    """Attach to container ``target_id`` on a new pty.

    Runs ``<container_tool> exec -it <target_id> <args...>``, optionally
    wrapped in ``<recorder_tool> rec``. ``cwd`` is where a recording lands.

    Raises:
        SpawnError: the pty or the process could not be created.
    """
    config = config or SessionConfig()
    argv = build_command(
        target_id,
        args_line,
        use_recorder,
        container_tool=config.container_tool,
        recorder_tool=config.recorder_tool,
    )
    session = Session.start(argv, config, cwd=cwd, on_exit=on_exit)
    logger.info("Session for %s started: pid=%d", target_id, session.pid)
    return session
