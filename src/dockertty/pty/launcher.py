"""Process launcher — build the invocation and start it on a fresh pty."""

from __future__ import annotations

import fcntl
import logging
import os
import pty
import subprocess
import termios
from dataclasses import dataclass
from datetime import datetime

from dockertty.pty.errors import SpawnError

logger = logging.getLogger(__name__)


def recording_filename(target_id: str, now: datetime | None = None) -> str:
    """Name of the recording file: ``<id>_<HHMMSSmmm>.rec``.

    Two sessions for the same target within one millisecond collide.
    """
    now = now or datetime.now()
    stamp = now.strftime("%H%M%S") + f"{now.microsecond // 1000:03d}"
    return f"{target_id}_{stamp}.rec"


def build_command(
    target_id: str,
    args_line: str,
    use_recorder: bool = False,
    *,
    container_tool: str = "docker",
    recorder_tool: str = "asciinema",
    now: datetime | None = None,
) -> list[str]:
    """Build the argv for attaching to ``target_id``.

    ``args_line`` is split on whitespace only; quotes are not understood,
    so ``'sh -c "echo hi"'`` becomes four arguments.
    """
    invocation = [container_tool, "exec", "-it", target_id, *args_line.split()]
    if not use_recorder:
        return invocation
    return [
        recorder_tool,
        "rec",
        "-t",
        target_id,
        "-c",
        " ".join(invocation),
        recording_filename(target_id, now),
    ]


def _make_controlling_tty() -> None:
    # Runs in the child after setsid(): fd 0 is the subordinate side.
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


@dataclass
class LaunchedProcess:
    """A child process and the master side of its pty."""

    proc: subprocess.Popen
    master_fd: int
    argv: list[str]


class ProcessLauncher:
    """Start a command with stdin/stdout/stderr on a new pty.

    The child runs in its own session with the pty as its controlling
    terminal, so job control and ``SIGWINCH`` behave as in a real terminal.
    """

    def launch(
        self,
        argv: list[str],
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> LaunchedProcess:
        """Allocate a pty and start ``argv`` on it.

        Raises:
            SpawnError: the pty could not be opened or the process could not
                be started. Nothing is left allocated in that case.
        """
        if not argv:
            raise SpawnError(argv, "cannot start an empty command")

        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as e:
            raise SpawnError(argv, f"failed to allocate pty: {e}") from e

        child_env = {**os.environ, **env} if env else None
        try:
            proc = subprocess.Popen(
                argv,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,
                preexec_fn=_make_controlling_tty,
                cwd=cwd,
                env=child_env,
            )
        except (OSError, subprocess.SubprocessError) as e:
            os.close(master_fd)
            raise SpawnError(argv, f"failed to start command {argv}: {e}") from e
        finally:
            # Parent always closes slave fd
            os.close(slave_fd)

        logger.info("Started pid=%d on pty fd=%d: %s", proc.pid, master_fd, argv)
        return LaunchedProcess(proc=proc, master_fd=master_fd, argv=list(argv))
