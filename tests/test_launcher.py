"""Tests for dockertty.pty.launcher (build_command, recording_filename, ProcessLauncher)."""

from __future__ import annotations

import errno
import os
import sys
from datetime import datetime
from unittest.mock import patch

import pytest

from dockertty.pty.errors import SpawnError
from dockertty.pty.launcher import ProcessLauncher, build_command, recording_filename

MORNING = datetime(2024, 5, 17, 9, 5, 7, 123456)


def _open_fds() -> set[str]:
    return set(os.listdir("/proc/self/fd"))


# ---------------------------------------------------------------------------
# build_command
# ---------------------------------------------------------------------------


class TestBuildCommand:
    def test_plain_invocation(self) -> None:
        assert build_command("web-1", "bash -l") == [
            "docker",
            "exec",
            "-it",
            "web-1",
            "bash",
            "-l",
        ]

    def test_whitespace_runs_collapse(self) -> None:
        argv = build_command("db", "  psql   -U\tpostgres  ")
        assert argv[4:] == ["psql", "-U", "postgres"]

    def test_quotes_are_not_understood(self) -> None:
        argv = build_command("db", 'sh -c "echo hi"')
        assert argv[4:] == ["sh", "-c", '"echo', 'hi"']

    def test_empty_args_line(self) -> None:
        assert build_command("db", "") == ["docker", "exec", "-it", "db"]

    def test_custom_container_tool(self) -> None:
        argv = build_command("db", "sh", container_tool="podman")
        assert argv[0] == "podman"

    def test_recorder_wraps_invocation(self) -> None:
        argv = build_command("web-1", "bash -l", use_recorder=True, now=MORNING)
        assert argv == [
            "asciinema",
            "rec",
            "-t",
            "web-1",
            "-c",
            "docker exec -it web-1 bash -l",
            "web-1_090507123.rec",
        ]

    def test_custom_recorder_tool(self) -> None:
        argv = build_command(
            "x", "sh", use_recorder=True, recorder_tool="/opt/rec", now=MORNING
        )
        assert argv[0] == "/opt/rec"


class TestRecordingFilename:
    def test_format(self) -> None:
        assert recording_filename("web", MORNING) == "web_090507123.rec"

    def test_zero_padded(self) -> None:
        when = datetime(2024, 1, 1, 0, 0, 0, 1000)
        assert recording_filename("a", when) == "a_000000001.rec"

    def test_defaults_to_now(self) -> None:
        name = recording_filename("box")
        assert name.startswith("box_")
        assert name.endswith(".rec")
        assert len(name) == len("box_") + 9 + len(".rec")


# ---------------------------------------------------------------------------
# ProcessLauncher
# ---------------------------------------------------------------------------


class TestProcessLauncher:
    def test_child_streams_are_the_pty(self) -> None:
        launched = ProcessLauncher().launch(
            ["sh", "-c", "test -t 0 && test -t 1 && test -t 2"]
        )
        try:
            assert launched.proc.wait(timeout=5) == 0
        finally:
            os.close(launched.master_fd)

    def test_pty_is_controlling_terminal(self) -> None:
        # /dev/tty only opens when the process has a controlling terminal.
        launched = ProcessLauncher().launch(["sh", "-c", "exec 3</dev/tty"])
        try:
            assert launched.proc.wait(timeout=5) == 0
        finally:
            os.close(launched.master_fd)

    def test_env_is_merged(self) -> None:
        launched = ProcessLauncher().launch(
            ["sh", "-c", 'test "$DOCKERTTY_PROBE" = yes && test -n "$PATH"'],
            env={"DOCKERTTY_PROBE": "yes"},
        )
        try:
            assert launched.proc.wait(timeout=5) == 0
        finally:
            os.close(launched.master_fd)

    def test_argv_recorded(self) -> None:
        launched = ProcessLauncher().launch(["true"])
        try:
            launched.proc.wait(timeout=5)
            assert launched.argv == ["true"]
        finally:
            os.close(launched.master_fd)

    def test_missing_executable(self) -> None:
        with pytest.raises(SpawnError) as exc_info:
            ProcessLauncher().launch(["/nonexistent/dockertty-tool", "exec"])
        assert isinstance(exc_info.value.__cause__, FileNotFoundError)
        assert exc_info.value.argv == ["/nonexistent/dockertty-tool", "exec"]

    @pytest.mark.skipif(not sys.platform.startswith("linux"), reason="needs /proc")
    def test_failed_start_releases_pty(self) -> None:
        before = _open_fds()
        with pytest.raises(SpawnError):
            ProcessLauncher().launch(["/nonexistent/dockertty-tool"])
        assert _open_fds() == before

    def test_pty_allocation_failure(self) -> None:
        with patch(
            "dockertty.pty.launcher.pty.openpty",
            side_effect=OSError(errno.EMFILE, "Too many open files"),
        ):
            with pytest.raises(SpawnError) as exc_info:
                ProcessLauncher().launch(["true"])
        assert exc_info.value.__cause__.errno == errno.EMFILE

    def test_empty_argv(self) -> None:
        with pytest.raises(SpawnError):
            ProcessLauncher().launch([])
