"""Shutdown controller — exit watcher and the escalating close protocol.

State machine::

    RUNNING ──close()──> SIGNAL_SENT ──timeout──> KILL_SENT ─┐
       │                     │                      ^  timeout│
       │                     │                      └─────────┘
       └──── child exits ────┴──── child exits ───────> CLOSED

``CLOSED`` is only entered by the watcher thread after it has reaped the
child, so ``close()`` never reports success for a process that is still
running.
"""

from __future__ import annotations

import enum
import logging
import signal
import subprocess
import threading
from typing import Callable

from dockertty.pty.channel import PtyIOChannel
from dockertty.pty.errors import CloseTimeoutError

logger = logging.getLogger(__name__)


class ShutdownState(enum.StrEnum):
    """Lifecycle states of a session's child process."""

    RUNNING = "running"
    SIGNAL_SENT = "signal_sent"
    KILL_SENT = "kill_sent"
    CLOSED = "closed"


class ShutdownController:
    """Owns the child's termination: the exit watcher and ``close()``.

    The watcher is the only code that closes the pty fd. It waits for the
    child to exit, gives readers ``drain_timeout`` seconds to consume the
    remaining output, closes the channel (which wakes any blocked reader)
    and then fires the closed event.
    """

    def __init__(
        self,
        proc: subprocess.Popen,
        channel: PtyIOChannel,
        *,
        close_signal: int = signal.SIGTERM,
        close_timeout: float = 10.0,
        drain_timeout: float = 0.5,
        max_kill_attempts: int | None = None,
        on_closed: Callable[[int | None], None] | None = None,
    ) -> None:
        self._proc = proc
        self._channel = channel
        self._close_signal = close_signal
        self._close_timeout = close_timeout
        self._drain_timeout = drain_timeout
        self._max_kill_attempts = max_kill_attempts
        self._on_closed = on_closed

        self._state = ShutdownState.RUNNING
        self._state_lock = threading.Lock()
        self._exited = threading.Event()
        self._closed = threading.Event()
        self._exit_code: int | None = None
        self._kill_count = 0
        self._watcher: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Watcher
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the exit watcher. Called once, right after the spawn."""
        if self._watcher is not None:
            return
        self._watcher = threading.Thread(
            target=self._watch,
            name=f"pty-watcher-{self._proc.pid}",
            daemon=True,
        )
        self._watcher.start()

    def _watch(self) -> None:
        try:
            self._exit_code = self._proc.wait()
        finally:
            self._exited.set()
            logger.info("pid=%d exited (code=%s)", self._proc.pid, self._exit_code)

            if not self._channel.wait_drained(self._drain_timeout):
                logger.debug(
                    "pid=%d: output not drained after %.1fs, closing pty",
                    self._proc.pid,
                    self._drain_timeout,
                )
            try:
                self._channel.close()
            except OSError as e:
                logger.debug("Closing pty fd %d failed: %s", self._channel.fd, e)

            with self._state_lock:
                self._state = ShutdownState.CLOSED
            self._closed.set()

        if self._on_closed is not None:
            try:
                self._on_closed(self._exit_code)
            except Exception:
                logger.exception("Error in on_exit callback for pid %d", self._proc.pid)

    # ------------------------------------------------------------------
    # Close protocol
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Terminate the child and block until the watcher has closed the pty.

        Sends ``close_signal``, then ``SIGKILL`` once per elapsed
        ``close_timeout`` for as long as the child is alive. A negative
        timeout never escalates.

        Raises:
            CloseTimeoutError: ``max_kill_attempts`` kills were sent and the
                child still has not exited.
        """
        if self._closed.is_set():
            return

        if self._send(self._close_signal):
            self._transition(ShutdownState.SIGNAL_SENT)

        timeout = self._close_timeout if self._close_timeout >= 0 else None
        while not self._closed.wait(timeout):
            if self._exited.is_set():
                # Reaped; the watcher is draining and will close shortly.
                continue
            if (
                self._max_kill_attempts is not None
                and self._kill_count >= self._max_kill_attempts
            ):
                raise CloseTimeoutError(self._proc.pid, self._kill_count)
            if self._send(signal.SIGKILL):
                self._kill_count += 1
                self._transition(ShutdownState.KILL_SENT)
                logger.warning(
                    "pid=%d ignored shutdown, sent SIGKILL (#%d)",
                    self._proc.pid,
                    self._kill_count,
                )

    def _send(self, sig: int) -> bool:
        """Signal the child. Returns False if it is already gone."""
        if self._exited.is_set():
            return False
        try:
            self._proc.send_signal(sig)
        except ProcessLookupError:
            logger.debug("pid=%d already gone, %s not sent", self._proc.pid, sig)
            return False
        logger.info("Sent %s to pid=%d", signal.Signals(sig).name, self._proc.pid)
        return True

    def _transition(self, state: ShutdownState) -> None:
        with self._state_lock:
            if self._state is not ShutdownState.CLOSED:
                self._state = state

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def wait_closed(self, timeout: float | None = None) -> bool:
        """Wait for the closed event. Returns False on timeout."""
        return self._closed.wait(timeout)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def state(self) -> ShutdownState:
        with self._state_lock:
            return self._state

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    @property
    def kill_count(self) -> int:
        return self._kill_count
