"""Raw byte I/O on a pty master fd."""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import select
import threading
from contextlib import contextmanager
from typing import Iterator

from dockertty.pty.errors import PtyClosedError, PtyIOError

logger = logging.getLogger(__name__)

# EIO: the subordinate side has been closed (child gone, output drained).
# EBADF: the master is no longer open.
_EOF_ERRNOS = frozenset({errno.EIO, errno.EBADF})


class PtyIOChannel:
    """Unbuffered read/write over the master side of a pty.

    The channel owns the fd. Every use of it (reads, writes, and geometry
    calls via ``hold()``) is counted, and ``close()`` waits for the count to
    drop to zero before closing, so an fd number reused elsewhere in the
    process is never touched. Blocking waits go through ``select`` on the
    master plus a private wakeup pipe; ``close()`` writes to that pipe, so
    waiting readers return ``b""`` even while some other process still holds
    the subordinate side open.
    """

    def __init__(self, fd: int) -> None:
        self._fd = fd
        os.set_blocking(fd, False)
        self._wake_r, self._wake_w = os.pipe()
        self._cond = threading.Condition()
        self._users = 0
        self._closed = threading.Event()
        self._drained = threading.Event()

    @property
    def fd(self) -> int:
        return self._fd

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @contextmanager
    def hold(self) -> Iterator[int]:
        """Keep the fd open for the duration of the block.

        Raises:
            PtyClosedError: the channel is already closed.
        """
        with self._cond:
            if self._closed.is_set():
                raise PtyClosedError(errno.EBADF, "pty is closed")
            self._users += 1
        try:
            yield self._fd
        finally:
            with self._cond:
                self._users -= 1
                self._cond.notify_all()

    def read(self, size: int = 4096) -> bytes:
        """Block until output is available and return up to ``size`` bytes.

        Returns ``b""`` at end-of-stream or once the channel is closed.
        """
        try:
            with self.hold() as fd:
                while True:
                    readable, _, _ = select.select([fd, self._wake_r], [], [])
                    if self._wake_r in readable:
                        return b""
                    try:
                        data = os.read(fd, size)
                    except BlockingIOError:
                        continue
                    if not data:
                        self._drained.set()
                    return data
        except PtyClosedError:
            return b""
        except OSError as e:
            if e.errno in _EOF_ERRNOS:
                self._drained.set()
                return b""
            raise PtyIOError(e.errno, f"pty read failed: {e.strerror}") from e

    async def aread(self, size: int = 4096) -> bytes:
        """``read()`` run in the event loop's default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.read, size)

    def write(self, data: bytes) -> int:
        """Write all of ``data`` to the pty and return its length."""
        view = memoryview(data)
        with self.hold() as fd:
            while view:
                readable, _, _ = select.select([self._wake_r], [fd], [])
                if readable:
                    raise PtyClosedError(errno.EBADF, "pty is closed")
                try:
                    sent = os.write(fd, view)
                except BlockingIOError:
                    continue
                except OSError as e:
                    if e.errno in _EOF_ERRNOS:
                        raise PtyClosedError(e.errno, "pty is closed") from e
                    raise PtyIOError(e.errno, f"pty write failed: {e.strerror}") from e
                view = view[sent:]
        return len(data)

    def wait_drained(self, timeout: float | None) -> bool:
        """Wait until a reader has hit end-of-stream."""
        return self._drained.wait(timeout)

    def close(self) -> None:
        """Wake waiting readers and writers, then close the fd once unused."""
        with self._cond:
            if self._closed.is_set():
                return
            self._closed.set()
            os.write(self._wake_w, b"\0")
            while self._users:
                self._cond.wait()
            try:
                os.close(self._fd)
            finally:
                os.close(self._wake_r)
                os.close(self._wake_w)
        logger.debug("Closed pty fd %d", self._fd)
