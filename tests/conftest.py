"""Shared helpers for PTY session tests."""

from __future__ import annotations

import time
from typing import Callable, Iterator

import pytest

from dockertty.config import SessionConfig
from dockertty.pty.session import Session


def read_until(session: Session, marker: bytes, timeout: float = 5.0) -> bytes:
    """Read from the session until ``marker`` shows up or output ends."""
    deadline = time.monotonic() + timeout
    output = b""
    while marker not in output and time.monotonic() < deadline:
        data = session.read()
        if not data:
            break
        output += data
    return output


def read_all(session: Session) -> bytes:
    """Read until end-of-stream."""
    chunks = []
    while True:
        data = session.read()
        if not data:
            return b"".join(chunks)
        chunks.append(data)


@pytest.fixture
def start_session() -> Iterator[Callable[..., Session]]:
    """Factory for sessions running ``sh -c <script>``; all are closed afterwards."""
    sessions: list[Session] = []

    def _start(script: str, **config: object) -> Session:
        config.setdefault("drain_timeout", 0.2)
        session = Session.start(["sh", "-c", script], SessionConfig(**config))
        sessions.append(session)
        return session

    yield _start

    for session in sessions:
        if not session.closed:
            session.close()
