"""Configuration — Pydantic models for dockertty settings."""

from __future__ import annotations

import json
import os
import signal
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_CLOSE_SIGNAL = signal.SIGTERM
DEFAULT_CLOSE_TIMEOUT = 10.0


class SessionConfig(BaseModel):
    """Construction-time options for a PTY session.

    Immutable once built; pass a new instance to ``spawn()`` to change it.
    """

    model_config = ConfigDict(frozen=True)

    close_signal: int = Field(
        default=int(DEFAULT_CLOSE_SIGNAL),
        description="Signal sent to the child on graceful close (name or number).",
    )
    close_timeout: float = Field(
        default=DEFAULT_CLOSE_TIMEOUT,
        description=(
            "Seconds to wait after each signal before sending SIGKILL. "
            "Negative waits forever and never escalates."
        ),
    )
    drain_timeout: float = Field(
        default=0.5,
        ge=0,
        description="Seconds the exit watcher waits for readers to drain output.",
    )
    max_kill_attempts: int | None = Field(
        default=None,
        ge=1,
        description="Give up after this many SIGKILLs (None keeps escalating).",
    )
    container_tool: str = Field(default="docker")
    recorder_tool: str = Field(default="asciinema")
    term: str | None = Field(
        default=None, description="TERM for the child; inherited when unset."
    )

    @field_validator("close_signal", mode="before")
    @classmethod
    def _parse_signal(cls, value: Any) -> int:
        if isinstance(value, str):
            name = value.strip().upper()
            if name.isdigit():
                value = int(name)
            else:
                if not name.startswith("SIG"):
                    name = "SIG" + name
                try:
                    return int(signal.Signals[name])
                except KeyError:
                    raise ValueError(f"unknown signal: {value}") from None
        try:
            return int(signal.Signals(int(value)))
        except ValueError:
            raise ValueError(f"unknown signal: {value}") from None


class DockerttyConfig(BaseModel):
    """Top-level dockertty configuration."""

    session: SessionConfig = Field(default_factory=SessionConfig)
    record_dir: str = Field(
        default=".", description="Directory recordings are written into"
    )

    @classmethod
    def load(cls, config_path: str | None = None) -> DockerttyConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            DOCKERTTY_CLOSE_SIGNAL       - Graceful close signal (e.g. SIGHUP or 1)
            DOCKERTTY_CLOSE_TIMEOUT      - Seconds before escalating to SIGKILL
            DOCKERTTY_DRAIN_TIMEOUT      - Seconds to wait for output to drain
            DOCKERTTY_MAX_KILL_ATTEMPTS  - Cap on SIGKILL escalations
            DOCKERTTY_CONTAINER_TOOL     - Container CLI (default: docker)
            DOCKERTTY_RECORDER_TOOL      - Recorder CLI (default: asciinema)
            DOCKERTTY_RECORD_DIR         - Where recordings are written
        """
        load_dotenv()

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        session = dict(config_data.get("session", {}))

        env_map = {
            "DOCKERTTY_CLOSE_SIGNAL": "close_signal",
            "DOCKERTTY_CLOSE_TIMEOUT": "close_timeout",
            "DOCKERTTY_DRAIN_TIMEOUT": "drain_timeout",
            "DOCKERTTY_MAX_KILL_ATTEMPTS": "max_kill_attempts",
            "DOCKERTTY_CONTAINER_TOOL": "container_tool",
            "DOCKERTTY_RECORDER_TOOL": "recorder_tool",
        }
        for env_name, key in env_map.items():
            value = os.environ.get(env_name)
            if value:
                session[key] = value

        if session:
            config_data["session"] = session

        env_record_dir = os.environ.get("DOCKERTTY_RECORD_DIR")
        if env_record_dir:
            config_data["record_dir"] = env_record_dir

        return cls.model_validate(config_data)
