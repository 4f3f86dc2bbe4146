"""CLI entry point for dockertty."""

from __future__ import annotations

import logging
import os
import select
import shutil
import signal
import sys
import termios
import threading
import tty
from contextlib import contextmanager
from typing import Iterator

import typer

from dockertty.config import DockerttyConfig
from dockertty.pty import GeometryError, PtyClosedError, Session, SpawnError, spawn

__version__ = "0.1.0"

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="dockertty",
    help="Attach to a running container through a managed pseudo-terminal.",
    no_args_is_help=True,
)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


@contextmanager
def _raw_terminal(fd: int) -> Iterator[None]:
    """Put the local terminal in raw mode, restoring it on exit."""
    if not os.isatty(fd):
        yield
        return
    saved = termios.tcgetattr(fd)
    try:
        tty.setraw(fd)
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


def _sync_size(session: Session) -> None:
    size = shutil.get_terminal_size()
    try:
        session.resize(size.columns, size.lines)
    except GeometryError as e:
        logger.debug("Resize to %dx%d skipped: %s", size.columns, size.lines, e)


def _pump_output(session: Session, out_fd: int) -> None:
    """Copy pty output to ``out_fd`` until end-of-stream."""
    while True:
        data = session.read()
        if not data:
            return
        os.write(out_fd, data)


def _pump_input(session: Session, in_fd: int) -> None:
    """Copy ``in_fd`` to the pty until local EOF or the session closes."""
    while not session.closed:
        ready, _, _ = select.select([in_fd], [], [], 0.2)
        if not ready:
            continue
        data = os.read(in_fd, 4096)
        if not data:
            return
        try:
            session.write(data)
        except PtyClosedError:
            return


def run_attached(session: Session, in_fd: int = 0, out_fd: int = 1) -> int:
    """Bridge the local terminal to ``session`` until the child exits.

    Returns the child's exit code (1 if it was killed by a signal).
    """
    previous_handler = None
    if os.isatty(out_fd):
        _sync_size(session)
        previous_handler = signal.signal(
            signal.SIGWINCH, lambda *_: _sync_size(session)
        )

    reader = threading.Thread(
        target=_pump_output, args=(session, out_fd), name="pty-output", daemon=True
    )
    reader.start()
    try:
        with _raw_terminal(in_fd):
            _pump_input(session, in_fd)
    finally:
        session.close()
        reader.join()
        if previous_handler is not None:
            signal.signal(signal.SIGWINCH, previous_handler)

    code = session.exit_code
    if code is None or code < 0:
        return 1
    return code


@app.command()
def attach(
    target: str = typer.Argument(help="Container name or ID."),
    args: str = typer.Argument(
        "sh", help="Command line to run in the container (split on whitespace)."
    ),
    record: bool = typer.Option(
        False, "--record", "-r", help="Record the session with the recorder tool."
    ),
    close_timeout: float | None = typer.Option(
        None,
        "--close-timeout",
        "-t",
        help="Seconds before escalating to SIGKILL on close (negative: never).",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Open an interactive terminal in a running container."""
    setup_logging(verbose)

    config = DockerttyConfig.load(config_file)
    session_config = config.session
    if close_timeout is not None:
        session_config = session_config.model_copy(
            update={"close_timeout": close_timeout}
        )

    try:
        session = spawn(
            target,
            args,
            use_recorder=record,
            config=session_config,
            cwd=config.record_dir if record else None,
        )
    except SpawnError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    raise typer.Exit(run_attached(session))


@app.command()
def version() -> None:
    """Print the dockertty version."""
    typer.echo(f"dockertty v{__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
