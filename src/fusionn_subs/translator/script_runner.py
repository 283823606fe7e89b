"""Subprocess runner for external translation scripts.

Both pipes are drained by dedicated threads while the main thread waits for
the process. Reading one stream at a time would let the script block forever
on a full pipe buffer of the other.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import IO

logger = logging.getLogger(__name__)

LineSink = Callable[[str], None]

TIMEOUT_EXIT_CODE = 124
_TERMINATE_GRACE_SECONDS = 5.0
_DIM_START = "\033[2m"
_DIM_END = "\033[0m"


class ScriptRunError(RuntimeError):
    """Script could not be started, with retryability hint."""

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


@dataclass(slots=True)
class ScriptRunResult:
    """Execution outcome with fully captured output."""

    exit_code: int
    timed_out: bool
    stdout: str
    stderr: str
    duration_seconds: float

    @property
    def succeeded(self) -> bool:
        return not self.timed_out and self.exit_code == 0


def dimmed_stderr_sink(line: str) -> None:
    """Echo a script line to stderr, greyed out so it stays apart from logs."""

    sys.stderr.write(f"{_DIM_START}  │ {line}{_DIM_END}\n")
    sys.stderr.flush()


def run_script(
    argv: Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    timeout_seconds: float,
    line_sink: LineSink | None = dimmed_stderr_sink,
) -> ScriptRunResult:
    """Run ``argv`` to completion or timeout and capture both streams."""

    if not argv:
        raise ScriptRunError("Script command is empty.", transient=False)

    started = time.monotonic()
    try:
        process = subprocess.Popen(  # noqa: S603
            list(argv),
            env=dict(env) if env is not None else None,
            cwd=cwd or None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            start_new_session=os.name != "nt",
        )
    except FileNotFoundError as error:
        raise ScriptRunError(f"Translation script not found: {argv[0]}", transient=False) from error
    except PermissionError as error:
        raise ScriptRunError(
            f"Translation script is not executable: {argv[0]}",
            transient=False,
        ) from error
    except OSError as error:
        raise ScriptRunError(
            f"Translation script failed to start: {error}",
            transient=True,
        ) from error
    except ValueError as error:
        raise ScriptRunError(f"Invalid script arguments: {error}", transient=False) from error

    stdout_lines: list[str] = []
    stderr_lines: list[str] = []
    readers = [
        threading.Thread(
            target=_drain_stream,
            args=(process.stdout, stdout_lines, line_sink),
            name="script-stdout",
            daemon=True,
        ),
        threading.Thread(
            target=_drain_stream,
            args=(process.stderr, stderr_lines, line_sink),
            name="script-stderr",
            daemon=True,
        ),
    ]
    for reader in readers:
        reader.start()

    timed_out = False
    try:
        returncode = process.wait(timeout=timeout_seconds)
    except subprocess.TimeoutExpired:
        timed_out = True
        logger.error("Script exceeded %.0fs timeout, terminating: %s", timeout_seconds, argv[0])
        _terminate_process(process)
        returncode = TIMEOUT_EXIT_CODE

    for reader in readers:
        reader.join()

    return ScriptRunResult(
        exit_code=returncode,
        timed_out=timed_out,
        stdout="\n".join(stdout_lines),
        stderr="\n".join(stderr_lines),
        duration_seconds=time.monotonic() - started,
    )


def _drain_stream(stream: IO[str] | None, lines: list[str], line_sink: LineSink | None) -> None:
    if stream is None:
        return
    try:
        for raw_line in stream:
            line = raw_line.rstrip("\r\n")
            lines.append(line)
            if line_sink is not None:
                try:
                    line_sink(line)
                except Exception:  # noqa: BLE001
                    logger.debug("Line sink failed", exc_info=True)
    finally:
        stream.close()


def _terminate_process(process: subprocess.Popen[str]) -> None:
    _signal_process(process, signal.SIGTERM)
    try:
        process.wait(timeout=_TERMINATE_GRACE_SECONDS)
        return
    except subprocess.TimeoutExpired:
        pass
    _signal_process(process, getattr(signal, "SIGKILL", signal.SIGTERM))
    try:
        process.wait(timeout=_TERMINATE_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        logger.error("Script pid=%s did not exit after SIGKILL", process.pid)


def _signal_process(process: subprocess.Popen[str], signum: int) -> None:
    # The script runs in its own session so helpers it spawned die with it
    # and release the pipes the readers are blocked on.
    try:
        if os.name != "nt":
            os.killpg(process.pid, signum)
        elif signum == signal.SIGTERM:
            process.terminate()
        else:
            process.kill()
    except OSError:
        return
