"""
Subprocess execution with a hard wall-clock timeout and bounded output capture.

Build tools can be extremely chatty, so each stream is drained on its own
thread and only the first ``max_output_bytes`` are kept.
"""

import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO

from .errors import ProcessExecutionError
from .logging_config import get_logger

DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024
KILL_GRACE_SECONDS = 5.0
_CHUNK_SIZE = 64 * 1024


@dataclass
class ProcessOutcome:
    """Raw result of one subprocess invocation."""

    command: list[str]
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False
    truncated: bool = False

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def output(self) -> str:
        return self.stdout + self.stderr


@dataclass
class _BoundedBuffer:
    limit: int
    chunks: list[bytes] = field(default_factory=list)
    size: int = 0
    truncated: bool = False

    def feed(self, chunk: bytes) -> None:
        remaining = self.limit - self.size
        if remaining <= 0:
            self.truncated = True
            return
        if len(chunk) > remaining:
            chunk = chunk[:remaining]
            self.truncated = True
        self.chunks.append(chunk)
        self.size += len(chunk)

    def text(self) -> str:
        return b"".join(self.chunks).decode("utf-8", errors="replace")


def _drain(stream: IO[bytes], buffer: _BoundedBuffer) -> None:
    # Keep reading past the limit so the child never blocks on a full pipe
    for chunk in iter(lambda: stream.read(_CHUNK_SIZE), b""):
        buffer.feed(chunk)
    stream.close()


def _signal_process(process: subprocess.Popen, force: bool) -> None:
    try:
        if os.name == "posix":
            os.killpg(process.pid, signal.SIGKILL if force else signal.SIGTERM)
        elif force:
            process.kill()
        else:
            process.terminate()
    except ProcessLookupError:
        pass


def run_process(
    command: list[str],
    cwd: str | Path,
    timeout_ms: int,
    env: dict[str, str] | None = None,
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    kill_grace_seconds: float = KILL_GRACE_SECONDS,
) -> ProcessOutcome:
    """
    Run a command, enforcing a timeout and an output cap.

    On timeout the process group receives SIGTERM, then SIGKILL after
    ``kill_grace_seconds``. The outcome is returned with ``timed_out`` set and
    ``exit_code`` of -1; it is never raised.

    Args:
        command: Argument vector, executed without a shell
        cwd: Working directory
        timeout_ms: Wall-clock budget in milliseconds
        env: Extra environment variables layered over ``os.environ``
        max_output_bytes: Cap applied to each of stdout and stderr
        kill_grace_seconds: Delay between SIGTERM and SIGKILL

    Returns:
        ProcessOutcome describing the run

    Raises:
        ProcessExecutionError: If the executable cannot be started
    """
    logger = get_logger(__name__)
    merged_env = {**os.environ, **(env or {})}
    start = time.monotonic()

    try:
        process = subprocess.Popen(
            command,
            cwd=str(cwd),
            env=merged_env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=os.name == "posix",
        )
    except OSError as e:
        raise ProcessExecutionError(
            f"Failed to start {' '.join(command)}: {e}"
        ) from e

    stdout_buffer = _BoundedBuffer(max_output_bytes)
    stderr_buffer = _BoundedBuffer(max_output_bytes)
    readers = [
        threading.Thread(target=_drain, args=(process.stdout, stdout_buffer), daemon=True),
        threading.Thread(target=_drain, args=(process.stderr, stderr_buffer), daemon=True),
    ]
    for reader in readers:
        reader.start()

    timed_out = False
    try:
        exit_code = process.wait(timeout=timeout_ms / 1000)
    except subprocess.TimeoutExpired:
        timed_out = True
        logger.warning(
            "Process timed out, terminating",
            command=" ".join(command),
            timeout_ms=timeout_ms,
        )
        _signal_process(process, force=False)
        try:
            process.wait(timeout=kill_grace_seconds)
        except subprocess.TimeoutExpired:
            _signal_process(process, force=True)
            process.wait()
        exit_code = -1

    for reader in readers:
        reader.join(timeout=kill_grace_seconds)

    duration_ms = int((time.monotonic() - start) * 1000)
    truncated = stdout_buffer.truncated or stderr_buffer.truncated
    if truncated:
        logger.debug(
            "Process output truncated",
            command=" ".join(command),
            limit_bytes=max_output_bytes,
        )

    return ProcessOutcome(
        command=list(command),
        exit_code=exit_code,
        stdout=stdout_buffer.text(),
        stderr=stderr_buffer.text(),
        duration_ms=duration_ms,
        timed_out=timed_out,
        truncated=truncated,
    )
