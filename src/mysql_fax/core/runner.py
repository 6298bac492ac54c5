"""
Pipeline execution.

Runs a ``CommandPipeline`` as chained processes (``stdout`` of each stage
feeding ``stdin`` of the next) without going through a local shell, with an
optional deadline covering the whole chain.
"""

from __future__ import annotations

import subprocess
import tempfile
import time
from dataclasses import dataclass, field
from typing import IO, Any

from mysql_fax.core.commands import CommandPipeline
from mysql_fax.errors import ExternalCommandError
from mysql_fax.utils.logger import get_logger


logger = get_logger(__name__)

STDERR_TAIL_BYTES = 4096


@dataclass
class PipelineResult:
    """Outcome of a finished pipeline."""

    description: str
    returncodes: list[int] = field(default_factory=list)
    duration_seconds: float = 0.0


def run_pipeline(
    pipeline: CommandPipeline,
    timeout: float | None = None,
) -> PipelineResult:
    """
    Run ``pipeline`` to completion.

    Raises:
        ExternalCommandError: a stage could not start, exited non-zero, or
            the deadline passed (every stage is killed in that case)
    """
    logger.info(f"Running: {pipeline.description}")
    logger.debug(pipeline.redacted())

    start = time.monotonic()
    deadline = None if timeout is None else start + timeout
    processes: list[subprocess.Popen[bytes]] = []
    stderr_files: list[IO[bytes]] = []

    try:
        previous_stdout: Any = subprocess.DEVNULL
        last = len(pipeline.stages) - 1
        for index, argv in enumerate(pipeline.stages):
            stderr_file = tempfile.TemporaryFile()
            stderr_files.append(stderr_file)
            try:
                process = subprocess.Popen(
                    argv,
                    stdin=previous_stdout,
                    stdout=None if index == last else subprocess.PIPE,
                    stderr=stderr_file,
                )
            except OSError as e:
                raise ExternalCommandError(argv[0], None, f"could not start: {e}") from e
            # Only the child keeps the read end open so SIGPIPE propagates
            if previous_stdout is not subprocess.DEVNULL:
                previous_stdout.close()
            previous_stdout = process.stdout
            processes.append(process)

        returncodes: list[int] = []
        for process in processes:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            try:
                returncodes.append(process.wait(timeout=remaining))
            except subprocess.TimeoutExpired:
                raise ExternalCommandError(
                    f"{pipeline.description} ({process.args[0]})", None, timed_out=True
                ) from None

        # Upstream stages die of SIGPIPE when a later one fails; blame the last failure
        for process, code, stderr_file in reversed(list(zip(processes, returncodes, stderr_files))):
            if code != 0:
                raise ExternalCommandError(process.args[0], code, _tail(stderr_file))
    finally:
        for process in processes:
            if process.poll() is None:
                process.kill()
                process.wait()
        for stderr_file in stderr_files:
            stderr_file.close()

    duration = time.monotonic() - start
    logger.info(f"Finished {pipeline.description} in {duration:.1f}s")
    return PipelineResult(
        description=pipeline.description,
        returncodes=returncodes,
        duration_seconds=duration,
    )


def _tail(stderr_file: IO[bytes]) -> str:
    stderr_file.seek(0, 2)
    size = stderr_file.tell()
    stderr_file.seek(max(0, size - STDERR_TAIL_BYTES))
    return stderr_file.read().decode("utf-8", errors="ignore")
