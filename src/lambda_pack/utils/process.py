"""Subprocess execution with explicit working directories."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Captured outcome of one external command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined stdout/stderr text, as the tool emitted it."""

        parts = [part for part in (self.stdout, self.stderr) if part]
        return "\n".join(part.rstrip("\n") for part in parts)


def run_command(
    args: Sequence[str],
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
    logger: logging.Logger | None = None,
) -> CommandResult:
    """Run ``args`` without a shell and capture its output.

    A missing executable is reported as exit code 127 with the OS error text,
    the same way a shell would, so callers handle every failure through the
    returned result.
    """

    effective_logger = logger or LOGGER
    effective_logger.debug("process.run args=%s cwd=%s", list(args), cwd)
    try:
        completed = subprocess.run(
            list(args),
            cwd=str(cwd) if cwd is not None else None,
            env=dict(env) if env is not None else None,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as exc:
        return CommandResult(args=tuple(args), returncode=127, stdout="", stderr=str(exc))
    except subprocess.TimeoutExpired as exc:
        stdout = exc.stdout.decode() if isinstance(exc.stdout, bytes) else (exc.stdout or "")
        stderr = exc.stderr.decode() if isinstance(exc.stderr, bytes) else (exc.stderr or "")
        stderr = f"{stderr}\nTimed out after {timeout}s".lstrip("\n")
        return CommandResult(args=tuple(args), returncode=124, stdout=stdout, stderr=stderr)
    return CommandResult(
        args=tuple(args),
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )
