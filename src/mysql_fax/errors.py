"""
Exception hierarchy for MySQL Fax.

Every error raised on purpose by the package derives from ``FaxError`` so the
CLI can turn it into a clean message and a non-zero exit code.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence


class FaxError(Exception):
    """Base exception for MySQL Fax errors."""


class ConfigLoadError(FaxError):
    """Raised when the environment registry file is missing or malformed."""

    def __init__(self, path: Path | str, reason: str) -> None:
        super().__init__(f"Could not load {path}: {reason}")
        self.path = Path(path)
        self.reason = reason


class UnknownEnvironmentError(FaxError):
    """Raised when an environment name is not in the registry."""

    def __init__(self, name: str) -> None:
        super().__init__(f"configuration {name} does not exist")
        self.name = name


class InvalidEnvironmentError(FaxError):
    """Raised when an environment lacks fields required for its role."""

    def __init__(self, name: str, role: str, missing: Sequence[str]) -> None:
        super().__init__(
            f"{', '.join(missing)} must be present in configuration {name} "
            f"(required for {role})"
        )
        self.name = name
        self.role = role
        self.missing = list(missing)


class TunnelError(FaxError):
    """Raised when the SSH gateway is unreachable or the forward fails."""


class InspectionError(FaxError):
    """Raised when connecting to or listing a database fails."""


class ExternalCommandError(FaxError):
    """Raised when a stage of a dump/restore pipeline fails."""

    def __init__(
        self,
        stage: str,
        returncode: int | None,
        stderr: str = "",
        timed_out: bool = False,
    ) -> None:
        if timed_out:
            message = f"{stage} did not finish before the deadline"
        elif returncode is None:
            message = f"{stage} could not be run"
        else:
            message = f"{stage} exited with status {returncode}"
        if stderr:
            message += f": {stderr.strip()}"
        super().__init__(message)
        self.stage = stage
        self.returncode = returncode
        self.stderr = stderr
        self.timed_out = timed_out


class UnknownShortcutError(FaxError):
    """Raised when a shortcut name matches no (source, destination) pair."""

    def __init__(self, name: str) -> None:
        super().__init__(f"no shortcut named {name}")
        self.name = name
