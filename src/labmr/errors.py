"""Deterministic error model and exit code contract."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4
    GIT_ERROR = 5
    REMOTE_ERROR = 6
    VALIDATION_ERROR = 7
    INTERNAL_ERROR = 8


@dataclass
class LabError(Exception):
    message: str
    code: ExitCode = ExitCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


class ProbeError(LabError):
    """Transport or server failure raised by a repository probe."""


class ConfigError(LabError):
    """Missing or unusable connection settings."""


class BranchCreationMismatch(ProbeError):
    """The server confirmed a different branch name than the one requested."""


class InternalInvariantError(LabError):
    """A combination of facts that no resolution rule covers."""


def user_facing_error(message: str, *, hint: str = "") -> str:
    message = message.rstrip().rstrip(".")
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
