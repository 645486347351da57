"""Resolution outcomes and rejection reasons."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from labmr.branching.context import BranchFacts
from labmr.branching.naming import issue_prefix
from labmr.errors import ExitCode, LabError


@dataclass(frozen=True)
class NamingConventionViolation:
    branch: str
    issue_id: int

    @property
    def message(self) -> str:
        return f"Branch {self.branch} must start with `{issue_prefix(self.issue_id)}` to be associated with issue #{self.issue_id}"

    @property
    def hint(self) -> str:
        return f"Rename the branch to start with `{issue_prefix(self.issue_id)}` or pass --source."


@dataclass(frozen=True)
class BranchAlreadyInUse:
    branch: str

    @property
    def message(self) -> str:
        return f"Branch {self.branch} is already the source of an open merge request"

    @property
    def hint(self) -> str:
        return "Push your work to a new branch or pass a different --source."


@dataclass(frozen=True)
class TargetBranchMissing:
    branch: str

    @property
    def message(self) -> str:
        return f"Target branch {self.branch} does not exist on the server, so nothing can be merged into it"

    @property
    def hint(self) -> str:
        return "Check the --target value or push the branch first."


@dataclass(frozen=True)
class NoBranchInformation:
    @property
    def message(self) -> str:
        return "Could not determine a source branch"

    @property
    def hint(self) -> str:
        return "Check out a branch or pass --source explicitly."


@dataclass(frozen=True)
class UnusableTitle:
    title: str

    @property
    def message(self) -> str:
        return f"Cannot derive a branch name from title {self.title!r}"

    @property
    def hint(self) -> str:
        return "Use a title with letters or digits, or pass --source."


RejectReason = Union[
    NamingConventionViolation,
    BranchAlreadyInUse,
    TargetBranchMissing,
    NoBranchInformation,
    UnusableTitle,
]


@dataclass(frozen=True)
class UseExisting:
    branch: str


@dataclass(frozen=True)
class Create:
    base: str
    branch: str


@dataclass(frozen=True)
class Reject:
    reason: RejectReason


@dataclass(frozen=True)
class UnhandledCombination:
    facts: BranchFacts


Outcome = Union[UseExisting, Create, Reject, UnhandledCombination]


class BranchResolutionError(LabError):
    def __init__(self, reason: RejectReason) -> None:
        super().__init__(reason.message, code=ExitCode.VALIDATION_ERROR, hint=reason.hint)
        self.reason = reason
