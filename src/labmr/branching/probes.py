"""Capability contracts the resolver and merge-request flow depend on.

Implementations may raise :class:`labmr.errors.ProbeError`; callers let it
propagate untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class CommitMessage:
    subject: str
    body: str | None = None


class RemoteStateProbe(Protocol):
    def exists_remotely(self, project_id: str, branch: str) -> bool: ...

    def has_open_request(self, project_id: str, branch: str) -> bool:
        """True when an opened or locked merge request uses ``branch`` as its source."""
        ...


class BranchCreator(Protocol):
    def create_branch(self, project_id: str, base: str, branch: str) -> str: ...


class RepoStateProbe(Protocol):
    def current_local_branch(self) -> str | None: ...

    def current_tracking_branch(self) -> str | None: ...

    def head_commit_message(self) -> CommitMessage | None: ...
