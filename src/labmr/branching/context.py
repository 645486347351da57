"""Immutable input to a single source-branch resolution."""

from __future__ import annotations

from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BranchFacts(NamedTuple):
    """Which pieces of branch information are present."""

    explicit_source: bool
    local_branch: bool
    remote_branch: bool
    issue: bool


class ResolutionContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    project_id: str
    default_branch: str
    target_branch: str
    title: str = ""
    explicit_source: str | None = None
    local_branch: str | None = None
    remote_branch: str | None = None
    issue_id: int | None = Field(default=None, ge=1)

    @field_validator("project_id", "default_branch", "target_branch")
    @classmethod
    def _require_value(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("explicit_source", "local_branch", "remote_branch")
    @classmethod
    def _blank_is_missing(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def facts(self) -> BranchFacts:
        return BranchFacts(
            explicit_source=self.explicit_source is not None,
            local_branch=self.local_branch is not None,
            remote_branch=self.remote_branch is not None,
            issue=self.issue_id is not None,
        )

    def is_default(self, branch: str) -> bool:
        return branch == self.default_branch
