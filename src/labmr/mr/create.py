"""End-to-end merge request creation from repository state."""

from __future__ import annotations

import logging as py_logging
from dataclasses import dataclass
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from labmr.branching.context import ResolutionContext
from labmr.branching.outcomes import BranchResolutionError, Outcome, TargetBranchMissing
from labmr.branching.probes import BranchCreator, RemoteStateProbe, RepoStateProbe
from labmr.branching.resolver import resolve_source_branch
from labmr.errors import ConfigError, ExitCode
from labmr.git.repo_state import project_path_from_remote_url
from labmr.gitlab.client import Issue, MergeRequest, MergeRequestDraft, Project
from labmr.mr.text import Prompt, resolve_description, resolve_title

logger = py_logging.getLogger(__name__)


class MergeRequestApi(RemoteStateProbe, BranchCreator, Protocol):
    def get_project(self, project_id: str) -> Project: ...

    def get_issue(self, project_id: str, issue_id: int) -> Issue: ...

    def create_merge_request(self, project_id: str, draft: MergeRequestDraft) -> MergeRequest: ...


class RepositoryState(RepoStateProbe, Protocol):
    def remote_url(self, remote: str = "origin") -> str | None: ...


class CreateOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str | None = None
    description: str | None = None
    project_id: str | None = None
    issue_id: int | None = Field(default=None, ge=1)
    source_branch: str | None = None
    target_branch: str | None = None
    strict_issue_prefix: bool = False
    remove_source_branch: bool = False
    dry_run: bool = False


@dataclass
class CreateResult:
    project: Project
    source_branch: str
    target_branch: str
    title: str
    outcome: Outcome
    rule: str
    merge_request: MergeRequest | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "project": self.project.path_with_namespace,
            "source_branch": self.source_branch,
            "target_branch": self.target_branch,
            "title": self.title,
            "rule": self.rule,
            "outcome": type(self.outcome).__name__,
            "merge_request": self.merge_request.to_dict() if self.merge_request else None,
        }


def resolve_project_id(
    explicit: str | None,
    configured: str,
    repo: RepositoryState,
    *,
    remote_name: str = "origin",
) -> str:
    if explicit and explicit.strip():
        return explicit.strip()
    if configured:
        return configured
    url = repo.remote_url(remote_name)
    path = project_path_from_remote_url(url) if url else None
    if path:
        logger.debug("Inferred project from remote=%s path=%s", remote_name, path)
        return path
    raise ConfigError(
        "Could not determine the GitLab project.",
        code=ExitCode.CONFIG_ERROR,
        hint="Pass --project-id, set GITLAB_PROJECT_ID or `git config gitlab.projectid`.",
    )


def resolve_target_branch(api: MergeRequestApi, project: Project, project_id: str, requested: str | None) -> str:
    if requested is None:
        return project.default_branch
    if not api.exists_remotely(project_id, requested):
        raise BranchResolutionError(TargetBranchMissing(requested))
    return requested


def create_merge_request(
    options: CreateOptions,
    *,
    api: MergeRequestApi,
    repo: RepositoryState,
    configured_project: str = "",
    remote_name: str = "origin",
    prompt: Prompt | None = None,
) -> CreateResult:
    project_id = resolve_project_id(options.project_id, configured_project, repo, remote_name=remote_name)
    project = api.get_project(project_id)
    logger.debug("Creating merge request project=%s default=%s", project_id, project.default_branch)

    target = resolve_target_branch(api, project, project_id, options.target_branch)

    issue = api.get_issue(project_id, options.issue_id) if options.issue_id is not None else None
    commit = repo.head_commit_message()
    title = resolve_title(options.title, issue=issue, commit=commit, prompt=prompt)
    description = resolve_description(options.description, issue_id=options.issue_id, commit=commit)

    ctx = ResolutionContext(
        project_id=project_id,
        default_branch=project.default_branch,
        target_branch=target,
        title=title,
        explicit_source=options.source_branch,
        local_branch=repo.current_local_branch(),
        remote_branch=repo.current_tracking_branch(),
        issue_id=options.issue_id,
    )
    source = resolve_source_branch(
        ctx, api, api, strict_issue_prefix=options.strict_issue_prefix, dry_run=options.dry_run
    )
    if not source.applied:
        return CreateResult(project, source.name, target, title, source.outcome, source.rule)

    draft = MergeRequestDraft(
        source_branch=source.name,
        target_branch=target,
        title=title,
        description=description,
        remove_source_branch=options.remove_source_branch,
    )
    merge_request = api.create_merge_request(project_id, draft)
    logger.info("Created merge request !%s project=%s source=%s", merge_request.iid, project_id, source.name)
    return CreateResult(project, source.name, target, title, source.outcome, source.rule, merge_request)
