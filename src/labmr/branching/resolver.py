"""Source-branch resolution for new merge requests.

Resolution is an ordered table of rules. Each rule states which combination of
facts it handles (explicit ``--source``, local branch, tracking branch, linked
issue) and decides an :data:`Outcome` by querying the remote probe. The first
applicable rule wins; rules are never combined. Deciding is free of side
effects: branch creation happens only in :func:`apply_outcome`, at most once.
"""

from __future__ import annotations

import logging as py_logging
from collections.abc import Callable
from dataclasses import dataclass

from labmr.branching.context import BranchFacts, ResolutionContext
from labmr.branching.naming import is_issue_prefixed, issue_branch_name, slugify
from labmr.branching.outcomes import (
    BranchAlreadyInUse,
    BranchResolutionError,
    Create,
    NamingConventionViolation,
    NoBranchInformation,
    Outcome,
    Reject,
    UnhandledCombination,
    UnusableTitle,
    UseExisting,
)
from labmr.branching.probes import BranchCreator, RemoteStateProbe
from labmr.errors import BranchCreationMismatch, ExitCode, InternalInvariantError, LabError

logger = py_logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleOptions:
    strict_issue_prefix: bool = False


Decision = Callable[[ResolutionContext, RemoteStateProbe, RuleOptions], Outcome]


@dataclass(frozen=True)
class Rule:
    name: str
    applies: Callable[[BranchFacts], bool]
    decide: Decision


def _reuse_or_create(ctx: ResolutionContext, probe: RemoteStateProbe, branch: str) -> Outcome:
    if not probe.exists_remotely(ctx.project_id, branch):
        return Create(base=ctx.default_branch, branch=branch)
    if probe.has_open_request(ctx.project_id, branch):
        return Reject(BranchAlreadyInUse(branch))
    return UseExisting(branch)


def _create_from_title(
    ctx: ResolutionContext, probe: RemoteStateProbe, *, issue_id: int | None = None
) -> Outcome:
    branch = slugify(ctx.title) if issue_id is None else issue_branch_name(issue_id, ctx.title)
    if not branch:
        return Reject(UnusableTitle(ctx.title))
    if probe.exists_remotely(ctx.project_id, branch):
        return Reject(BranchAlreadyInUse(branch))
    return Create(base=ctx.default_branch, branch=branch)


def _explicit_source(ctx: ResolutionContext, probe: RemoteStateProbe, options: RuleOptions) -> Outcome:
    assert ctx.explicit_source is not None
    return _reuse_or_create(ctx, probe, ctx.explicit_source)


def _explicit_source_for_issue(
    ctx: ResolutionContext, probe: RemoteStateProbe, options: RuleOptions
) -> Outcome:
    assert ctx.explicit_source is not None and ctx.issue_id is not None
    if not is_issue_prefixed(ctx.explicit_source, ctx.issue_id):
        return Reject(NamingConventionViolation(ctx.explicit_source, ctx.issue_id))
    return _reuse_or_create(ctx, probe, ctx.explicit_source)


def _tracking_branch_for_issue(
    ctx: ResolutionContext, probe: RemoteStateProbe, options: RuleOptions
) -> Outcome:
    remote, issue_id = ctx.remote_branch, ctx.issue_id
    assert remote is not None and issue_id is not None
    prefixed = is_issue_prefixed(remote, issue_id)

    if probe.exists_remotely(ctx.project_id, remote):
        if prefixed:
            return UseExisting(remote)
        if ctx.is_default(remote):
            return _create_from_title(ctx, probe, issue_id=issue_id)
        # Branches pushed before the convention existed are still accepted.
        if options.strict_issue_prefix:
            return Reject(NamingConventionViolation(remote, issue_id))
        return UseExisting(remote)

    # Tracking branch was deleted on the server; recreate it as-is.
    if options.strict_issue_prefix and not prefixed:
        return Reject(NamingConventionViolation(remote, issue_id))
    return Create(base=ctx.default_branch, branch=remote)


def _tracking_branch(ctx: ResolutionContext, probe: RemoteStateProbe, options: RuleOptions) -> Outcome:
    remote = ctx.remote_branch
    assert remote is not None
    if not probe.exists_remotely(ctx.project_id, remote):
        return Create(base=ctx.default_branch, branch=remote)
    if ctx.is_default(remote):
        # Never open a merge request from the default branch itself.
        return _create_from_title(ctx, probe)
    if probe.has_open_request(ctx.project_id, remote):
        return Reject(BranchAlreadyInUse(remote))
    return UseExisting(remote)


def _local_branch_for_issue(
    ctx: ResolutionContext, probe: RemoteStateProbe, options: RuleOptions
) -> Outcome:
    local, issue_id = ctx.local_branch, ctx.issue_id
    assert local is not None and issue_id is not None
    if is_issue_prefixed(local, issue_id):
        return Create(base=ctx.default_branch, branch=local)
    if ctx.is_default(local):
        return _create_from_title(ctx, probe, issue_id=issue_id)
    return Reject(NamingConventionViolation(local, issue_id))


def _local_branch(ctx: ResolutionContext, probe: RemoteStateProbe, options: RuleOptions) -> Outcome:
    local = ctx.local_branch
    assert local is not None
    if not ctx.is_default(local):
        return Create(base=ctx.default_branch, branch=local)
    return _create_from_title(ctx, probe)


def _no_branch_information(
    ctx: ResolutionContext, probe: RemoteStateProbe, options: RuleOptions
) -> Outcome:
    return Reject(NoBranchInformation())


RULES: tuple[Rule, ...] = (
    Rule(
        "explicit-source",
        lambda f: f.explicit_source and not f.issue,
        _explicit_source,
    ),
    Rule(
        "explicit-source-for-issue",
        lambda f: f.explicit_source and f.issue,
        _explicit_source_for_issue,
    ),
    Rule(
        "tracking-branch-for-issue",
        lambda f: not f.explicit_source and f.remote_branch and f.issue,
        _tracking_branch_for_issue,
    ),
    Rule(
        "tracking-branch",
        lambda f: not f.explicit_source and f.remote_branch and not f.issue,
        _tracking_branch,
    ),
    Rule(
        "local-branch-for-issue",
        lambda f: not f.explicit_source and not f.remote_branch and f.local_branch and f.issue,
        _local_branch_for_issue,
    ),
    Rule(
        "local-branch",
        lambda f: not f.explicit_source and not f.remote_branch and f.local_branch and not f.issue,
        _local_branch,
    ),
    Rule(
        "no-branch-information",
        lambda f: not f.explicit_source and not f.remote_branch and not f.local_branch,
        _no_branch_information,
    ),
)


def matching_rule(facts: BranchFacts, rules: tuple[Rule, ...] = RULES) -> Rule | None:
    for rule in rules:
        if rule.applies(facts):
            return rule
    return None


def resolve(
    ctx: ResolutionContext,
    probe: RemoteStateProbe,
    *,
    strict_issue_prefix: bool = False,
    rules: tuple[Rule, ...] = RULES,
) -> Outcome:
    """Decide where the merge request's source branch comes from."""
    facts = ctx.facts
    rule = matching_rule(facts, rules)
    if rule is None:
        return UnhandledCombination(facts)
    return rule.decide(ctx, probe, RuleOptions(strict_issue_prefix=strict_issue_prefix))


def apply_outcome(outcome: Outcome, project_id: str, creator: BranchCreator) -> str:
    """Return the branch name an outcome stands for, creating it when required."""
    if isinstance(outcome, UseExisting):
        return outcome.branch
    if isinstance(outcome, Create):
        created = creator.create_branch(project_id, outcome.base, outcome.branch)
        if created != outcome.branch:
            raise BranchCreationMismatch(
                f"Server created branch {created} instead of {outcome.branch}",
                code=ExitCode.REMOTE_ERROR,
                hint="Inspect the project's branches and pass the intended one with --source.",
            )
        return created
    if isinstance(outcome, Reject):
        raise BranchResolutionError(outcome.reason)
    raise InternalInvariantError(
        f"No branch resolution rule covers {outcome.facts!r}",
        code=ExitCode.INTERNAL_ERROR,
        hint="Report this as a bug together with the command line you used.",
    )


@dataclass(frozen=True)
class SourceBranch:
    """A resolved source branch and the decision that produced it."""

    name: str
    rule: str
    outcome: Outcome
    applied: bool


def resolve_source_branch(
    ctx: ResolutionContext,
    probe: RemoteStateProbe,
    creator: BranchCreator,
    *,
    strict_issue_prefix: bool = False,
    dry_run: bool = False,
) -> SourceBranch:
    """Resolve the source branch and create it on the server when the decision says so.

    A branch equal to ``ctx.target_branch`` is refused before anything is created.
    With ``dry_run`` an accepted decision is returned without calling ``creator``;
    rejections still raise.
    """
    rule = matching_rule(ctx.facts)
    rule_name = rule.name if rule else "<none>"
    outcome = resolve(ctx, probe, strict_issue_prefix=strict_issue_prefix)
    logger.debug("Resolved source branch project=%s rule=%s outcome=%s", ctx.project_id, rule_name, outcome)

    if isinstance(outcome, (UseExisting, Create)):
        if outcome.branch == ctx.target_branch:
            raise LabError(
                f"Source and target branch are both {ctx.target_branch}.",
                code=ExitCode.VALIDATION_ERROR,
                hint="Pass a different --target or --source.",
            )
        if dry_run:
            return SourceBranch(outcome.branch, rule_name, outcome, applied=False)

    branch = apply_outcome(outcome, ctx.project_id, creator)
    if isinstance(outcome, Create):
        logger.info("Created branch %s from %s project=%s", branch, outcome.base, ctx.project_id)
    return SourceBranch(branch, rule_name, outcome, applied=True)
