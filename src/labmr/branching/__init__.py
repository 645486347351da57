"""Source-branch resolution domain package."""

from .context import BranchFacts, ResolutionContext
from .naming import is_issue_prefixed, issue_branch_name, slugify
from .outcomes import (
    BranchAlreadyInUse,
    BranchResolutionError,
    Create,
    NamingConventionViolation,
    NoBranchInformation,
    Outcome,
    Reject,
    TargetBranchMissing,
    UnhandledCombination,
    UnusableTitle,
    UseExisting,
)
from .probes import BranchCreator, CommitMessage, RemoteStateProbe, RepoStateProbe
from .resolver import RULES, Rule, SourceBranch, apply_outcome, matching_rule, resolve, resolve_source_branch

__all__ = [
    "apply_outcome",
    "BranchAlreadyInUse",
    "BranchCreator",
    "BranchFacts",
    "BranchResolutionError",
    "CommitMessage",
    "Create",
    "is_issue_prefixed",
    "issue_branch_name",
    "matching_rule",
    "NamingConventionViolation",
    "NoBranchInformation",
    "Outcome",
    "Reject",
    "RemoteStateProbe",
    "RepoStateProbe",
    "resolve",
    "resolve_source_branch",
    "ResolutionContext",
    "Rule",
    "RULES",
    "slugify",
    "SourceBranch",
    "TargetBranchMissing",
    "UnhandledCombination",
    "UnusableTitle",
    "UseExisting",
]
