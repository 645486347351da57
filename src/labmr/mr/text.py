"""Title and description for new merge requests."""

from __future__ import annotations

import re
from collections.abc import Callable

from labmr.branching.probes import CommitMessage
from labmr.errors import ExitCode, LabError
from labmr.gitlab.client import Issue

Prompt = Callable[[str], str]


def ask(prompt: Prompt, question: str, *, default: str | None = None) -> str:
    """Ask until a non-empty answer arrives, or return ``default`` on an empty one.

    Closed input is a usage error.
    """
    while True:
        try:
            answer = prompt(question).strip()
        except EOFError as exc:
            raise LabError(
                "Input ended before an answer was given.",
                code=ExitCode.INVALID_ARGS,
                hint="Pass the value on the command line or use --no-interactive.",
            ) from exc
        if answer:
            return answer
        if default:
            return default


def issue_title(issue: Issue) -> str:
    return f'Resolve "{issue.title.strip()}"'


def closing_reference(issue_id: int) -> str:
    return f"Closes #{issue_id}"


def resolve_title(
    explicit: str | None,
    *,
    issue: Issue | None = None,
    commit: CommitMessage | None = None,
    prompt: Prompt | None = None,
) -> str:
    """Pick the first usable title: flag, linked issue, HEAD commit, then the prompt."""
    if explicit and explicit.strip():
        return explicit.strip()
    if issue is not None and issue.title.strip():
        return issue_title(issue)
    if commit is not None and commit.subject.strip():
        return commit.subject.strip()
    if prompt is None:
        raise LabError(
            "A merge request title is required.",
            code=ExitCode.INVALID_ARGS,
            hint="Pass the title as an argument or link an issue with --issue-id.",
        )
    return ask(prompt, "Title: ")


def resolve_description(
    explicit: str | None,
    *,
    issue_id: int | None = None,
    commit: CommitMessage | None = None,
) -> str:
    if explicit is not None:
        description = explicit.strip()
    elif commit is not None and commit.body:
        description = commit.body.strip()
    else:
        description = ""

    if issue_id is not None:
        reference = closing_reference(issue_id)
        if not re.search(rf"\b{re.escape(reference)}\b", description):
            description = f"{description}\n\n{reference}" if description else reference
    return description
