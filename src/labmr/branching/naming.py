"""Branch naming convention helpers."""

from __future__ import annotations

import re
import unicodedata

MAX_SLUG_LENGTH = 60

_UNSAFE_RUN = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """Turn free text into a lowercase, dash-separated branch component.

    Returns an empty string when nothing usable is left; callers decide what
    an empty slug means for them.
    """
    normalized = unicodedata.normalize("NFKD", text)
    ascii_only = normalized.encode("ascii", "ignore").decode("ascii")
    slug = _UNSAFE_RUN.sub("-", ascii_only.lower()).strip("-")
    if len(slug) > MAX_SLUG_LENGTH:
        slug = slug[:MAX_SLUG_LENGTH].rstrip("-")
    return slug


def issue_prefix(issue_id: int) -> str:
    return f"{issue_id}-"


def is_issue_prefixed(branch: str, issue_id: int) -> bool:
    return branch.startswith(issue_prefix(issue_id))


def issue_branch_name(issue_id: int, title: str) -> str:
    slug = slugify(title)
    if not slug:
        return ""
    return f"{issue_prefix(issue_id)}{slug}"
