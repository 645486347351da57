"""Local repository state read through the git command line."""

from __future__ import annotations

import logging as py_logging
import re
import subprocess
from pathlib import Path
from typing import Protocol

from labmr.branching.probes import CommitMessage
from labmr.errors import ExitCode, ProbeError

logger = py_logging.getLogger(__name__)

DOTGIT = ".git"

_SCP_REMOTE = re.compile(r"^(?:[^@/]+@)?(?P<host>[^:/]+):(?P<path>.+)$")


class SubprocessRunner(Protocol):
    def __call__(
        self,
        args: list[str],
        *,
        capture_output: bool = False,
        text: bool = False,
        check: bool = False,
    ) -> subprocess.CompletedProcess[str]: ...


def find_git_root(start: str | Path) -> Path | None:
    """Walk up from ``start`` to the first directory holding a ``.git`` entry."""
    current = Path(start).resolve()
    for candidate in (current, *current.parents):
        if (candidate / DOTGIT).exists():
            return candidate
    return None


def strip_remote_prefix(tracking: str, remotes: list[str]) -> str:
    for remote in sorted(remotes, key=len, reverse=True):
        prefix = f"{remote}/"
        if tracking.startswith(prefix):
            return tracking[len(prefix) :]
    return tracking


def project_path_from_remote_url(url: str) -> str | None:
    """Extract ``group/project`` from an https, ssh or scp-style remote URL."""
    value = url.strip()
    if not value:
        return None
    if "://" in value:
        path = value.split("://", 1)[1]
        if "/" not in path:
            return None
        path = path.split("/", 1)[1]
    else:
        match = _SCP_REMOTE.match(value)
        if match is None:
            return None
        path = match.group("path")
    path = path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    if "/" not in path:
        return None
    return path


class GitRepoState:
    """Answers point queries about the checked-out repository."""

    def __init__(self, repo_path: str | Path, runner: SubprocessRunner = subprocess.run) -> None:
        self.repo_path = Path(repo_path)
        self._runner = runner

    def _run_git(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        cmd = ["git", "-C", str(self.repo_path), *args]
        try:
            return self._runner(cmd, capture_output=True, text=True, check=False)
        except OSError as exc:
            logger.error("Failed to execute git repo=%s: %s", self.repo_path, exc)
            raise ProbeError(
                "Failed to execute git.",
                code=ExitCode.GIT_ERROR,
                hint="Make sure git is installed and on PATH.",
            ) from exc

    def current_local_branch(self) -> str | None:
        result = self._run_git(["symbolic-ref", "--short", "-q", "HEAD"])
        branch = result.stdout.strip() if result.returncode == 0 else ""
        if not branch:
            logger.debug("No local branch checked out repo=%s", self.repo_path)
            return None
        return branch

    def remotes(self) -> list[str]:
        result = self._run_git(["remote"])
        if result.returncode != 0:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def current_tracking_branch(self) -> str | None:
        result = self._run_git(["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"])
        tracking = result.stdout.strip() if result.returncode == 0 else ""
        if not tracking:
            logger.debug("No tracking branch configured repo=%s", self.repo_path)
            return None
        return strip_remote_prefix(tracking, self.remotes()) or None

    def head_commit_message(self) -> CommitMessage | None:
        result = self._run_git(["log", "-1", "--format=%B"])
        if result.returncode != 0 or not result.stdout.strip():
            return None
        subject, _, rest = result.stdout.strip().partition("\n")
        body = rest.strip()
        return CommitMessage(subject=subject.strip(), body=body or None)

    def remote_url(self, remote: str = "origin") -> str | None:
        result = self._run_git(["remote", "get-url", remote])
        url = result.stdout.strip() if result.returncode == 0 else ""
        return url or None

    def config_entries(self, pattern: str) -> dict[str, str]:
        result = self._run_git(["config", "--get-regexp", pattern])
        if result.returncode != 0:
            return {}
        entries: dict[str, str] = {}
        for line in result.stdout.splitlines():
            key, _, value = line.strip().partition(" ")
            if key:
                entries[key.lower()] = value.strip()
        return entries
