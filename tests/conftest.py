from __future__ import annotations

from pathlib import Path

import pytest


class FakeRemote:
    """In-memory project: branch names on the server and branches with open merge requests."""

    def __init__(self, branches: set[str] | None = None, open_requests: set[str] | None = None) -> None:
        self.branches = set(branches or ())
        self.open_requests = set(open_requests or ())
        self.calls: list[tuple[str, str]] = []
        self.created: list[tuple[str, str]] = []

    def exists_remotely(self, project_id: str, branch: str) -> bool:
        self.calls.append(("exists", branch))
        return branch in self.branches

    def has_open_request(self, project_id: str, branch: str) -> bool:
        self.calls.append(("open", branch))
        return branch in self.open_requests

    def create_branch(self, project_id: str, base: str, branch: str) -> str:
        self.created.append((base, branch))
        self.branches.add(branch)
        return branch


@pytest.fixture
def fake_remote_factory() -> type[FakeRemote]:
    return FakeRemote


@pytest.hookimpl(trylast=True)
def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    del config
    for item in items:
        path = Path(str(getattr(item, "path", item.fspath)))
        if "integration" in path.parts:
            item.add_marker(pytest.mark.integration)
            item.add_marker(pytest.mark.slow)
