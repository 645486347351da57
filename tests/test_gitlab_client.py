from __future__ import annotations

import json

import pytest

from labmr.errors import ExitCode, ProbeError
from labmr.gitlab.client import GitLabClient, MergeRequestDraft, TransientRemoteError
from labmr.retry import NO_RETRY, RetryPolicy

Call = tuple[str, str, dict[str, str], bytes | None]


def _client(responses: dict[tuple[str, str], tuple[int, str]], calls: list[Call], **kwargs: object) -> GitLabClient:
    def requester(
        method: str, url: str, headers: dict[str, str], body: bytes | None = None
    ) -> tuple[int, str, dict[str, str]]:
        calls.append((method, url, headers, body))
        path = url.split("/api/v4", 1)[1]
        status, payload = responses.get((method, path), (404, '{"message":"404 Not Found"}'))
        return status, payload, {}

    kwargs.setdefault("retry_policy", NO_RETRY)
    return GitLabClient("gitlab.example.com", "glpat-token", requester=requester, **kwargs)


def test_requests_use_private_token_and_https() -> None:
    calls: list[Call] = []
    client = _client({("GET", "/projects/12"): (200, '{"id":12,"path_with_namespace":"g/p","default_branch":"main"}')}, calls)

    project = client.get_project("12")

    assert project.default_branch == "main"
    assert project.path_with_namespace == "g/p"
    method, url, headers, _ = calls[0]
    assert (method, url) == ("GET", "https://gitlab.example.com/api/v4/projects/12")
    assert headers["PRIVATE-TOKEN"] == "glpat-token"


def test_insecure_host_and_scheme_prefix_are_normalized() -> None:
    client = GitLabClient("https://gitlab.local/", "t", tls=False, requester=lambda *a, **k: (200, "{}", {}))

    assert client.base_url == "http://gitlab.local/api/v4"


def test_project_path_is_url_encoded() -> None:
    calls: list[Call] = []
    client = _client(
        {("GET", "/projects/group%2Fsub%2Fapp"): (200, '{"id":3,"path_with_namespace":"group/sub/app","default_branch":"trunk"}')},
        calls,
    )

    assert client.get_project("group/sub/app").default_branch == "trunk"


def test_project_without_default_branch_is_an_error() -> None:
    client = _client({("GET", "/projects/12"): (200, '{"id":12,"default_branch":null}')}, [])

    with pytest.raises(ProbeError, match="no default branch"):
        client.get_project("12")


def test_exists_remotely_maps_404_to_false() -> None:
    client = _client({("GET", "/projects/12/repository/branches/feature%2Fx"): (200, '{"name":"feature/x"}')}, [])

    assert client.exists_remotely("12", "feature/x") is True
    assert client.exists_remotely("12", "missing") is False


def test_has_open_request_checks_opened_and_locked_states() -> None:
    calls: list[Call] = []
    client = _client(
        {
            ("GET", "/projects/12/merge_requests?source_branch=feature&state=opened"): (200, "[]"),
            ("GET", "/projects/12/merge_requests?source_branch=feature&state=locked"): (200, '[{"iid":4}]'),
            ("GET", "/projects/12/merge_requests?source_branch=other&state=opened"): (200, "[]"),
            ("GET", "/projects/12/merge_requests?source_branch=other&state=locked"): (200, "[]"),
        },
        calls,
    )

    assert client.has_open_request("12", "feature") is True
    assert client.has_open_request("12", "other") is False
    assert len(calls) == 4


def test_create_branch_posts_branch_and_ref() -> None:
    calls: list[Call] = []
    client = _client({("POST", "/projects/12/repository/branches"): (201, '{"name":"42-fix"}')}, calls)

    assert client.create_branch("12", "main", "42-fix") == "42-fix"
    assert json.loads(calls[0][3] or b"{}") == {"branch": "42-fix", "ref": "main"}


def test_create_merge_request_sends_draft_payload() -> None:
    calls: list[Call] = []
    client = _client(
        {
            ("POST", "/projects/12/merge_requests"): (
                201,
                '{"iid":9,"title":"Fix","source_branch":"fix","target_branch":"main","web_url":"https://gitlab.example.com/g/p/-/merge_requests/9"}',
            )
        },
        calls,
    )
    draft = MergeRequestDraft(source_branch="fix", target_branch="main", title="Fix", remove_source_branch=True)

    merge_request = client.create_merge_request("12", draft)

    assert merge_request.iid == 9
    assert merge_request.web_url.endswith("/merge_requests/9")
    assert json.loads(calls[0][3] or b"{}") == {
        "source_branch": "fix",
        "target_branch": "main",
        "title": "Fix",
        "remove_source_branch": True,
    }


def test_get_issue() -> None:
    client = _client({("GET", "/projects/12/issues/42"): (200, '{"iid":42,"title":"Broken login"}')}, [])

    issue = client.get_issue("12", 42)

    assert (issue.iid, issue.title) == (42, "Broken login")


@pytest.mark.parametrize(
    ("status", "code", "text"),
    [
        (401, ExitCode.CONFIG_ERROR, "token"),
        (403, ExitCode.REMOTE_ERROR, "denied"),
        (404, ExitCode.REMOTE_ERROR, "not found"),
        (409, ExitCode.REMOTE_ERROR, "HTTP 409"),
    ],
)
def test_error_statuses_are_classified(status: int, code: ExitCode, text: str) -> None:
    client = _client({("GET", "/projects/12"): (status, '{"message":"nope"}')}, [])

    with pytest.raises(ProbeError) as exc:
        client.get_project("12")

    assert exc.value.code == code
    assert text in exc.value.message
    assert exc.value.hint == "nope"


def test_server_errors_are_retried_then_surface() -> None:
    calls: list[Call] = []
    client = _client(
        {("GET", "/projects/12"): (502, "bad gateway")},
        calls,
        retry_policy=RetryPolicy(max_attempts=3, initial_backoff_seconds=0.0),
    )

    with pytest.raises(ProbeError, match="could not be reached"):
        client.get_project("12")
    assert len(calls) == 3


def test_connection_failure_recovers_on_retry() -> None:
    attempts = {"count": 0}

    def requester(method: str, url: str, headers: dict[str, str], body: bytes | None = None):
        attempts["count"] += 1
        if attempts["count"] == 1:
            raise TransientRemoteError("connection reset")
        return 200, '{"name":"main"}', {}

    client = GitLabClient(
        "gitlab.example.com",
        "t",
        requester=requester,
        retry_policy=RetryPolicy(max_attempts=2, initial_backoff_seconds=0.0),
    )

    assert client.exists_remotely("12", "main") is True
    assert attempts["count"] == 2


def test_invalid_json_is_reported() -> None:
    client = _client({("GET", "/projects/12/issues/1"): (200, "<html>")}, [])

    with pytest.raises(ProbeError, match="unreadable"):
        client.get_issue("12", 1)
