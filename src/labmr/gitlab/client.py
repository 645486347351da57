"""GitLab REST API (v4) client using a personal access token."""

from __future__ import annotations

import json
import logging as py_logging
from dataclasses import dataclass
from typing import Protocol
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from pydantic import BaseModel, ConfigDict

from labmr.errors import ExitCode, ProbeError
from labmr.retry import RecoverableError, RetryPolicy, run_with_retry

logger = py_logging.getLogger(__name__)

OPEN_REQUEST_STATES = ("opened", "locked")

HttpResponse = tuple[int, str, dict[str, str]]


class HttpRequester(Protocol):
    def __call__(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: bytes | None = None,
    ) -> HttpResponse: ...


class TransientRemoteError(RecoverableError):
    pass


@dataclass(frozen=True)
class Project:
    id: int
    path_with_namespace: str
    default_branch: str
    web_url: str = ""


@dataclass(frozen=True)
class Issue:
    iid: int
    title: str
    web_url: str = ""


@dataclass(frozen=True)
class MergeRequest:
    iid: int
    title: str
    source_branch: str
    target_branch: str
    web_url: str = ""

    def to_dict(self) -> dict[str, object]:
        return {
            "iid": self.iid,
            "title": self.title,
            "source_branch": self.source_branch,
            "target_branch": self.target_branch,
            "web_url": self.web_url,
        }


class MergeRequestDraft(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_branch: str
    target_branch: str
    title: str
    description: str = ""
    remove_source_branch: bool = False

    def payload(self) -> dict[str, object]:
        data: dict[str, object] = {
            "source_branch": self.source_branch,
            "target_branch": self.target_branch,
            "title": self.title,
        }
        if self.description:
            data["description"] = self.description
        if self.remove_source_branch:
            data["remove_source_branch"] = True
        return data


def _default_requester(
    method: str,
    url: str,
    headers: dict[str, str],
    body: bytes | None = None,
) -> HttpResponse:
    request = Request(url, data=body, headers=headers, method=method)
    try:
        with urlopen(request, timeout=20) as response:  # nosec B310
            status = int(getattr(response, "status", response.getcode()))
            payload = response.read().decode("utf-8")
            response_headers = {key.lower(): value for key, value in response.headers.items()}
            return status, payload, response_headers
    except HTTPError as exc:
        payload = ""
        if exc.fp is not None:
            payload = exc.read().decode("utf-8", errors="replace")
        response_headers = {key.lower(): value for key, value in (exc.headers.items() if exc.headers else [])}
        return exc.code, payload, response_headers
    except URLError as exc:
        raise TransientRemoteError(str(exc.reason) or "connection failed") from exc


def _extract_message(payload: str) -> str:
    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError:
        return ""
    if isinstance(parsed, dict):
        for key in ("message", "error"):
            message = parsed.get(key)
            if isinstance(message, str):
                return message
            if isinstance(message, (dict, list)):
                return json.dumps(message, ensure_ascii=True)
    return ""


def encode_project_id(project_id: str) -> str:
    return quote(str(project_id).strip(), safe="")


class GitLabClient:
    """Thin wrapper over the endpoints merge request creation needs."""

    def __init__(
        self,
        host: str,
        token: str,
        *,
        tls: bool = True,
        requester: HttpRequester | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        host_value = host.strip().rstrip("/")
        if "://" in host_value:
            host_value = host_value.split("://", 1)[1]
        scheme = "https" if tls else "http"
        self.base_url = f"{scheme}://{host_value}/api/v4"
        self._token = token.strip()
        self._requester = requester or _default_requester
        self._retry_policy = retry_policy or RetryPolicy()

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "PRIVATE-TOKEN": self._token,
            "User-Agent": "labmr",
        }

    def _request(
        self,
        method: str,
        path: str,
        *,
        query: dict[str, str] | None = None,
        payload: dict[str, object] | None = None,
        allow_404: bool = False,
    ) -> object | None:
        url = f"{self.base_url}{path}"
        if query:
            url = f"{url}?{urlencode(query)}"
        body = json.dumps(payload).encode("utf-8") if payload is not None else None

        def attempt() -> HttpResponse:
            status, text, headers = self._requester(method, url, self._headers(), body)
            if status >= 500:
                raise TransientRemoteError(f"HTTP {status} from {method} {path}")
            return status, text, headers

        try:
            status, text, _ = run_with_retry(attempt, policy=self._retry_policy)
        except TransientRemoteError as exc:
            logger.error("GitLab request failed method=%s path=%s: %s", method, path, exc)
            raise ProbeError(
                "GitLab server could not be reached.",
                code=ExitCode.REMOTE_ERROR,
                hint=str(exc) or "Check the host setting and your network connection.",
            ) from exc

        logger.debug("GitLab response method=%s path=%s status=%s", method, path, status)
        if allow_404 and status == 404:
            return None
        if 200 <= status < 300:
            if not text.strip():
                return {}
            try:
                return json.loads(text)
            except json.JSONDecodeError as exc:
                raise ProbeError(
                    f"GitLab returned an unreadable response for {path}.",
                    code=ExitCode.REMOTE_ERROR,
                    hint="Try again in a moment.",
                ) from exc

        message = _extract_message(text)
        logger.error("GitLab error method=%s path=%s status=%s message=%s", method, path, status, message)
        if status == 401:
            raise ProbeError(
                "GitLab token is invalid or expired.",
                code=ExitCode.CONFIG_ERROR,
                hint=message or "Set a valid token with GITLAB_TOKEN or `git config gitlab.token`.",
            )
        if status == 403:
            raise ProbeError(
                "GitLab denied access.",
                code=ExitCode.REMOTE_ERROR,
                hint=message or "Check the token's scopes and your project permissions.",
            )
        if status == 404:
            raise ProbeError(
                f"GitLab resource not found: {path}",
                code=ExitCode.REMOTE_ERROR,
                hint=message or "Check the project id and that your token can see it.",
            )
        raise ProbeError(
            f"GitLab request failed (HTTP {status}).",
            code=ExitCode.REMOTE_ERROR,
            hint=message or "Inspect the request parameters.",
        )

    def _expect_dict(self, data: object | None, what: str) -> dict[str, object]:
        if not isinstance(data, dict):
            raise ProbeError(
                f"GitLab returned an unexpected {what} response.",
                code=ExitCode.REMOTE_ERROR,
                hint="Check the host points at a GitLab instance.",
            )
        return data

    def get_project(self, project_id: str) -> Project:
        data = self._expect_dict(
            self._request("GET", f"/projects/{encode_project_id(project_id)}"),
            "project",
        )
        default_branch = data.get("default_branch")
        if not isinstance(default_branch, str) or not default_branch:
            raise ProbeError(
                f"Project {project_id} has no default branch.",
                code=ExitCode.REMOTE_ERROR,
                hint="Push an initial commit to the project first.",
            )
        return Project(
            id=int(data.get("id", 0) or 0),
            path_with_namespace=str(data.get("path_with_namespace", project_id)),
            default_branch=default_branch,
            web_url=str(data.get("web_url", "")),
        )

    def exists_remotely(self, project_id: str, branch: str) -> bool:
        path = f"/projects/{encode_project_id(project_id)}/repository/branches/{quote(branch, safe='')}"
        return self._request("GET", path, allow_404=True) is not None

    def has_open_request(self, project_id: str, branch: str) -> bool:
        path = f"/projects/{encode_project_id(project_id)}/merge_requests"
        for state in OPEN_REQUEST_STATES:
            entries = self._request("GET", path, query={"source_branch": branch, "state": state})
            if isinstance(entries, list) and entries:
                logger.debug("Found %s merge request on branch=%s project=%s", state, branch, project_id)
                return True
        return False

    def create_branch(self, project_id: str, base: str, branch: str) -> str:
        data = self._expect_dict(
            self._request(
                "POST",
                f"/projects/{encode_project_id(project_id)}/repository/branches",
                payload={"branch": branch, "ref": base},
            ),
            "branch",
        )
        name = data.get("name")
        return name if isinstance(name, str) else ""

    def get_issue(self, project_id: str, issue_id: int) -> Issue:
        data = self._expect_dict(
            self._request("GET", f"/projects/{encode_project_id(project_id)}/issues/{int(issue_id)}"),
            "issue",
        )
        return Issue(
            iid=int(data.get("iid", issue_id) or issue_id),
            title=str(data.get("title", "")),
            web_url=str(data.get("web_url", "")),
        )

    def create_merge_request(self, project_id: str, draft: MergeRequestDraft) -> MergeRequest:
        data = self._expect_dict(
            self._request(
                "POST",
                f"/projects/{encode_project_id(project_id)}/merge_requests",
                payload=draft.payload(),
            ),
            "merge request",
        )
        return MergeRequest(
            iid=int(data.get("iid", 0) or 0),
            title=str(data.get("title", draft.title)),
            source_branch=str(data.get("source_branch", draft.source_branch)),
            target_branch=str(data.get("target_branch", draft.target_branch)),
            web_url=str(data.get("web_url", "")),
        )
