"""Connection settings loaded from TOML, git config and the environment.

Later sources override earlier ones:

* ``~/.config/labmr/config.toml``
* ``gitlab.*`` entries visible to ``git config`` (system, global, repository)
* ``GITLAB_HOST``, ``GITLAB_TOKEN``, ``GITLAB_TLS`` and ``GITLAB_PROJECT_ID``
"""

from __future__ import annotations

import os
import sys
from collections.abc import Callable, Mapping
from contextlib import suppress
from pathlib import Path

from pydantic import BaseModel, ConfigDict, field_validator

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

from labmr.errors import ConfigError, ExitCode
from labmr.logging import DEFAULT_LEVEL, is_valid_level, normalize_level

DEFAULT_CONFIG_PATH = Path("~/.config/labmr/config.toml").expanduser()
DEFAULT_REMOTE_NAME = "origin"

HOST_ENV = "GITLAB_HOST"
TOKEN_ENV = "GITLAB_TOKEN"
TLS_ENV = "GITLAB_TLS"
PROJECT_ENV = "GITLAB_PROJECT_ID"

_GIT_CONFIG_KEYS = {
    "gitlab.host": "host",
    "gitlab.token": "token",
    "gitlab.tls": "tls",
    "gitlab.projectid": "project_id",
    "gitlab.strictissueprefix": "strict_issue_prefix",
    "gitlab.remote": "remote_name",
    "gitlab.loglevel": "log_level",
}


class AppConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    host: str = ""
    token: str = ""
    tls: bool = True
    project_id: str = ""
    strict_issue_prefix: bool = False
    remote_name: str = DEFAULT_REMOTE_NAME
    log_level: str = DEFAULT_LEVEL

    @field_validator("host", "token", "project_id")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("remote_name")
    @classmethod
    def _validate_remote(cls, value: str) -> str:
        value = value.strip()
        if not value or any(char.isspace() for char in value):
            raise ValueError(f"Invalid remote name: {value!r}")
        return value

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        if not is_valid_level(value):
            raise ValueError(f"Unknown log level: {value!r}")
        return normalize_level(value)

    def require_connection(self) -> None:
        if not self.host:
            raise ConfigError(
                "GitLab host not set.",
                code=ExitCode.CONFIG_ERROR,
                hint=f"Run `git-lab init` or set {HOST_ENV}.",
            )
        if not self.token:
            raise ConfigError(
                "GitLab token not set.",
                code=ExitCode.CONFIG_ERROR,
                hint=f"Run `git-lab init` or set {TOKEN_ENV}.",
            )


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def parse_bool(value: object) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "yes", "on", "1"}:
            return True
        if normalized in {"false", "no", "off", "0"}:
            return False
    return None


def _apply(cfg: AppConfig, raw: Mapping[str, object]) -> None:
    for field in ("host", "token", "remote_name", "log_level"):
        value = raw.get(field)
        if isinstance(value, str) and value.strip():
            with suppress(ValueError):
                setattr(cfg, field, value)

    project_id = raw.get("project_id")
    if isinstance(project_id, int) and not isinstance(project_id, bool):
        project_id = str(project_id)
    if isinstance(project_id, str) and project_id.strip():
        cfg.project_id = project_id

    for field in ("tls", "strict_issue_prefix"):
        flag = parse_bool(raw.get(field))
        if flag is not None:
            setattr(cfg, field, flag)


def _read_toml(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        with path.open("rb") as handle:
            raw = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError):
        return {}
    section = raw.get("gitlab", raw)
    return section if isinstance(section, dict) else {}


def git_config_overrides(entries: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in entries.items():
        field = _GIT_CONFIG_KEYS.get(key.lower())
        if field is not None:
            overrides[field] = value
    return overrides


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, object]:
    env = os.environ if environ is None else environ
    overrides: dict[str, object] = {}
    for name, field in ((HOST_ENV, "host"), (TOKEN_ENV, "token"), (PROJECT_ENV, "project_id")):
        value = env.get(name, "").strip()
        if value:
            overrides[field] = value
    if TLS_ENV in env:
        overrides["tls"] = env[TLS_ENV].strip().upper() == "TRUE"
    return overrides


def load_config(
    path: str | Path | None = None,
    *,
    git_entries: Callable[[], Mapping[str, str]] | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    cfg = AppConfig()
    _apply(cfg, _read_toml(get_config_path(path)))
    if git_entries is not None:
        _apply(cfg, git_config_overrides(git_entries()))
    _apply(cfg, env_overrides(environ))
    return cfg


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _toml_scalar(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return f'"{_escape(value)}"'
    raise TypeError(f"Unsupported TOML scalar type: {type(value)!r}")


def save_config(config: AppConfig, path: str | Path | None = None) -> Path:
    resolved = get_config_path(path)
    resolved.parent.mkdir(parents=True, exist_ok=True)
    lines = [
        "[gitlab]",
        f"host = {_toml_scalar(config.host)}",
        f"token = {_toml_scalar(config.token)}",
        f"tls = {_toml_scalar(config.tls)}",
        f"project_id = {_toml_scalar(config.project_id)}",
        f"strict_issue_prefix = {_toml_scalar(config.strict_issue_prefix)}",
        f"remote_name = {_toml_scalar(config.remote_name)}",
        f"log_level = {_toml_scalar(config.log_level)}",
    ]
    resolved.write_text("\n".join(lines) + "\n", encoding="utf-8")
    with suppress(OSError):
        resolved.chmod(0o600)
    return resolved
