"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import json
import logging as py_logging
import sys
from collections.abc import Callable, Sequence
from pathlib import Path

from labmr import __version__
from labmr.branching.outcomes import Create, UseExisting
from labmr.config import AppConfig, load_config, save_config
from labmr.errors import ConfigError, ExitCode, LabError, user_facing_error
from labmr.git.repo_state import GitRepoState, find_git_root
from labmr.gitlab.client import GitLabClient
from labmr.logging import (
    LOG_LEVELS,
    configure_logging,
    default_log_path,
    effective_level,
    is_valid_level,
    normalize_level,
)
from labmr.mr.create import CreateOptions, CreateResult, MergeRequestApi, RepositoryState, create_merge_request
from labmr.mr.text import Prompt, ask

ApiFactory = Callable[[AppConfig], MergeRequestApi]
RepoFactory = Callable[[Path], GitRepoState]

logger = py_logging.getLogger(__name__)


def _positive_int_type(flag: str) -> Callable[[str], int]:
    def convert(value: str) -> int:
        try:
            number = int(value)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(f"{flag} must be an integer") from exc
        if number < 1:
            raise argparse.ArgumentTypeError(f"{flag} must be a positive integer")
        return number

    return convert


def _non_empty_type(flag: str) -> Callable[[str], str]:
    def convert(value: str) -> str:
        if not value.strip():
            raise argparse.ArgumentTypeError(f"{flag} must not be empty")
        return value.strip()

    return convert


def _log_level_type(value: str) -> str:
    if not is_valid_level(value):
        accepted = ", ".join(LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalize_level(value)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="git-lab", description="Work with GitLab from the command line.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        type=_log_level_type,
        default=None,
        help="Console log level (default: log_level from the config, else WARN)",
    )
    parser.add_argument("--log-file", type=Path, default=None)
    parser.add_argument("--config", type=Path, default=None, help="Path to the TOML config file")

    commands = parser.add_subparsers(dest="command", required=True)

    init = commands.add_parser("init", help="Store GitLab server access in the config file")
    init.add_argument("--host", type=_non_empty_type("--host"), default=None)
    init.add_argument("--token", type=_non_empty_type("--token"), default=None)
    init.add_argument("--no-tls", dest="tls", action="store_false", default=None, help="Talk plain HTTP")
    init.add_argument("-p", "--project-id", type=_non_empty_type("--project-id"), default=None)
    init.add_argument("--no-interactive", action="store_true", help="Never prompt for missing values")

    mr = commands.add_parser("mr", help="Create and manage merge requests")
    mr_commands = mr.add_subparsers(dest="mr_command", required=True)

    create = mr_commands.add_parser(
        "create",
        help="Create a merge request",
        epilog=(
            "Without --source the source branch is inferred from the tracking branch, "
            "then the local branch, creating it on the server when missing. "
            "With --issue-id the branch must start with `<issue-id>-`."
        ),
    )
    create.add_argument("title", nargs="?", default=None, help="Merge request title")
    create.add_argument("-p", "--project-id", type=_non_empty_type("--project-id"), default=None)
    create.add_argument(
        "-i",
        "--issue-id",
        type=_positive_int_type("--issue-id"),
        default=None,
        help="Creates the merge request for this issue",
    )
    create.add_argument("-s", "--source", type=_non_empty_type("--source"), default=None)
    create.add_argument("-t", "--target", type=_non_empty_type("--target"), default=None)
    create.add_argument("-d", "--description", default=None)
    create.add_argument(
        "--strict-issue-prefix",
        action="store_true",
        default=None,
        help="Reject tracking branches without the issue prefix",
    )
    create.add_argument("--remove-source-branch", action="store_true")
    create.add_argument("--no-interactive", action="store_true", help="Never prompt for a title")
    create.add_argument("--dry-run", action="store_true", help="Show the source branch decision only")
    create.add_argument("--json", action="store_true", help="Print the result as JSON")
    return parser


def _default_api(config: AppConfig) -> MergeRequestApi:
    config.require_connection()
    return GitLabClient(config.host, config.token, tls=config.tls)


def _default_repo(cwd: Path) -> GitRepoState:
    return GitRepoState(find_git_root(cwd) or cwd)


def _interactive_prompt(namespace: argparse.Namespace) -> Prompt | None:
    if namespace.no_interactive or not sys.stdin.isatty():
        return None
    return input


def _ask_setting(prompt: Prompt | None, label: str, current: str, *, secret: bool = False) -> str:
    if prompt is None:
        return current
    if not current:
        return ask(prompt, f"{label}: ")
    shown = "********" if secret else current
    return ask(prompt, f"{label} [{shown}]: ", default=current)


def format_result(result: CreateResult, *, as_json: bool) -> str:
    if as_json:
        return json.dumps(result.to_dict(), indent=2, ensure_ascii=False)
    if result.merge_request is not None:
        return result.merge_request.web_url or f"!{result.merge_request.iid}"
    if isinstance(result.outcome, Create):
        return f"Would create branch {result.source_branch} from {result.outcome.base} and merge it into {result.target_branch}"
    if isinstance(result.outcome, UseExisting):
        return f"Would merge existing branch {result.source_branch} into {result.target_branch}"
    return f"Source branch: {result.source_branch}"


def run_init(namespace: argparse.Namespace, *, config: AppConfig, prompt: Prompt | None) -> int:
    config.host = namespace.host or _ask_setting(prompt, "GitLab host", config.host)
    if not config.host:
        raise ConfigError("GitLab host not set.", code=ExitCode.CONFIG_ERROR, hint="Pass --host gitlab.example.com.")
    config.token = namespace.token or _ask_setting(prompt, "Personal access token", config.token, secret=True)
    if not config.token:
        raise ConfigError("GitLab token not set.", code=ExitCode.CONFIG_ERROR, hint="Pass --token <token>.")
    if namespace.tls is not None:
        config.tls = namespace.tls
    if namespace.project_id:
        config.project_id = namespace.project_id

    path = save_config(config, namespace.config)
    logger.info("Saved GitLab settings path=%s host=%s tls=%s", path, config.host, config.tls)
    print(f"Saved GitLab settings to {path}")
    return int(ExitCode.SUCCESS)


def run_mr_create(
    namespace: argparse.Namespace,
    *,
    api_factory: ApiFactory,
    repo: RepositoryState,
    config: AppConfig,
    prompt: Prompt | None,
) -> int:
    strict = config.strict_issue_prefix if namespace.strict_issue_prefix is None else namespace.strict_issue_prefix
    options = CreateOptions(
        title=namespace.title,
        description=namespace.description,
        project_id=namespace.project_id,
        issue_id=namespace.issue_id,
        source_branch=namespace.source,
        target_branch=namespace.target,
        strict_issue_prefix=strict,
        remove_source_branch=namespace.remove_source_branch,
        dry_run=namespace.dry_run,
    )
    result = create_merge_request(
        options,
        api=api_factory(config),
        repo=repo,
        configured_project=config.project_id,
        remote_name=config.remote_name,
        prompt=prompt,
    )
    print(format_result(result, as_json=namespace.json))
    return int(ExitCode.SUCCESS)


def run_cli_flow(
    namespace: argparse.Namespace,
    *,
    api_factory: ApiFactory | None = None,
    repo_factory: RepoFactory | None = None,
    prompt: Prompt | None = None,
    cwd: Path | None = None,
    log_file: Path | None = None,
) -> int:
    if prompt is None:
        prompt = _interactive_prompt(namespace)

    if namespace.command == "init":
        # Only the file itself is edited; git config and environment values stay out of it.
        config = load_config(namespace.config, environ={})
        configure_logging(effective_level(namespace.log_level, config.log_level), log_file=log_file)
        return run_init(namespace, config=config, prompt=prompt)

    repo = (repo_factory or _default_repo)(cwd or Path.cwd())
    config = load_config(namespace.config, git_entries=lambda: repo.config_entries(r"^gitlab\."))
    configure_logging(effective_level(namespace.log_level, config.log_level), log_file=log_file)
    logger.debug("Loaded settings host=%s project=%s log_level=%s", config.host, config.project_id, config.log_level)
    return run_mr_create(
        namespace,
        api_factory=api_factory or _default_api,
        repo=repo,
        config=config,
        prompt=prompt,
    )


def main(
    argv: Sequence[str] | None = None,
    *,
    api_factory: ApiFactory | None = None,
    repo_factory: RepoFactory | None = None,
    prompt: Prompt | None = None,
    cwd: Path | None = None,
) -> int:
    log_path = default_log_path()
    root = configure_logging(log_file=log_path)
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            root.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()
    root = configure_logging(namespace.log_level, log_file=log_path)

    try:
        root.debug("Starting command %s", namespace.command)
        return run_cli_flow(
            namespace,
            api_factory=api_factory,
            repo_factory=repo_factory,
            prompt=prompt,
            cwd=cwd,
            log_file=log_path,
        )
    except LabError as exc:
        root.info(
            "Handled LabError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=root.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except KeyboardInterrupt:
        print(user_facing_error("Interrupted"), file=sys.stderr)
        return int(ExitCode.RUNTIME_ERROR)
    except Exception:
        root.exception("Unhandled exception in CLI entrypoint")
        try:
            hint = f"Inspect logs: {log_path}"
            print(user_facing_error("Unexpected runtime failure", hint=hint), file=sys.stderr)
        except Exception:
            pass
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
