from __future__ import annotations

import io
import logging as py_logging
from pathlib import Path

import pytest

import labmr.logging as lab_logging


@pytest.fixture(autouse=True)
def _reset_labmr_logger():
    yield
    logger = py_logging.getLogger(lab_logging.ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def test_package_module_loggers_reach_the_console() -> None:
    stream = io.StringIO()
    lab_logging.configure_logging("INFO", stream)

    py_logging.getLogger("labmr.branching.resolver").info("Created branch 42-fix from main project=7")

    assert stream.getvalue() == "INFO labmr.branching.resolver: Created branch 42-fix from main project=7\n"


def test_loggers_outside_the_package_are_not_captured() -> None:
    stream = io.StringIO()
    lab_logging.configure_logging("DEBUG", stream)

    py_logging.getLogger("urllib3.connectionpool").warning("unrelated")

    assert stream.getvalue() == ""


def test_file_keeps_debug_records_the_console_filters(tmp_path: Path) -> None:
    stream = io.StringIO()
    log_file = tmp_path / "logs" / "labmr.log"
    lab_logging.configure_logging("WARN", stream, log_file=log_file)

    py_logging.getLogger("labmr.gitlab.client").debug("GitLab response method=GET path=/projects/7 status=200")

    assert stream.getvalue() == ""
    line = log_file.read_text(encoding="utf-8").strip()
    assert " DEBUG labmr.gitlab.client:" in line
    assert line.endswith("status=200")
    assert line[:4].isdigit()


def test_console_level_alone_decides_without_a_log_file() -> None:
    logger = lab_logging.configure_logging("ERROR", io.StringIO())

    assert logger.level == py_logging.ERROR
    assert not py_logging.getLogger("labmr.mr.create").isEnabledFor(py_logging.INFO)


@pytest.mark.parametrize(
    ("candidates", "expected"),
    [
        (("error", "DEBUG"), "ERROR"),
        ((None, "debug"), "DEBUG"),
        (("warning", None), "WARN"),
        (("loud", "info"), "INFO"),
        ((None, None), "WARN"),
    ],
)
def test_effective_level_takes_first_valid_candidate(candidates, expected: str) -> None:
    assert lab_logging.effective_level(*candidates) == expected


def test_unknown_level_uses_default_console_level() -> None:
    logger = lab_logging.configure_logging("loud", io.StringIO())

    assert logger.handlers[0].level == py_logging.WARNING


def test_reconfiguring_closes_previous_file_handler(tmp_path: Path) -> None:
    first = lab_logging.configure_logging("WARN", io.StringIO(), log_file=tmp_path / "a.log")
    old_file_handler = next(h for h in first.handlers if isinstance(h, py_logging.FileHandler))

    second = lab_logging.configure_logging("DEBUG", io.StringIO(), log_file=tmp_path / "b.log")

    assert len(second.handlers) == 2
    assert old_file_handler not in second.handlers
    assert old_file_handler.stream is None


def test_unwritable_log_file_leaves_console_only(monkeypatch, tmp_path: Path) -> None:
    def refuse(*args: object, **kwargs: object) -> py_logging.Handler:
        raise PermissionError("read-only file system")

    monkeypatch.setattr(lab_logging.py_logging, "FileHandler", refuse)

    logger = lab_logging.configure_logging("INFO", io.StringIO(), log_file=tmp_path / "labmr.log")

    assert [type(h) for h in logger.handlers] == [py_logging.StreamHandler]
    assert logger.level == py_logging.INFO


def test_default_log_path_lives_under_home(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))

    assert lab_logging.default_log_path() == (tmp_path / ".config" / "labmr" / "logs" / "labmr.log").resolve()
