"""Tests for the package logger configuration."""

from __future__ import annotations

import logging

import estate_ledger


def test_resolve_log_settings_defaults():
    log_dir, level = estate_ledger.resolve_log_settings({})

    assert log_dir == estate_ledger.PROJECT_ROOT / ".logs"
    assert level == logging.INFO


def test_resolve_log_settings_overrides(tmp_path):
    environ = {estate_ledger.LOG_DIR_ENV: str(tmp_path), estate_ledger.LOG_LEVEL_ENV: "debug"}

    assert estate_ledger.resolve_log_settings(environ) == (tmp_path, logging.DEBUG)


def test_resolve_log_settings_unknown_level_is_info():
    _, level = estate_ledger.resolve_log_settings({estate_ledger.LOG_LEVEL_ENV: "chatty"})

    assert level == logging.INFO


def test_configure_logging_writes_ledger_file(tmp_path):
    name = "estate_ledger.tests.file_handler"
    logger = estate_ledger.configure_logging(name, {estate_ledger.LOG_DIR_ENV: str(tmp_path / "logs")})
    try:
        logger.warning("Stand %s released", "d1-101")
        for handler in logger.handlers:
            handler.flush()

        assert len(logger.handlers) == 2
        assert estate_ledger.configure_logging(name) is logger
        assert len(logger.handlers) == 2
        text = (tmp_path / "logs" / estate_ledger.LOG_FILE_NAME).read_text(encoding="utf-8")
        assert "| WARNING | Stand d1-101 released" in text
    finally:
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)


def test_configure_logging_survives_unwritable_directory(tmp_path, capsys):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    name = "estate_ledger.tests.stderr_only"

    logger = estate_ledger.configure_logging(name, {estate_ledger.LOG_DIR_ENV: str(blocker)})
    try:
        assert [type(handler) for handler in logger.handlers] == [logging.StreamHandler]
        assert "unavailable" in capsys.readouterr().err
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
