from __future__ import annotations

import logging

import pytest
from rich.logging import RichHandler

from dotsync.logging_setup import LOG_LEVEL_ENV_VAR, setup_logging


def test_default_level_is_warning() -> None:
    setup_logging()

    logger = logging.getLogger("dotsync")
    assert logger.level == logging.WARNING
    assert [type(handler) for handler in logger.handlers] == [RichHandler]


def test_environment_overrides_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(LOG_LEVEL_ENV_VAR, "info")
    setup_logging()

    assert logging.getLogger("dotsync").level == logging.INFO


def test_debug_wins_and_setup_is_repeatable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(LOG_LEVEL_ENV_VAR, "ERROR")
    setup_logging(debug=True)
    setup_logging(debug=True)

    logger = logging.getLogger("dotsync")
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
    assert logging.getLogger("dotsync.sync").getEffectiveLevel() == logging.DEBUG
