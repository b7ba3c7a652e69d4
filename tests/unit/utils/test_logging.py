"""Tests for the package logging helpers."""

import logging

from sopforge.utils.logging import ROOT_LOGGER_NAME, get_logger, set_log_level


def test_module_loggers_live_under_the_package():
    assert get_logger("sopforge.pipeline.ingestion").name == "sopforge.pipeline.ingestion"
    assert get_logger("scripts.seed").name == "sopforge.scripts.seed"


def test_single_handler_on_package_root():
    get_logger("sopforge.a")
    get_logger("sopforge.b")

    assert len(logging.getLogger(ROOT_LOGGER_NAME).handlers) == 1


def test_set_log_level_applies_to_package():
    root = logging.getLogger(ROOT_LOGGER_NAME)
    previous = root.level
    try:
        set_log_level("warning")
        assert root.level == logging.WARNING
        assert not get_logger("sopforge.pipeline.controller").isEnabledFor(logging.INFO)
    finally:
        root.setLevel(previous)


def test_unknown_level_falls_back_to_info():
    logger = get_logger("sopforge.level_test", level="chatty")

    assert logger.level == logging.INFO
