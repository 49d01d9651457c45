"""Tests for hexdeploy.kernel.logging."""

import json

import pytest
from loguru import logger

from hexdeploy.kernel import logging as hexlogging
from hexdeploy.kernel.logging import (
    configure_logging,
    current_run_id,
    get_logger,
    run_logging_context,
)


@pytest.fixture
def restore_logging():
    yield
    configure_logging(level="WARNING", force_reconfigure=True)


def test_records_carry_the_run_id():
    seen = []
    log = get_logger("tests.logging")
    handler_id = logger.add(lambda m: seen.append(m.record["extra"]["run_id"]), level="DEBUG")
    try:
        with run_logging_context("run-42"):
            log.warning("inside")
        log.warning("outside")
    finally:
        logger.remove(handler_id)

    assert seen == ["run-42", "-"]


def test_run_context_is_restored_after_errors():
    with pytest.raises(RuntimeError), run_logging_context("run-1"):
        assert current_run_id() == "run-1"
        raise RuntimeError("stage blew up")
    assert current_run_id() == "-"


def test_unchanged_settings_keep_handlers(restore_logging):
    configure_logging(level="INFO", format="console", force_reconfigure=True)
    handlers = list(hexlogging._handler_ids)
    configure_logging(level="INFO", format="console")
    assert hexlogging._handler_ids == handlers


def test_file_sink_is_json(tmp_path, restore_logging):
    path = tmp_path / "logs" / "deploy.log"
    configure_logging(level="INFO", format="json", output_file=path, force_reconfigure=True)

    with run_logging_context("run-7"):
        get_logger("tests.logging").info("Released {tag}", tag="dev-current")

    lines = path.read_text().splitlines()
    record = json.loads(lines[-1])["record"]
    assert record["message"] == "Released dev-current"
    assert record["extra"]["run_id"] == "run-7"
