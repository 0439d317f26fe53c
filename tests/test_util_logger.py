"""Tests for the structured logging factory."""

import json
import logging

import pytest

from util_logger import (
    ComponentType,
    ContextLoggerAdapter,
    JSONFormatter,
    LogContext,
    LoggerFactory,
    LogLevel,
    log_exceptions,
)


def last_json_line(capsys):
    lines = [line for line in capsys.readouterr().out.splitlines() if line.strip()]
    return json.loads(lines[-1])


def test_log_level_conversion():
    assert LogLevel.from_string("warning") is LogLevel.WARNING
    assert LogLevel.ERROR.to_python_level() == logging.ERROR


def test_log_context_drops_unset_fields():
    context = LogContext(gpkg_path="a.gpkg", layer_name="roads")
    assert context.to_dict() == {"gpkg_path": "a.gpkg", "layer_name": "roads"}


def test_records_carry_component_and_context(capsys):
    logger = LoggerFactory.create_with_context(
        ComponentType.REPOSITORY, "ContextTest", gpkg_path="a.gpkg", layer_name="roads"
    )
    logger.info("layer created")

    record = last_json_line(capsys)
    assert record["message"] == "layer created"
    assert record["level"] == "INFO"
    assert record["logger"] == "gpkg_spatial.repository.ContextTest"
    dims = record["customDimensions"]
    assert dims["component_type"] == "repository"
    assert dims["component_name"] == "ContextTest"
    assert dims["gpkg_path"] == "a.gpkg"
    assert dims["layer_name"] == "roads"


def test_extra_dimensions_are_merged(capsys):
    logger = LoggerFactory.create_logger(ComponentType.VALIDATOR, "ExtraTest")
    logger.info("checked", extra={"custom_dimensions": {"status": "healthy"}})
    assert last_json_line(capsys)["customDimensions"]["status"] == "healthy"


def test_recreating_logger_does_not_nest_wrappers(capsys):
    for _ in range(3):
        logger = LoggerFactory.create_logger(ComponentType.CODEC, "RecreateTest")
    logger.info("once")
    out = [line for line in capsys.readouterr().out.splitlines() if line.strip()]
    assert len(out) == 1


def test_formatter_truncates_long_messages():
    formatter = JSONFormatter(max_message_length=5)
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "abcdefghij", None, None)
    assert json.loads(formatter.format(record))["message"] == "abcde..."


def test_log_exceptions_logs_and_reraises(capsys):
    @log_exceptions(ComponentType.SCHEMA, "DecoratorTest")
    def explode():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        explode()

    record = last_json_line(capsys)
    assert record["level"] == "ERROR"
    assert record["exception"]["type"] == "RuntimeError"
    assert record["customDimensions"]["function_name"] == "explode"


def test_each_instance_keeps_its_own_context(capsys):
    first = LoggerFactory.create_with_context(
        ComponentType.REPOSITORY, "SharedName", gpkg_path="first.gpkg"
    )
    second = LoggerFactory.create_with_context(
        ComponentType.REPOSITORY, "SharedName", gpkg_path="second.gpkg", layer_name="roads"
    )

    first.info("from first")
    record = last_json_line(capsys)
    assert record["customDimensions"]["gpkg_path"] == "first.gpkg"
    assert "layer_name" not in record["customDimensions"]

    second.info("from second")
    assert last_json_line(capsys)["customDimensions"]["gpkg_path"] == "second.gpkg"


def test_plain_logger_carries_no_stale_context(capsys):
    LoggerFactory.create_with_context(ComponentType.SCHEMA, "StaleTest", gpkg_path="old.gpkg")
    logger = LoggerFactory.create_logger(ComponentType.SCHEMA, "StaleTest")
    logger.info("no context")
    assert "gpkg_path" not in last_json_line(capsys)["customDimensions"]


def test_call_dimensions_override_context(capsys):
    logger = LoggerFactory.create_logger(
        ComponentType.GENERATOR, "OverrideTest", context=LogContext(layer_name="roads")
    )
    assert isinstance(logger, ContextLoggerAdapter)
    logger.info("renamed", extra={"custom_dimensions": {"layer_name": "streets"}})
    dims = last_json_line(capsys)["customDimensions"]
    assert dims["layer_name"] == "streets"
    assert dims["component_name"] == "OverrideTest"
