import json
import logging

from pythonjsonlogger import jsonlogger

from utils import logging_setup


def _read_json_log(capfd):
    output = capfd.readouterr().err
    line = next(line for line in output.splitlines() if line.strip())
    return json.loads(line)


def test_configure_logging_emits_json(capfd, monkeypatch):
    logging_setup.reset_logging()
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    logging_setup.configure_logging("costguard-tests")
    try:
        logging.getLogger("costguard").info("hello")
        record = _read_json_log(capfd)
    finally:
        logging_setup.reset_logging()
    assert record["message"] == "hello"
    assert record["service"] == "costguard-tests"


def test_configure_logging_is_idempotent(monkeypatch):
    root = logging.getLogger()
    previous_level = root.level
    logging_setup.reset_logging()
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    logging_setup.configure_logging()
    logging_setup.configure_logging()
    try:
        json_handlers = [
            handler
            for handler in root.handlers
            if isinstance(handler.formatter, jsonlogger.JsonFormatter)
        ]
        assert len(json_handlers) == 1
        assert root.level == logging.WARNING
    finally:
        logging_setup.reset_logging()
        root.setLevel(previous_level)


def test_log_outcome_uses_warning_for_empty(caplog):
    logger = logging.getLogger("costguard.outcome")
    caplog.set_level(logging.INFO, logger="costguard.outcome")

    logging_setup.log_outcome(logger, "done", has_data=False)

    assert any(
        record.levelno == logging.WARNING and record.message == "done" for record in caplog.records
    )

    caplog.clear()
    logging_setup.log_outcome(logger, "done", has_data=True)

    assert any(
        record.levelno == logging.INFO and record.message == "done" for record in caplog.records
    )


def test_configure_logging_reads_service_from_environment(capfd, monkeypatch):
    logging_setup.reset_logging()
    monkeypatch.setenv("COSTGUARD_SERVICE", "seo-worker")
    logging_setup.configure_logging(level="info")
    try:
        logging.getLogger("costguard.guard").info("swept")
        record = _read_json_log(capfd)
    finally:
        logging_setup.reset_logging()
    assert record["service"] == "seo-worker"
    assert record["name"] == "costguard.guard"


def test_log_outcome_formats_arguments_and_extra(caplog):
    logger = logging.getLogger("costguard.outcome")
    caplog.set_level(logging.INFO, logger="costguard.outcome")

    logging_setup.log_outcome(logger, "computed %s", "/api/seo-analysis", extra={"max_tokens": 900})

    record = caplog.records[-1]
    assert record.getMessage() == "computed /api/seo-analysis"
    assert record.max_tokens == 900
