import io
import json
import logging
import sys

from loguru import logger

from strategylab.logging_utils import logging_context, setup_logging, setup_test_logging


class _Collector(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


def test_records_reach_stdlib_with_context(monkeypatch):
    monkeypatch.setenv("ENV", "ci")
    setup_logging(force=True, level="DEBUG")
    collector = _Collector()
    root = logging.getLogger()
    root.addHandler(collector)
    try:
        with logging_context(run_id="abc12345"):
            logger.info("[test] inside")
        logger.info("[test] outside")
    finally:
        root.removeHandler(collector)
        setup_test_logging("WARNING")

    inside = next(r for r in collector.records if r.getMessage() == "[test] inside")
    outside = next(r for r in collector.records if r.getMessage() == "[test] outside")
    assert inside.run_id == "abc12345"
    assert inside.environment == "ci"
    assert outside.run_id == "-"


def test_setup_test_logging_writes_file(tmp_path):
    target = tmp_path / "run.log"
    setup_test_logging(level="INFO", file=target)
    try:
        logger.info("[test] to file")
        logger.complete()
    finally:
        setup_test_logging("WARNING")
    assert "[test] to file" in target.read_text()


def test_json_logs_serialize_stdout(monkeypatch):
    buf = io.StringIO()
    try:
        with monkeypatch.context() as m:
            m.setattr(sys, "stdout", buf)
            setup_logging(force=True, level="INFO", json_logs=True)
            with logging_context(run_id="json0001"):
                logger.info("[test] structured")
    finally:
        setup_test_logging("WARNING")

    records = [json.loads(line)["record"] for line in buf.getvalue().splitlines() if line.strip()]
    rec = next(r for r in records if r["message"] == "[test] structured")
    assert rec["extra"]["run_id"] == "json0001"
    assert rec["level"]["name"] == "INFO"
