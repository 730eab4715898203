"""Tests for structured logging."""
import io
import json
import logging

from workflow_engine.observability.logging import (
    CustomJsonFormatter,
    RunContextFilter,
    get_logger,
    setup_logging,
    with_run_context,
)


def capture(formatter):
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    handler.addFilter(RunContextFilter())
    logger = logging.getLogger("workflow_engine.test_capture")
    logger.handlers = [handler]
    logger.propagate = False
    logger.setLevel(logging.DEBUG)
    return logger, stream


class TestWithRunContext:
    """Test extra dict construction."""

    def test_drops_empty_fields(self):
        assert with_run_context(workflow_id="wf", run_id=None, node_id="n1") == {
            "workflow_id": "wf",
            "node_id": "n1",
        }

    def test_keeps_additional_fields(self):
        assert with_run_context(run_id="r", attempt=2) == {"run_id": "r", "attempt": 2}


class TestJsonFormatter:
    """Test JSON output."""

    def test_run_context_in_output(self):
        logger, stream = capture(CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s"))

        adapter = get_logger("workflow_engine.test_capture")
        adapter.info("node done", extra=with_run_context(workflow_id="wf-1", run_id="run-1", node_id="n1"))

        record = json.loads(stream.getvalue().strip())
        assert record["message"] == "node done"
        assert record["level"] == "INFO"
        assert record["workflow_id"] == "wf-1"
        assert record["run_id"] == "run-1"
        assert record["node_id"] == "n1"
        assert "node_type" not in record

    def test_missing_context_is_omitted(self):
        logger, stream = capture(CustomJsonFormatter("%(message)s"))
        logger.warning("plain")

        record = json.loads(stream.getvalue().strip())
        assert record["message"] == "plain"
        assert "run_id" not in record


class TestSetupLogging:
    """Test root logger configuration."""

    def test_json_format(self, monkeypatch):
        monkeypatch.setenv("WORKFLOW_ENGINE_LOG_FORMAT", "json")
        monkeypatch.setenv("WORKFLOW_ENGINE_LOG_LEVEL", "warning")
        root = logging.getLogger()
        saved = (list(root.handlers), root.level)
        try:
            setup_logging()
            assert root.level == logging.WARNING
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, CustomJsonFormatter)
        finally:
            root.handlers, root.level = saved[0], saved[1]

    def test_text_format(self, monkeypatch):
        monkeypatch.setenv("WORKFLOW_ENGINE_LOG_FORMAT", "text")
        root = logging.getLogger()
        saved = (list(root.handlers), root.level)
        try:
            setup_logging()
            assert not isinstance(root.handlers[0].formatter, CustomJsonFormatter)
        finally:
            root.handlers, root.level = saved[0], saved[1]
