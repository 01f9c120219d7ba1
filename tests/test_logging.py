"""Tests for the shared loguru setup."""

import json

from driftscan.utils.logging import _record_to_json, configure_file_logging, get_request_id, logger


class TestFileLogging:
    def test_rotating_file_sink(self, tmp_path):
        """Messages at or above the level reach driftscan.log."""
        handler_id = configure_file_logging(tmp_path / "logs", level="INFO")
        try:
            logger.info("[SCAN] file sink check")
            logger.debug("[SCAN] below threshold")
        finally:
            logger.remove(handler_id)
        content = (tmp_path / "logs" / "driftscan.log").read_text(encoding="utf-8")
        assert "[SCAN] file sink check" in content
        assert "below threshold" not in content


class TestJsonRecords:
    def test_record_shape(self):
        """NDJSON records carry level number, message, request id and location."""
        captured = []
        handler_id = logger.add(lambda message: captured.append(_record_to_json(message.record)), level="DEBUG")
        try:
            logger.bind(file="app/repo.py").warning("[GRAPH] dangling parent")
        finally:
            logger.remove(handler_id)
        record = json.loads(captured[0])
        assert record["level"] == 40
        assert record["msg"] == "[GRAPH] dangling parent"
        assert record["request_id"] == get_request_id()
        assert record["file"] == "app/repo.py"
        assert record["where"].startswith("tests.test_logging") or record["where"].startswith("test_logging")
