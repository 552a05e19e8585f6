import json
import logging

import pytest
import structlog

from edms.logging import configure_logging, get_logger


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def _last_json_line(capsys) -> dict:
    lines = [line for line in capsys.readouterr().out.splitlines() if line.strip()]
    return json.loads(lines[-1])


class TestConfigureLogging:
    def test_stdlib_loggers_render_as_json(self, capsys, restore_logging) -> None:
        configure_logging(level="INFO", fmt="json")
        logging.getLogger("edms.services.permissions").info(
            "Granted %s on document %s", "read", "doc-1", extra={"actor_id": "a1"}
        )
        payload = _last_json_line(capsys)
        assert payload["event"] == "Granted read on document doc-1"
        assert payload["level"] == "info"
        assert payload["logger"] == "edms.services.permissions"
        assert payload["actor_id"] == "a1"
        assert "timestamp" in payload

    def test_bound_logger_key_values(self, capsys, restore_logging) -> None:
        configure_logging(level="INFO", fmt="json")
        get_logger("edms.tasks.lifecycle").info("documents_flagged", task="flag_review_due", count=2)
        payload = _last_json_line(capsys)
        assert payload["event"] == "documents_flagged"
        assert payload["task"] == "flag_review_due"
        assert payload["count"] == 2

    def test_exceptions_are_serialised(self, capsys, restore_logging) -> None:
        configure_logging(level="INFO", fmt="json")
        try:
            raise RuntimeError("audit sink offline")
        except RuntimeError:
            logging.getLogger("edms.audit.failures").exception("Audit append failed")
        payload = _last_json_line(capsys)
        assert payload["level"] == "error"
        assert "RuntimeError: audit sink offline" in payload["exception"]

    def test_level_filters_records(self, capsys, restore_logging) -> None:
        configure_logging(level="WARNING", fmt="json")
        logging.getLogger("edms.test").info("hidden")
        logging.getLogger("edms.test").warning("shown")
        out = capsys.readouterr().out
        assert "hidden" not in out
        assert json.loads(out.strip().splitlines()[-1])["event"] == "shown"

    def test_text_format(self, capsys, restore_logging) -> None:
        configure_logging(level="INFO", fmt="text")
        logging.getLogger("edms.test").info("plain message")
        out = capsys.readouterr().out
        assert "plain message" in out
        with pytest.raises(json.JSONDecodeError):
            json.loads(out.strip().splitlines()[-1])
