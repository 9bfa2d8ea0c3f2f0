"""Structured logging — context fields and handler setup."""

import json
import logging

from agentcore.infrastructure.observability import JSONFormatter, TextFormatter, setup_logging


def _record(**extra):
    record = logging.LogRecord(
        "agentcore.services.agent_runner", logging.WARNING, __file__, 1,
        "Tool %s failed", ("ls",), None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_includes_known_context_only():
    line = JSONFormatter().format(
        _record(session_id="s1", tool_name="ls", depth=0, unrelated="x"),
    )
    data = json.loads(line)

    assert data["level"] == "WARNING"
    assert data["message"] == "Tool ls failed"
    assert data["session_id"] == "s1"
    assert data["depth"] == 0
    assert "unrelated" not in data


def test_text_format_appends_context():
    line = TextFormatter().format(_record(session_id="s1", provider="openai"))
    assert line.endswith("Tool ls failed [session_id=s1 provider=openai]")


def test_setup_logging_does_not_stack_handlers():
    setup_logging("DEBUG", "text")
    setup_logging("INFO", "json")
    ours = [h for h in logging.getLogger().handlers if h.get_name() == "agentcore"]

    assert len(ours) == 1
    assert isinstance(ours[0].formatter, JSONFormatter)
    assert logging.getLogger("httpx").level == logging.WARNING
    logging.getLogger().removeHandler(ours[0])
