"""Structured Logging — JSON / text formatters and one-shot setup.

Invariants:
    - Every line carries the record's own time, level, logger name and message
    - Turn context (session_id, tool_name, provider, depth, ...) is emitted only
      when the log call passed it through `extra`
    - setup_logging is idempotent: calling it again swaps the agentcore handler

Design Decisions:
    - JSON for production, key=value suffix for local development
    - Vendor SDK and HTTP client loggers are held at WARNING so request
      chatter does not drown turn events
"""

import json
import logging
from datetime import datetime, timezone

CONTEXT_KEYS = (
    "session_id", "tool_name", "tool_call_id", "error_code", "attempt",
    "provider", "input_tokens", "output_tokens", "depth", "turn_status",
)

_HANDLER_NAME = "agentcore"
_NOISY_LOGGERS = ("httpx", "httpcore", "anthropic", "openai", "mcp")


def _context_fields(record: logging.LogRecord) -> dict:
    return {
        key: record.__dict__[key]
        for key in CONTEXT_KEYS
        if record.__dict__.get(key) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context_fields(record),
        }
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable line with turn context appended as key=value."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-8s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _context_fields(record)
        if fields:
            line += " [" + " ".join(f"{k}={v}" for k, v in fields.items()) + "]"
        return line


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
