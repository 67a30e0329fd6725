"""Structured JSON audit logging for the gateway.

Every record is one JSON line on stdout, plus AUDIT_LOG_FILE when set.
Module loggers live under ``nexus.*`` and propagate into the handlers
installed on the ``nexus`` logger by ``setup_logging``.

Audit records carry token prefixes, token ids and masked keys only. The
formatter also scrubs anything that still looks like a full client token
and blanks well-known secret fields, in case a caller slips one in.
"""

import json
import logging
import re
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone

from mcp_nexus.config.settings import get_settings

ROOT_LOGGER = "nexus"
AUDIT_LOGGER = "nexus.audit"

REDACTED = "[redacted]"
SECRET_FIELDS = frozenset({"token", "api_key", "apiKey", "authorization", "secret"})
_FULL_TOKEN_RE = re.compile(r"\b(mcp_[0-9a-f]{12})\.[0-9a-f]{48}\b")

# Correlates every record emitted while serving one HTTP request
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def scrub(text: str) -> str:
    """Replace the secret half of any client token found in ``text``."""
    return _FULL_TOKEN_RE.sub(r"\1." + REDACTED, text)


class JSONFormatter(logging.Formatter):
    """One JSON object per record; ``extra={"audit_data": {...}}`` is merged in."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": scrub(record.getMessage()),
            "request_id": request_id_var.get(""),
        }
        for key, value in getattr(record, "audit_data", {}).items():
            if key in SECRET_FIELDS:
                value = REDACTED
            elif isinstance(value, str):
                value = scrub(value)
            entry[key] = value
        if record.exc_info:
            entry["exception"] = scrub(self.formatException(record.exc_info))
        return json.dumps(entry, default=str)


def setup_logging() -> None:
    """Install JSON handlers on the ``nexus`` logger tree."""
    settings = get_settings()

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()

    formatter = JSONFormatter()
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.audit_log_file:
        handlers.append(logging.FileHandler(settings.audit_log_file))
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    # Handlers live here; don't duplicate into the root logger
    root.propagate = False


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER)


def generate_request_id() -> str:
    return uuid.uuid4().hex[:12]


class RequestTimer:
    """Measures upstream forward latency in milliseconds."""

    def __init__(self):
        self.started: float = 0
        self.elapsed_ms: float = 0

    def __enter__(self):
        self.started = time.perf_counter()
        return self

    def __exit__(self, *exc):
        self.elapsed_ms = round((time.perf_counter() - self.started) * 1000, 2)
