"""JSON logging with request ids, plus redaction of partner contact details.

Proposal text and partner records end up in log lines (unmatched content keys,
request queries). Contact emails, phone numbers and VAT ids are masked and long
text is clipped before anything is written.
"""

from __future__ import annotations

from contextvars import ContextVar, Token
from datetime import datetime, timezone
import json
import logging
import re
from typing import Any, Mapping
from uuid import uuid4

from proposal_engine.text import normalize_label, strip_tags


REQUEST_ID_CONTEXT: ContextVar[str] = ContextVar("request_id", default="-")
REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")

# Compared against normalize_label(key), so contactEmail and contact_email both hit.
SENSITIVE_KEY_FRAGMENTS = ("email", "phone", "vatnumber", "vatid", "legalrep", "contactperson")

EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE_PATTERN = re.compile(r"(?:\+\d{1,3}[\s.-]?)?\(?\d{2,4}\)?[\s.-]\d{3,4}[\s.-]\d{3,4}\b")
PREVIEW_CHARS = 80

_HANDLER_MARKER = "_proposal_engine_handler"


def normalize_request_id(candidate: str | None) -> str:
    if candidate:
        trimmed = candidate.strip()
        if REQUEST_ID_PATTERN.fullmatch(trimmed):
            return trimmed
    return str(uuid4())


def set_request_id(request_id: str) -> Token[str]:
    return REQUEST_ID_CONTEXT.set(request_id)


def reset_request_id(token: Token[str]) -> None:
    REQUEST_ID_CONTEXT.reset(token)


def get_request_id() -> str:
    return REQUEST_ID_CONTEXT.get()


def is_contact_field(key: str) -> bool:
    normalized = normalize_label(key)
    return any(fragment in normalized for fragment in SENSITIVE_KEY_FRAGMENTS)


def redact_contact_details(text: str) -> str:
    text = EMAIL_PATTERN.sub("[REDACTED_EMAIL]", text)
    return PHONE_PATTERN.sub("[REDACTED_PHONE]", text)


def content_preview(text: str | None, *, max_chars: int = PREVIEW_CHARS) -> str:
    """One-line, tag-free, redacted opening of a content value for log lines."""
    flattened = " ".join(strip_tags(text or "").split())
    preview = redact_contact_details(flattened)
    if len(preview) > max_chars:
        return f"{preview[:max_chars]}..."
    return preview


def sanitize_for_logging(value: Any, *, max_string_length: int = 240) -> Any:
    """Redact contact details and clip long proposal text before it reaches a log line."""
    if isinstance(value, Mapping):
        return {
            str(key): "[REDACTED]"
            if is_contact_field(str(key))
            else sanitize_for_logging(item, max_string_length=max_string_length)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [sanitize_for_logging(item, max_string_length=max_string_length) for item in value]
    if isinstance(value, str):
        redacted = redact_contact_details(value)
        if len(redacted) > max_string_length:
            return f"{redacted[:max_string_length]}...[truncated]"
        return redacted
    return value


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    # Everything a bare LogRecord carries; the rest came in through ``extra``.
    _STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", get_request_id()),
        }
        for key, value in record.__dict__.items():
            if key not in self._STANDARD_ATTRS and key not in payload:
                payload[key] = sanitize_for_logging(value)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def configure_logging(level_name: str) -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name.upper(), logging.INFO))
    if any(getattr(handler, _HANDLER_MARKER, False) for handler in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RequestIdFilter())
    setattr(handler, _HANDLER_MARKER, True)
    root.addHandler(handler)
