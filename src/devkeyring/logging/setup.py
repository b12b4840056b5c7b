"""Structured logging configuration for devkeyring.

Provides JSON and text formatters, an event-context filter that
injects the ledger event being handled into every log record, and a
one-call ``configure_logging`` function driven by config settings.
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from devkeyring.config.settings import LoggingSettings

# Attributes that are part of the standard LogRecord -- everything
# else is considered "extra" and gets included in structured output.
_STANDARD_ATTRS = frozenset(
    {
        "args",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
        # Our own well-known context attributes (handled explicitly):
        "delivery_id",
        "event_name",
        "entry_number",
    }
)

# Event context outside a Flask request (CLI ``handle-event``)
_event_context: contextvars.ContextVar[dict | None] = contextvars.ContextVar(
    "devkeyring_event_context",
    default=None,
)


@contextlib.contextmanager
def event_context(
    *,
    delivery_id: str | None = None,
    event_name: str | None = None,
    entry_number: int | None = None,
) -> Iterator[None]:
    """Tag every log record emitted inside the block with the event."""
    token = _event_context.set(
        {
            "delivery_id": delivery_id,
            "event_name": event_name,
            "entry_number": entry_number,
        },
    )
    try:
        yield
    finally:
        _event_context.reset(token)


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class StructuredFormatter(logging.Formatter):
    """JSON-lines formatter for production logging.

    Every record becomes a single JSON object on one line containing
    the standard fields plus any *extra* attributes passed by the
    caller or injected by filters.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()

        data: dict = {
            "timestamp": datetime.fromtimestamp(
                record.created,
                tz=UTC,
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
        }

        for attr in ("delivery_id", "event_name", "entry_number"):
            value = getattr(record, attr, None)
            if value is not None:
                data[attr] = value

        # Caller-supplied extra fields
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                data.setdefault(key, value)

        if record.exc_info and record.exc_info[0] is not None:
            data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            data["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development / console use."""

    _FMT = "%(asctime)s %(levelname)-8s [%(delivery_id)s #%(entry_number)s] %(name)s: %(message)s"

    def __init__(self) -> None:
        super().__init__(fmt=self._FMT, datefmt="%Y-%m-%d %H:%M:%S")


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------


class EventContextFilter(logging.Filter):
    """Inject the ledger event being handled into every log record.

    Inside a webhook request the values come from ``flask.g``
    (``delivery_id``, ``event_name``, ``entry_number``); otherwise from
    the active :func:`event_context` block, falling back to ``"-"``.
    """

    CONTEXT_ATTRS = frozenset({"delivery_id", "event_name", "entry_number"})

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _event_context.get() or {}
        for attr in self.CONTEXT_ATTRS:
            if not hasattr(record, attr):
                setattr(record, attr, context.get(attr))

        from flask import g, has_request_context

        if has_request_context():
            for attr in self.CONTEXT_ATTRS:
                value = getattr(g, attr, None)
                if value is not None:
                    setattr(record, attr, value)

        if record.delivery_id is None:  # type: ignore[attr-defined]
            record.delivery_id = "-"  # type: ignore[attr-defined]
        if record.entry_number is None:  # type: ignore[attr-defined]
            record.entry_number = "-"  # type: ignore[attr-defined]
        return True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def configure_logging(settings: LoggingSettings) -> logging.Logger:
    """Configure the ``devkeyring`` logger hierarchy from settings.

    Replaces any bootstrap handlers with properly formatted output.
    Sets up an optional audit file for the security logger if
    ``settings.audit.enabled``.

    Returns the root ``devkeyring`` logger.
    """
    level = getattr(logging, settings.level.upper(), logging.INFO)

    root = logging.getLogger("devkeyring")
    root.setLevel(level)
    root.handlers.clear()
    root.propagate = False

    formatter: logging.Formatter
    formatter = StructuredFormatter() if settings.format == "json" else TextFormatter()

    ctx_filter = EventContextFilter()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.addFilter(ctx_filter)
    root.addHandler(console)

    # Security events always reach the audit file as JSON
    if settings.audit.enabled and settings.audit.file:
        security = logging.getLogger("devkeyring.security")
        security.handlers.clear()
        try:
            from logging.handlers import RotatingFileHandler

            fh = RotatingFileHandler(
                settings.audit.file,
                maxBytes=settings.audit.max_file_size_bytes,
                backupCount=settings.audit.backup_count,
            )
            fh.setFormatter(StructuredFormatter())
            fh.addFilter(ctx_filter)
            security.addHandler(fh)
        except OSError as exc:
            root.warning(
                "Could not open audit log file %s: %s",
                settings.audit.file,
                exc,
            )

    for lib in ("werkzeug", "urllib3"):
        logging.getLogger(lib).setLevel(logging.WARNING)

    return root
