"""Structured logging configuration for acmelib.

Provides JSON and text formatters, an issuance-context filter that
stamps every record with the running issuance's id and domains, and a
one-call ``configure_logging`` function driven by config settings.

Usage::

    configure_logging(settings.logging)

    with issuance_context(["example.com"]) as issuance_id:
        log.info("ordering")     # carries issuance_id and domains
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import sys
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from acmelib.config.settings import LoggingSettings

# (issuance_id, comma-joined domains) of the issuance running in this context
_issuance: contextvars.ContextVar[tuple[str, str] | None] = contextvars.ContextVar(
    "acmelib_issuance",
    default=None,
)

# Attributes that are part of the standard LogRecord; everything
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
        # Handled explicitly
        "issuance_id",
        "domains",
    }
)


# ---------------------------------------------------------------------------
# Issuance context
# ---------------------------------------------------------------------------


@contextlib.contextmanager
def issuance_context(domains: Sequence[str]) -> Iterator[str]:
    """Tag every log record emitted inside the block with an issuance id."""
    issuance_id = uuid.uuid4().hex[:12]
    token = _issuance.set((issuance_id, ",".join(domains)))
    try:
        yield issuance_id
    finally:
        _issuance.reset(token)


def current_issuance_id() -> str | None:
    ctx = _issuance.get()
    return ctx[0] if ctx is not None else None


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

        issuance_id = getattr(record, "issuance_id", None)
        if issuance_id not in (None, "-"):
            data["issuance_id"] = issuance_id
            data["domains"] = getattr(record, "domains", None)

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
    """Human-readable formatter for console use."""

    _FMT = "%(asctime)s %(levelname)-8s [%(issuance_id)s] %(name)s: %(message)s"

    def __init__(self) -> None:
        super().__init__(fmt=self._FMT, datefmt="%Y-%m-%d %H:%M:%S")


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------


class IssuanceContextFilter(logging.Filter):
    """Inject the current issuance context into every log record.

    Adds ``issuance_id`` and ``domains`` when an
    :func:`issuance_context` is active, otherwise ``"-"`` and ``None``.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        ctx = _issuance.get()
        if ctx is not None:
            record.issuance_id, record.domains = ctx  # type: ignore[attr-defined]
        else:
            if not hasattr(record, "issuance_id"):
                record.issuance_id = "-"  # type: ignore[attr-defined]
            if not hasattr(record, "domains"):
                record.domains = None  # type: ignore[attr-defined]
        return True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def configure_logging(settings: LoggingSettings) -> logging.Logger:
    """Configure the ``acmelib`` logger hierarchy from settings.

    Replaces any bootstrap handlers with properly formatted output and
    adds a rotating file handler when ``settings.file`` is set.

    Returns the root ``acmelib`` logger.
    """
    level = getattr(logging, settings.level.upper(), logging.INFO)

    root = logging.getLogger("acmelib")
    root.setLevel(level)
    root.handlers.clear()
    root.propagate = False

    formatter: logging.Formatter
    formatter = StructuredFormatter() if settings.format == "json" else TextFormatter()

    ctx_filter = IssuanceContextFilter()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.addFilter(ctx_filter)
    root.addHandler(console)

    if settings.file:
        try:
            from logging.handlers import RotatingFileHandler  # noqa: PLC0415

            fh = RotatingFileHandler(
                settings.file,
                maxBytes=settings.max_file_size_bytes,
                backupCount=settings.backup_count,
            )
            # File output is always structured JSON
            fh.setFormatter(StructuredFormatter())
            fh.addFilter(ctx_filter)
            root.addHandler(fh)
        except OSError as exc:
            root.warning("Could not open log file %s: %s", settings.file, exc)

    # Quieten the responder's request log
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    return root
