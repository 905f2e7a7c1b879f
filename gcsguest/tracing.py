"""Lightweight tracing spans and a logging-based span exporter."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

STATUS_OK = 0
STATUS_UNKNOWN = 2

ROOT_PARENT_ID = "0" * 16

_DEFAULT_LOGGER = logging.getLogger("gcsguest")


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Span:
    """A timed unit of work with attributes and a final status."""

    name: str
    trace_id: str = field(default_factory=lambda: secrets.token_hex(16))
    span_id: str = field(default_factory=lambda: secrets.token_hex(8))
    parent_span_id: str = ROOT_PARENT_ID
    attributes: dict[str, Any] = field(default_factory=dict)
    start_time: datetime = field(default_factory=_now)
    end_time: datetime | None = None
    status_code: int = STATUS_OK
    status_message: str = ""

    def add_attributes(self, **kwargs: Any) -> None:
        self.attributes.update(kwargs)

    def set_status(self, code: int, message: str = "") -> None:
        self.status_code = code
        self.status_message = message

    def end(self) -> None:
        """Mark the span finished; later calls keep the first end time."""
        if self.end_time is None:
            self.end_time = _now()

    @property
    def ended(self) -> bool:
        return self.end_time is not None

    def __enter__(self) -> Span:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        set_span_status(self, exc)
        self.end()
        return False


def start_span(name: str, parent: Span | None = None) -> Span:
    """Start a new span, as a child of ``parent`` when one is given."""
    if parent is None:
        return Span(name)
    return Span(name, trace_id=parent.trace_id, parent_span_id=parent.span_id)


def set_span_status(span: Span, err: BaseException | None) -> None:
    """Set the span status to OK, or to UNKNOWN carrying the error text."""
    if err is None:
        span.set_status(STATUS_OK, "")
    else:
        span.set_status(STATUS_UNKNOWN, str(err))


class LogExporter:
    """Writes finished spans to a standard library logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger if logger is not None else _DEFAULT_LOGGER

    def export_span(self, span: Span) -> dict[str, Any]:
        """Log ``span`` at INFO, or at ERROR when it has a failure status.

        Returns the fields that were attached to the log record.
        """
        end_time = span.end_time if span.end_time is not None else _now()
        fields: dict[str, Any] = dict(span.attributes)
        fields.update(
            traceID=span.trace_id,
            spanID=span.span_id,
            parentSpanID=span.parent_span_id,
            startTime=span.start_time,
            endTime=end_time,
            duration=str(end_time - span.start_time),
            name=span.name,
        )
        level = logging.INFO
        if span.status_code != STATUS_OK:
            level = logging.ERROR
            fields["error"] = span.status_message
        self.logger.log(level, "Span", extra={"span": fields})
        return fields


def logger_for(span: Span | None = None) -> logging.LoggerAdapter:
    """Return a logger adapter carrying the trace and span ids of ``span``."""
    extra: dict[str, str] = {}
    if span is not None:
        extra = {"traceID": span.trace_id, "spanID": span.span_id}
    return logging.LoggerAdapter(_DEFAULT_LOGGER, extra)