import logging
import re

import pytest

from gcsguest.tracing import (
    ROOT_PARENT_ID,
    STATUS_OK,
    STATUS_UNKNOWN,
    LogExporter,
    Span,
    logger_for,
    set_span_status,
    start_span,
)


def test_root_span_ids():
    span = start_span("root")
    assert re.fullmatch(r"[0-9a-f]{32}", span.trace_id)
    assert re.fullmatch(r"[0-9a-f]{16}", span.span_id)
    assert span.parent_span_id == ROOT_PARENT_ID
    assert span.name == "root"


def test_child_span_inherits_trace():
    parent = start_span("parent")
    child = start_span("child", parent)
    assert child.trace_id == parent.trace_id
    assert child.parent_span_id == parent.span_id
    assert child.span_id != parent.span_id


def test_add_attributes_merges():
    span = start_span("s")
    span.add_attributes(cid="abc")
    span.add_attributes(pid=7)
    assert span.attributes == {"cid": "abc", "pid": 7}


def test_set_span_status_ok():
    span = start_span("s")
    span.set_status(STATUS_UNKNOWN, "old")
    set_span_status(span, None)
    assert span.status_code == STATUS_OK
    assert span.status_message == ""


def test_set_span_status_error():
    span = start_span("s")
    set_span_status(span, ValueError("boom"))
    assert span.status_code == STATUS_UNKNOWN
    assert span.status_message == "boom"


def test_end_keeps_first_time():
    span = start_span("s")
    span.end()
    first = span.end_time
    span.end()
    assert span.end_time == first
    assert span.end_time >= span.start_time


def test_context_manager_records_exception():
    with pytest.raises(RuntimeError):
        with start_span("s") as span:
            raise RuntimeError("failed here")
    assert span.ended
    assert span.status_code == STATUS_UNKNOWN
    assert span.status_message == "failed here"


def test_context_manager_success():
    with start_span("s") as span:
        pass
    assert span.ended
    assert span.status_code == STATUS_OK


def test_export_span_info(caplog):
    logger = logging.getLogger("test.tracing.info")
    caplog.set_level(logging.INFO, logger="test.tracing.info")
    span = Span("work")
    span.add_attributes(cid="c1")
    span.end()
    fields = LogExporter(logger).export_span(span)
    assert fields["cid"] == "c1"
    assert fields["name"] == "work"
    assert fields["traceID"] == span.trace_id
    assert fields["spanID"] == span.span_id
    assert fields["parentSpanID"] == span.parent_span_id
    assert fields["duration"] == str(span.end_time - span.start_time)
    assert "error" not in fields
    record = caplog.records[-1]
    assert record.levelno == logging.INFO
    assert record.getMessage() == "Span"


def test_export_span_error(caplog):
    logger = logging.getLogger("test.tracing.error")
    caplog.set_level(logging.INFO, logger="test.tracing.error")
    span = Span("work")
    set_span_status(span, OSError("disk gone"))
    span.end()
    fields = LogExporter(logger).export_span(span)
    assert fields["error"] == "disk gone"
    assert caplog.records[-1].levelno == logging.ERROR


def test_logger_for_span():
    span = start_span("s")
    adapter = logger_for(span)
    assert adapter.extra == {"traceID": span.trace_id, "spanID": span.span_id}


def test_logger_for_none():
    assert logger_for(None).extra == {}