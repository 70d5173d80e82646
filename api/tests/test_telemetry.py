import logging

from app.core.security import resolve_user_role
from app.core.telemetry import EMPTY_SPAN_ID, EMPTY_TRACE_ID, TraceContextFilter, parse_otlp_headers


def test_parse_otlp_headers_drops_malformed_entries() -> None:
    assert parse_otlp_headers(None) == {}
    assert parse_otlp_headers("authorization=Bearer x, junk ,=orphan, team = store ") == {
        "authorization": "Bearer x",
        "team": "store",
    }


def test_trace_context_filter_stamps_empty_ids_outside_spans() -> None:
    record = logging.LogRecord("app", logging.INFO, __file__, 1, "hello", None, None)

    assert TraceContextFilter().filter(record) is True
    assert record.trace_id == EMPTY_TRACE_ID
    assert record.span_id == EMPTY_SPAN_ID


def test_resolve_user_role_prefers_app_metadata() -> None:
    assert resolve_user_role({"app_metadata": {"role": "admin"}, "user_metadata": {"role": "readonly"}}) == "admin"
    assert resolve_user_role({"app_metadata": {}, "user_metadata": {"role": "readonly"}}) == "readonly"
    assert resolve_user_role({"id": "u1"}) == "user"
