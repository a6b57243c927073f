import json as json_module
import logging
from io import StringIO

from receiptparse.extract.dispatcher import parse
from receiptparse.utils.forensic_context import forensic_scope, get_forensic_fields
from receiptparse.utils.logging_setup import ForensicContextFilter, JsonLineFormatter, log_event


def _json_logger(name: str):
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonLineFormatter())
    handler.addFilter(ForensicContextFilter())
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.handlers = []
    logger.addHandler(handler)
    return logger, handler, stream


def test_json_formatter_includes_contextvars():
    logger, handler, stream = _json_logger("receiptparse.test_forensic")

    with forensic_scope(correlation_id="corr-1", type_key="mart"):
        log_event(logger, "test.event", "Test message", foo="bar")

    handler.flush()
    payload = json_module.loads(stream.getvalue().strip())
    assert payload["forensic"]["correlation_id"] == "corr-1"
    assert payload["forensic"]["type_key"] == "mart"
    assert payload["event_name"] == "test.event"
    assert payload["extra"]["foo"] == "bar"


def test_forensic_scope_restores_previous_values():
    with forensic_scope(correlation_id="outer"):
        with forensic_scope(correlation_id="inner", phase="parse", unknown="ignored"):
            assert get_forensic_fields()["correlation_id"] == "inner"
        assert get_forensic_fields()["correlation_id"] == "outer"
        assert get_forensic_fields()["phase"] is None
    assert get_forensic_fields()["correlation_id"] is None


def test_dispatch_events_carry_parse_context():
    logger, handler, stream = _json_logger("receiptparse.dispatcher")
    try:
        with forensic_scope(correlation_id="corr-dispatch"):
            parse("CU 역삼점\n합계 1,000", "convenience", document_id="doc-7")
    finally:
        logger.handlers = []

    events = [json_module.loads(line) for line in stream.getvalue().splitlines() if line.strip()]
    names = [e["event_name"] for e in events]
    assert "dispatch.start" in names
    assert "dispatch.detected" in names
    detected = next(e for e in events if e["event_name"] == "dispatch.detected")
    assert detected["forensic"]["correlation_id"] == "corr-dispatch"
    assert detected["forensic"]["document_id"] == "doc-7"
    assert detected["extra"]["type_key"] == "convenience"
    assert detected["extra"]["detected"] is False
