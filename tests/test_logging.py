import io
import json
import logging

from fitly.core.logging import JSONFormatter, get_logger, set_trace_id


def capture(name):
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JSONFormatter())
    std_logger = logging.getLogger(name)
    std_logger.addHandler(handler)
    std_logger.setLevel(logging.DEBUG)
    std_logger.propagate = False
    return stream


def last_line(stream):
    return json.loads(stream.getvalue().strip().splitlines()[-1])


def test_context_fields_are_top_level():
    stream = capture("fitly.test.fields")
    logger = get_logger("fitly.test.fields")

    logger.warning(
        "Strategy failed, escalating",
        strategy="http",
        url="https://example.com/" + "p" * 300,
        duration_ms=12.3456,
        status_code=403,
        error_type="BlockedError",
        port=5000,
        detail=None,
    )

    data = last_line(stream)
    assert data["level"] == "WARNING"
    assert data["message"] == "Strategy failed, escalating"
    assert data["strategy"] == "http"
    assert len(data["url"]) == 200
    assert data["duration_ms"] == 12.35
    assert data["status_code"] == 403
    assert data["error_type"] == "BlockedError"
    assert data["extra"] == {"port": 5000}
    assert "source" not in data


def test_trace_id_and_scrape_error():
    stream = capture("fitly.test.trace")
    logger = get_logger("fitly.test.trace")
    trace_id = set_trace_id("abc12345")

    logger.scrape_error("amazon", "https://www.amazon.in/dp/B0ABCDEFGH", ValueError("boom"), duration_ms=5)

    data = last_line(stream)
    assert trace_id == "abc12345"
    assert data["trace_id"] == "abc12345"
    assert data["level"] == "ERROR"
    assert data["source"] == "amazon"
    assert data["error_type"] == "ValueError"
    assert "exception" not in data
