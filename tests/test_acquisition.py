import asyncio

import pytest

from fitly.core.exceptions import (
    AllStrategiesFailedError,
    BlockedError,
    FetchTimeoutError,
    InvalidDocumentError,
    NetworkError,
)
from fitly.services.acquisition import (
    AcquisitionEngine,
    Attempt,
    AttemptState,
    FetchStrategy,
    is_valid_document,
    parse_document,
)

FILLER = "Lorem ipsum dolor sit amet. " * 20

GOOD_HTML = f"<html><head><title>Product</title></head><body><h1 id='anchor'>Shirt</h1><p>{FILLER}</p></body></html>"
NO_ANCHOR_HTML = f"<html><head><title>Product</title></head><body><p>{FILLER}</p></body></html>"
CAPTCHA_HTML = f"<html><head><title>Robot Check</title></head><body><h1 id='anchor'>x</h1><p>{FILLER}</p></body></html>"


def has_anchor(doc):
    return doc.select_one("#anchor") is not None


class FakeStrategy(FetchStrategy):
    def __init__(self, name, html=None, error=None, delay=0.0, timeout=5.0):
        self.name = name
        self.html = html
        self.error = error
        self.delay = delay
        self.timeout = timeout
        self.calls = 0
        self.released = False

    async def fetch(self, url, attempt):
        self.calls += 1
        attempt.advance(AttemptState.LAUNCHING)
        try:
            attempt.advance(AttemptState.NAVIGATING)
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            attempt.advance(AttemptState.CAPTURING)
            return self.html
        finally:
            self.released = True


def test_escalates_through_every_strategy_then_fails():
    s1 = FakeStrategy("s1", error=BlockedError(status_code=403))
    s2 = FakeStrategy("s2", html=NO_ANCHOR_HTML)
    s3 = FakeStrategy("s3", error=NetworkError("browser crashed"))
    engine = AcquisitionEngine([s1, s2, s3])

    with pytest.raises(AllStrategiesFailedError) as exc_info:
        asyncio.run(engine.fetch("https://example.com/p", has_anchor))

    assert (s1.calls, s2.calls, s3.calls) == (1, 1, 1)
    err = exc_info.value
    assert isinstance(err.last_error, NetworkError)
    assert err.__cause__ is err.last_error
    assert [a.strategy for a in err.attempts] == ["s1", "s2", "s3"]
    assert all(a.state == AttemptState.FAILED for a in err.attempts)
    assert isinstance(err.attempts[1].error, InvalidDocumentError)


def test_first_accepted_document_short_circuits():
    s1 = FakeStrategy("s1", error=BlockedError(status_code=429))
    s2 = FakeStrategy("s2", html=GOOD_HTML)
    s3 = FakeStrategy("s3", html=GOOD_HTML)
    engine = AcquisitionEngine([s1, s2, s3])

    doc = asyncio.run(engine.fetch("https://example.com/p", has_anchor))

    assert doc.select_one("#anchor").get_text() == "Shirt"
    assert (s1.calls, s2.calls, s3.calls) == (1, 1, 0)


def test_captcha_page_is_rejected_even_if_site_validator_accepts():
    s1 = FakeStrategy("s1", html=CAPTCHA_HTML)
    engine = AcquisitionEngine([s1])

    with pytest.raises(AllStrategiesFailedError) as exc_info:
        asyncio.run(engine.fetch("https://example.com/p", has_anchor))
    assert isinstance(exc_info.value.last_error, InvalidDocumentError)


def test_strategy_timeout_releases_and_escalates():
    slow = FakeStrategy("slow", html=GOOD_HTML, delay=1.0, timeout=0.05)
    fast = FakeStrategy("fast", html=GOOD_HTML)
    engine = AcquisitionEngine([slow, fast])

    asyncio.run(engine.fetch("https://example.com/p", has_anchor))

    assert slow.released
    assert fast.calls == 1


def test_timeout_on_last_strategy_is_reported():
    slow = FakeStrategy("slow", html=GOOD_HTML, delay=1.0, timeout=0.05)
    engine = AcquisitionEngine([slow])

    with pytest.raises(AllStrategiesFailedError) as exc_info:
        asyncio.run(engine.fetch("https://example.com/p", has_anchor))
    assert isinstance(exc_info.value.last_error, FetchTimeoutError)


def test_external_cancellation_propagates():
    slow = FakeStrategy("slow", html=GOOD_HTML, delay=5.0, timeout=10)
    never = FakeStrategy("never", html=GOOD_HTML)
    engine = AcquisitionEngine([slow, never])

    async def run():
        task = asyncio.ensure_future(engine.fetch("https://example.com/p", has_anchor))
        await asyncio.sleep(0.05)
        task.cancel()
        await task

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(run())
    assert slow.released
    assert never.calls == 0


def test_engine_requires_strategies():
    with pytest.raises(ValueError):
        AcquisitionEngine([])


def test_attempt_state_machine():
    attempt = Attempt(strategy="http", url="https://example.com")
    attempt.advance(AttemptState.LAUNCHING)
    attempt.advance(AttemptState.NAVIGATING)
    attempt.succeed()

    assert attempt.finished
    assert attempt.history == [AttemptState.NOT_STARTED, AttemptState.LAUNCHING, AttemptState.NAVIGATING]
    with pytest.raises(RuntimeError):
        attempt.fail(NetworkError("late"))


def test_baseline_validation():
    assert is_valid_document(parse_document(GOOD_HTML))
    assert not is_valid_document(parse_document(CAPTCHA_HTML))
    assert not is_valid_document(parse_document("<html><body><p>tiny</p></body></html>"))
    assert not is_valid_document(parse_document(""))


def test_unexpected_strategy_error_still_escalates():
    broken = FakeStrategy("broken", error=RuntimeError("driver binary missing"))
    fallback = FakeStrategy("fallback", html=GOOD_HTML)
    engine = AcquisitionEngine([broken, fallback])

    doc = asyncio.run(engine.fetch("https://example.com/p", has_anchor))

    assert doc.select_one("#anchor") is not None
    assert fallback.calls == 1
    assert broken.released


def test_validator_error_is_a_strategy_failure():
    def exploding_validator(doc):
        raise KeyError("anchor")

    engine = AcquisitionEngine([FakeStrategy("s1", html=GOOD_HTML)])

    with pytest.raises(AllStrategiesFailedError) as exc_info:
        asyncio.run(engine.fetch("https://example.com/p", exploding_validator))
    err = exc_info.value.last_error
    assert isinstance(err, NetworkError)
    assert isinstance(err.__cause__, KeyError)
    assert exc_info.value.attempts[0].state == AttemptState.FAILED
