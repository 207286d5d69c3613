import asyncio

import pytest

from fitly.collectors import registry as registry_module
from fitly.collectors.registry import CollectorRegistry, build_default_registry, get_scraper
from fitly.collectors.sources.amazon import AmazonCollector
from fitly.core.exceptions import NoExtractorError


@pytest.fixture
def registry():
    return build_default_registry(engine=object())


@pytest.mark.parametrize(
    "url, source",
    [
        ("https://www.amazon.in/dp/B0ABCDEFGH", "amazon"),
        ("https://amzn.to/3xyz", "amazon"),
        ("https://www.flipkart.com/shirt/p/itm123", "flipkart"),
        ("https://www.myntra.com/tshirts/1996777/buy", "myntra"),
        ("https://www.tatacliq.com/shirt/p-mp000001", "tatacliq"),
        ("https://peterengland.abfrl.in/p/shirt-1.html", "peterengland"),
    ],
)
def test_select_by_url(registry, url, source):
    assert registry.select(url).source == source


def test_select_unknown_url(registry):
    with pytest.raises(NoExtractorError):
        registry.select("https://www.ebay.com/itm/1")


def test_registration_order(registry):
    assert registry.sources == ["amazon", "flipkart", "myntra", "tatacliq", "peterengland"]


def test_first_match_wins():
    first = AmazonCollector(engine=object())
    second = AmazonCollector(engine=object())
    assert CollectorRegistry([first, second]).select("https://amazon.in/x") is first


def test_get_scraper_resolves_then_selects(registry, monkeypatch):
    async def fake_resolve(url):
        return "https://www.amazon.in/dp/B0ABCDEFGH?th=1"

    monkeypatch.setattr(registry_module, "resolve_url", fake_resolve)

    collector, resolved = asyncio.run(get_scraper("https://short.link/abc", registry))
    assert collector.source == "amazon"
    assert resolved == "https://www.amazon.in/dp/B0ABCDEFGH?th=1"


def test_get_scraper_no_extractor_after_resolution(registry, monkeypatch):
    async def fake_resolve(url):
        return "https://www.example.com/product"

    monkeypatch.setattr(registry_module, "resolve_url", fake_resolve)

    with pytest.raises(NoExtractorError):
        asyncio.run(get_scraper("https://short.link/abc", registry))
