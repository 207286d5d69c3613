import pytest
from fastapi.testclient import TestClient

from fitly.core.exceptions import (
    AllStrategiesFailedError,
    BlockedError,
    ExhaustedError,
    NoExtractorError,
    ResolutionError,
)
from fitly.main import app
from fitly.models.product import Product, Variant
from fitly.routers import scrape as scrape_router


class FakePipeline:
    def __init__(self, mapping):
        self.mapping = mapping
        self.calls = []

    async def fetch_and_store(self, urls, prefix="product_images"):
        self.calls.append(list(urls))
        return {url: key for url, key in self.mapping.items() if url in urls}


@pytest.fixture
def client():
    app.dependency_overrides[scrape_router.get_scrape_registry] = lambda: None
    app.dependency_overrides[scrape_router.get_media_pipeline] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


def fake_scrape(result=None, error=None):
    async def _scrape(url, registry=None):
        if error is not None:
            raise error
        return result

    return _scrape


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert "X-Request-ID" in resp.headers


def test_missing_url_is_400(client):
    assert client.get("/v1/scrape").status_code == 400
    assert client.post("/v1/scrape", json={}).status_code == 400


def test_scrape_returns_product_json(client, monkeypatch):
    monkeypatch.setattr(scrape_router, "scrape_product", fake_scrape(Product(title="Shirt", images=["a.jpg"])))

    resp = client.get("/v1/scrape", params={"url": "https://www.amazon.in/dp/B0ABCDEFGH"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["title"] == "Shirt"
    assert body["image_paths"] == ["a.jpg"]
    assert body["variants"] == []


def test_post_body_url(client, monkeypatch):
    seen = []

    async def _scrape(url, registry=None):
        seen.append(url)
        return Product(title="Tee")

    monkeypatch.setattr(scrape_router, "scrape_product", _scrape)

    resp = client.post("/v1/scrape", json={"url": "https://www.myntra.com/x"})
    assert resp.status_code == 200
    assert seen == ["https://www.myntra.com/x"]


def test_images_replaced_by_storage_keys(client, monkeypatch):
    selection = Variant(external_id="A1", color="Red", images=["https://c/red.jpg"])
    product = Product(title="Shirt", images=["https://c/main.jpg", "https://c/side.jpg"], variants=[selection],
                      current_selection=selection)
    pipeline = FakePipeline({"https://c/main.jpg": "k/main.jpg", "https://c/red.jpg": "k/red.jpg"})

    monkeypatch.setattr(scrape_router, "scrape_product", fake_scrape(product))
    app.dependency_overrides[scrape_router.get_media_pipeline] = lambda: pipeline

    body = client.get("/v1/scrape", params={"url": "https://www.amazon.in/x"}).json()

    assert pipeline.calls == [["https://c/main.jpg", "https://c/side.jpg", "https://c/red.jpg"]]
    assert body["image_paths"] == ["k/main.jpg", "https://c/side.jpg"]
    assert body["current_selection"]["image_paths"] == ["k/red.jpg"]
    assert body["variants"][0]["image_paths"] == ["k/red.jpg"]


@pytest.mark.parametrize(
    "error, status",
    [
        (NoExtractorError("No scraper found"), 400),
        (ResolutionError("unreachable"), 400),
        (AllStrategiesFailedError("All 3 strategies failed", last_error=BlockedError()), 500),
        (AllStrategiesFailedError("All 3 strategies failed", last_error=ExhaustedError()), 503),
    ],
)
def test_error_mapping(client, monkeypatch, error, status):
    monkeypatch.setattr(scrape_router, "scrape_product", fake_scrape(error=error))

    resp = client.get("/v1/scrape", params={"url": "https://www.amazon.in/x"})

    assert resp.status_code == status
    if status == 503:
        assert resp.headers["Retry-After"] == str(scrape_router.RETRY_AFTER_SECONDS)
