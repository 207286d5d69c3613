import asyncio

import httpx
import pytest

from fitly.core.exceptions import StorageError
from fitly.models.product import Product, Variant
from fitly.services.media_pipeline import (
    LocalMediaStore,
    MediaPipeline,
    MediaStore,
    apply_image_keys,
    build_storage_key,
    collect_image_urls,
    dedupe_urls,
)

STAMP = 1700000000000000000


class MemoryStore(MediaStore):
    def __init__(self, fail_keys=()):
        self.objects = {}
        self.fail_keys = fail_keys

    async def put(self, key, data, content_type):
        if any(marker in key for marker in self.fail_keys):
            raise StorageError("disk full", url=key)
        self.objects[key] = (data, content_type)
        return key


def image_handler(request: httpx.Request) -> httpx.Response:
    name = request.url.path.rsplit("/", 1)[-1]
    if name == "y.jpg":
        return httpx.Response(404)
    if name == "boom.jpg":
        raise httpx.ReadTimeout("slow", request=request)
    return httpx.Response(200, content=name.encode(), headers={"content-type": "image/jpeg"})


def make_pipeline(store, concurrency=5):
    return MediaPipeline(
        store=store,
        concurrency=concurrency,
        transport=httpx.MockTransport(image_handler),
        clock=lambda: STAMP,
    )


def test_duplicates_are_downloaded_once():
    store = MemoryStore()
    urls = ["https://cdn.example.com/x.jpg", "https://cdn.example.com/x.jpg", "", "https://cdn.example.com/z.jpg"]

    mapping = asyncio.run(make_pipeline(store).fetch_and_store(urls, prefix="product_images"))

    assert mapping == {
        "https://cdn.example.com/x.jpg": f"product_images/{STAMP}_0_x.jpg",
        "https://cdn.example.com/z.jpg": f"product_images/{STAMP}_1_z.jpg",
    }
    assert len(store.objects) == 2
    assert store.objects[f"product_images/{STAMP}_0_x.jpg"] == (b"x.jpg", "image/jpeg")


def test_failed_items_are_omitted():
    store = MemoryStore(fail_keys=("w.jpg",))
    urls = [
        "https://cdn.example.com/x.jpg",
        "https://cdn.example.com/y.jpg",
        "https://cdn.example.com/boom.jpg",
        "https://cdn.example.com/w.jpg",
    ]

    mapping = asyncio.run(make_pipeline(store).fetch_and_store(urls))

    assert list(mapping) == ["https://cdn.example.com/x.jpg"]


def test_empty_input():
    assert asyncio.run(make_pipeline(MemoryStore()).fetch_and_store([])) == {}


def test_concurrency_is_bounded():
    active = 0
    peak = 0

    class SlowStore(MediaStore):
        async def put(self, key, data, content_type):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return key

    urls = [f"https://cdn.example.com/{i}.jpg" for i in range(12)]
    mapping = asyncio.run(make_pipeline(SlowStore(), concurrency=3).fetch_and_store(urls))

    assert len(mapping) == 12
    assert peak <= 3


def test_local_store_writes_under_root(tmp_path):
    pipeline = make_pipeline(LocalMediaStore(root=str(tmp_path)))
    mapping = asyncio.run(pipeline.fetch_and_store(["https://cdn.example.com/x.jpg?v=2"], prefix="p"))

    key = mapping["https://cdn.example.com/x.jpg?v=2"]
    assert key == f"p/{STAMP}_0_x.jpg"
    assert (tmp_path / key).read_bytes() == b"x.jpg"


def test_build_storage_key():
    assert build_storage_key("p", 3, "https://cdn.example.com/a/b.png?w=100", 42) == "p/42_3_b.png"
    assert build_storage_key("p", 1, "https://cdn.example.com/", 42) == "p/42_1_image_1.jpg"
    long_name = "a" * 300 + ".jpg"
    assert build_storage_key("p", 2, f"https://cdn.example.com/{long_name}", 42) == "p/42_2_image_2.jpg"


def test_dedupe_urls_keeps_first_seen_order():
    assert dedupe_urls(["b", "a", "", "b", "c", "a"]) == ["b", "a", "c"]


def test_invalid_concurrency():
    with pytest.raises(ValueError):
        MediaPipeline(store=MemoryStore(), concurrency=0)


def _product():
    red = Variant(external_id="A1", size="S", color="Red", images=["https://c/red.jpg", "https://c/main.jpg"])
    blue = Variant(external_id="A2", size="M", color="Blue", images=["https://c/blue.jpg"])
    return Product(
        title="Shirt",
        images=["https://c/main.jpg", "https://c/side.jpg"],
        variants=[red, blue],
        current_selection=red,
    )


def test_collect_image_urls_aggregates_everything():
    assert collect_image_urls(_product()) == [
        "https://c/main.jpg",
        "https://c/side.jpg",
        "https://c/red.jpg",
        "https://c/blue.jpg",
    ]


def test_apply_image_keys_falls_back_to_original_url():
    product = _product()
    mapping = {"https://c/main.jpg": "k/main.jpg", "https://c/red.jpg": "k/red.jpg"}

    updated = apply_image_keys(product, mapping)

    assert updated.images == ["k/main.jpg", "https://c/side.jpg"]
    assert updated.current_selection.images == ["k/red.jpg", "k/main.jpg"]
    assert updated.variants[1].images == ["https://c/blue.jpg"]
    # L'original n'est pas modifié
    assert product.images == ["https://c/main.jpg", "https://c/side.jpg"]


def test_malformed_url_does_not_abort_the_batch():
    store = MemoryStore()
    urls = ["http://a/x.jpg", "http://a/y\x00.jpg"]

    mapping = asyncio.run(make_pipeline(store).fetch_and_store(urls))

    assert mapping == {"http://a/x.jpg": f"product_images/{STAMP}_0_x.jpg"}


def test_unexpected_store_error_is_absorbed():
    class BrokenStore(MediaStore):
        async def put(self, key, data, content_type):
            raise ConnectionResetError("bucket unreachable")

    urls = ["https://cdn.example.com/x.jpg", "https://cdn.example.com/z.jpg"]

    assert asyncio.run(make_pipeline(BrokenStore()).fetch_and_store(urls)) == {}
