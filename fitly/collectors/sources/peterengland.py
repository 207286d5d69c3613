"""Collector Peter England (peterengland.abfrl.in)."""
from bs4 import BeautifulSoup

from fitly.collectors.base import BaseCollector, clean_text, first_text, select_attrs
from fitly.models.product import Product

SOURCE = "peterengland"


def title_from_page_title(doc: BeautifulSoup) -> str:
    # "<Nom> Online - <ID> | Peter England"
    page_title = doc.title.get_text() if doc.title else ""
    if " Online -" not in page_title:
        return ""
    return clean_text(page_title.split(" Online -", 1)[0])


class PeterEnglandCollector(BaseCollector):
    source = SOURCE
    domains = ("peterengland",)

    def is_valid(self, doc: BeautifulSoup) -> bool:
        return (
            doc.select_one("h1.pdp-title") is not None
            or doc.select_one(".ProductDetails__productName") is not None
        )

    def parse(self, doc: BeautifulSoup, url: str) -> Product:
        images = select_attrs(doc, ".Start-image-gallery img", "src")
        if not images:
            images = select_attrs(doc, ".slick-track img", "src")

        return Product(
            title=first_text(doc, "h1.pdp-title", ".ProductDetails__productName")
            or title_from_page_title(doc),
            discounted_price=first_text(doc, ".pdp-price strong", ".ProductDetails__price"),
            mrp=first_text(doc, ".pdp-mrp del"),
            description=first_text(doc, ".pdp-desc"),
            images=images,
        )
