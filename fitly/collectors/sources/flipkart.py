"""
Collector Flipkart.

Deux générations de classes CSS obfusquées coexistent (anciennes _30jeq3...,
nouvelles Nx9bqj...): chaque champ essaie l'ancienne puis la nouvelle.
"""
from bs4 import BeautifulSoup

from fitly.collectors.base import BaseCollector, first_text, select_attr, select_attrs
from fitly.models.product import Product

SOURCE = "flipkart"


def to_high_res(url: str) -> str:
    """Miniature 128x128 -> 832x832 (même CDN rukminim)."""
    return url.replace("/128/128/", "/832/832/", 1)


class FlipkartCollector(BaseCollector):
    source = SOURCE
    domains = ("flipkart.com",)

    def is_valid(self, doc: BeautifulSoup) -> bool:
        return doc.select_one("h1") is not None or doc.select_one(".B_NuCI") is not None

    def parse(self, doc: BeautifulSoup, url: str) -> Product:
        images = [to_high_res(src) for src in select_attrs(doc, "ul._3GnUWp li._20Gt85 img", "src")]
        if not images:
            main = select_attr(doc, "img._396cs4", "src")
            images = [main] if main else []

        return Product(
            title=first_text(doc, ".B_NuCI", "h1.yhB1nd span", "h1"),
            discounted_price=first_text(doc, "div._30jeq3._16Jk6d", "div.Nx9bqj.CxhGGd"),
            mrp=first_text(doc, "div._3I9_wc._2p6lqe", "div.yRaY8j.A6ZONS"),
            discount_percent=first_text(doc, "div._3Ay6Sb._31Dcoz span", "div.UkUFwK.WW8yVX span"),
            description=first_text(doc, "div._1mXcCf", "div.yN5-Ad"),
            images=images,
        )
