"""
Collector TataCliq - contenu entièrement rendu côté client.

L'ancre n'apparaît qu'après exécution du JS, donc la stratégie HTTP échoue
presque toujours ici et l'escalade vers un navigateur est attendue.
"""
from bs4 import BeautifulSoup

from fitly.collectors.base import BaseCollector, first_text, select_attr, select_attrs
from fitly.models.product import Product

SOURCE = "tatacliq"

TITLE_SELECTORS = (
    "h1.ProductDescriptionPage__productName",
    ".ProductDetailsMainCard__productName",
)


class TataCliqCollector(BaseCollector):
    source = SOURCE
    domains = ("tatacliq.com",)

    def is_valid(self, doc: BeautifulSoup) -> bool:
        return (
            doc.select_one(".ProductDescriptionPage__productName") is not None
            or doc.select_one(".ProductDetailsMainCard__productName") is not None
        )

    def parse(self, doc: BeautifulSoup, url: str) -> Product:
        images = select_attrs(doc, "img.ImageGallery__image", "src")
        if not images:
            og_image = select_attr(doc, "meta[property='og:image']", "content")
            images = [og_image] if og_image else []

        return Product(
            title=first_text(doc, *TITLE_SELECTORS),
            discounted_price=first_text(
                doc, ".ProductDescriptionPage__price", ".ProductDetailsMainCard__price"
            ),
            mrp=first_text(doc, ".ProductDescriptionPage__mrp", ".ProductDetailsMainCard__mrp"),
            discount_percent=first_text(doc, ".ProductDescriptionPage__discount"),
            description=first_text(
                doc,
                ".ProductDescriptionPage__productDescription",
                ".ProductDetailsMainCard__description",
            ),
            images=images,
        )
