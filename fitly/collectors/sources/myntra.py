"""
Collector Myntra.

Les pages produit embarquent tout le PDP dans `window.__myx = {...}`;
on lit pdpData en priorité et on retombe sur les classes .pdp-* sinon.
"""
import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from fitly.collectors.base import BaseCollector, clean_text, find_json_after, first_text, script_texts
from fitly.models.product import Product

SOURCE = "myntra"

_MYX_PATTERN = r"window\.__myx\s*="
_STYLE_URL_RE = re.compile(r"url\(\s*([\"']?)(.*?)\1\s*\)")


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _format_price(value: Any) -> str:
    if value is None or value == "":
        return ""
    text = str(value)
    if "Rs" not in text:
        text = "Rs. " + text
    return text


def _details_text(details: Any) -> str:
    # productDetails: HTML brut ou liste de sections {title, description}
    if isinstance(details, str):
        return clean_text(BeautifulSoup(details, "html.parser").get_text(" "))
    if isinstance(details, list):
        parts = []
        for section in details:
            if isinstance(section, dict):
                text = _details_text(section.get("description"))
                if text:
                    parts.append(text)
        return "\n".join(parts)
    return ""


def extract_myx(doc: BeautifulSoup) -> Optional[Dict[str, Any]]:
    for script in script_texts(doc):
        if "window.__myx" in script:
            data = find_json_after(script, _MYX_PATTERN, dict)
            if data is not None:
                return data
    return None


def album_images(pdp: Dict[str, Any]) -> List[str]:
    media = pdp.get("media")
    if not isinstance(media, dict):
        return []
    images = []
    for album in media.get("albums") or []:
        if not isinstance(album, dict):
            continue
        for image in album.get("images") or []:
            if isinstance(image, dict):
                src = _as_str(image.get("src"))
                if src:
                    images.append(src)
    return images


def style_images(doc: BeautifulSoup) -> List[str]:
    images = []
    for el in doc.select(".image-grid-image"):
        match = _STYLE_URL_RE.search(el.get("style") or "")
        if match and match.group(2):
            images.append(match.group(2))
    return images


class MyntraCollector(BaseCollector):
    source = SOURCE
    domains = ("myntra.com",)

    def is_valid(self, doc: BeautifulSoup) -> bool:
        if doc.select_one("h1") is not None:
            return True
        return any("window.__myx" in script for script in script_texts(doc))

    def parse(self, doc: BeautifulSoup, url: str) -> Product:
        product = Product()

        data = extract_myx(doc)
        pdp = data.get("pdpData") if data else None
        if isinstance(pdp, dict):
            product = Product(
                title=_as_str(pdp.get("name")) or _as_str(pdp.get("title")),
                mrp=_format_price(pdp.get("mrp")),
                discounted_price=_format_price(pdp.get("price")),
                description=_details_text(pdp.get("productDetails")),
                images=album_images(pdp),
            )

        if not product.title:
            product = Product(
                title=first_text(doc, ".pdp-title", ".pdp-name"),
                discounted_price=first_text(doc, ".pdp-price"),
                mrp=first_text(doc, ".pdp-mrp"),
                discount_percent=first_text(doc, ".pdp-discount"),
                description=first_text(doc, ".pdp-product-description-content"),
                images=style_images(doc),
            )

        return product
