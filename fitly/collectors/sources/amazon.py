"""
Collector Amazon (amazon.in / amazon.com / amzn.*).

Extraction par cascades de sélecteurs (plusieurs générations de templates
coexistent) et reconstruction des variantes taille/couleur à partir des
fragments JSON "twister" dispersés dans les scripts inline:
- variationValues     : dimension -> liste ordonnée des valeurs affichées
- dimensionToAsinMap  : clé composite "i_j" -> ASIN
- dimensions          : ordre des dimensions dans la clé composite
- colorImages         : couleur -> images (hiRes / large / thumb)
"""
import json
import re
from typing import Any, Dict, List, Optional, Sequence

from bs4 import BeautifulSoup

from fitly.collectors.base import (
    BaseCollector,
    clean_text,
    find_json_after,
    first_text,
    next_element_siblings,
    script_texts,
    select_attr,
    select_attrs,
)
from fitly.models.product import Product, Variant

SOURCE = "amazon"

DEFAULT_DIMENSIONS = ("size_name", "color_name")

_ASIN_URL_RE = re.compile(r"/(dp|gp/product)/([A-Z0-9]{10})")
_HIGH_RES_RE = re.compile(r"\._.+_\.")
_PRICE_RE = re.compile(r"(₹|Rs\.?)\s?[\d,]+(\.\d{2})?")
_PARSE_JSON_RE = re.compile(r"jQuery\.parseJSON\('((?:[^'\\]|\\.)*)'\)", re.DOTALL)

_DIMENSIONS_RE = re.compile(r"Dimensions[\w ]*?\s*[-:]\s*(.+)", re.IGNORECASE)
_MATERIAL_RE = re.compile(r"(?:Material|Fabric)[\w ]*?\s*[-:]\s*(.+)", re.IGNORECASE)
_FIT_RE = re.compile(r"Fit(?: Type)?\s*[-:]\s*(.+)", re.IGNORECASE)

_INVISIBLE_CHARS = ("\u200e", "\u200f", "\u200b")

ABOUT_HEADERS = "h1, h2, h3, h4, b, strong"


def to_high_res(url: str) -> str:
    """Supprime le suffixe de redimensionnement: .../71sb+aL._AC_US40_.jpg -> .../71sb+aL.jpg"""
    return _HIGH_RES_RE.sub(".", url)


def extract_asin(url: str, doc: Optional[BeautifulSoup] = None) -> str:
    match = _ASIN_URL_RE.search(url)
    if match:
        return match.group(2)
    if doc is not None:
        return select_attr(doc, "input#ASIN", "value")
    return ""


# =============================================================================
# VARIANTES
# =============================================================================

def _pick_image(entry: Any) -> str:
    if not isinstance(entry, dict):
        return ""
    for key in ("hiRes", "large", "thumb"):
        value = entry.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def _dimension_value(
    variation_values: Dict[str, Any],
    dimensions: Sequence[str],
    position: Optional[int],
    indices: Sequence[int],
) -> str:
    if position is None or position >= len(indices):
        return ""
    values = variation_values.get(dimensions[position])
    index = indices[position]
    if not isinstance(values, list) or index < 0 or index >= len(values):
        return ""
    return str(values[index])


def reconstruct_variants(
    variation_values: Optional[Dict[str, Any]],
    dim_to_asin: Optional[Dict[str, Any]],
    dimensions: Optional[Sequence[str]] = None,
    color_images: Optional[Dict[str, Any]] = None,
) -> List[Variant]:
    """
    Assemble une Variant par clé composite de dimensionToAsinMap.

    Les clés dont le nombre de segments ne correspond pas aux dimensions, ou
    dont un segment n'est pas entier, sont ignorées. Une couleur sans entrée
    dans colorImages donne une variante sans images.
    """
    if not variation_values or not dim_to_asin:
        return []

    dims = [str(d) for d in dimensions] if dimensions else list(DEFAULT_DIMENSIONS)
    size_pos = None
    color_pos = None
    for i, name in enumerate(dims):
        if "size" in name:
            size_pos = i
        if "color" in name:
            color_pos = i
    if size_pos is None and color_pos is None:
        return []

    color_images = color_images or {}
    variants = []
    for key, asin in dim_to_asin.items():
        parts = str(key).split("_")
        if len(parts) != len(dims):
            continue
        try:
            indices = [int(p) for p in parts]
        except ValueError:
            continue

        size = _dimension_value(variation_values, dims, size_pos, indices)
        color = _dimension_value(variation_values, dims, color_pos, indices)

        images = []
        entries = color_images.get(color) if color else None
        if isinstance(entries, list):
            images = [img for img in (_pick_image(e) for e in entries) if img]

        variants.append(Variant(external_id=str(asin), size=size, color=color, images=images))

    return variants


def _parse_json_payloads(script: str) -> List[Dict[str, Any]]:
    payloads = []
    for match in _PARSE_JSON_RE.finditer(script):
        raw = match.group(1)
        if "colorImages" not in raw:
            continue
        try:
            data = json.loads(raw.replace("\\'", "'"))
        except ValueError:
            continue
        if isinstance(data, dict):
            payloads.append(data)
    return payloads


def extract_twister_data(doc: BeautifulSoup) -> Dict[str, Any]:
    """Cherche indépendamment chaque fragment dans tous les scripts (premier trouvé gagne)."""
    found: Dict[str, Any] = {
        "variation_values": None,
        "dim_to_asin": None,
        "dimensions": None,
        "color_images": None,
    }
    for script in script_texts(doc):
        if found["variation_values"] is None and "variationValues" in script:
            found["variation_values"] = find_json_after(script, r'"variationValues"\s*:', dict)
        if found["dim_to_asin"] is None and "dimensionToAsinMap" in script:
            found["dim_to_asin"] = find_json_after(script, r'"dimensionToAsinMap"\s*:', dict)
        if found["dimensions"] is None and '"dimensions"' in script:
            found["dimensions"] = find_json_after(script, r'"dimensions"\s*:', list)
        if found["color_images"] is None and "colorImages" in script:
            for payload in _parse_json_payloads(script):
                if isinstance(payload.get("colorImages"), dict):
                    found["color_images"] = payload["colorImages"]
                    break
            if found["color_images"] is None:
                found["color_images"] = find_json_after(script, r'"colorImages"\s*:', dict)
    return found


# =============================================================================
# CHAMPS
# =============================================================================

def extract_discounted_price(doc: BeautifulSoup) -> str:
    price = first_text(doc, ".priceToPay .a-offscreen")
    if price:
        return price

    whole = first_text(doc, ".priceToPay .a-price-whole")
    if whole:
        symbol = first_text(doc, ".priceToPay .a-price-symbol") or "₹"
        return symbol + whole

    price = first_text(
        doc,
        "#corePriceDisplay_desktop_feature_div .a-price.apexPriceToPay .a-offscreen",
        ".a-price.a-text-price.a-size-medium.apexPriceToPay .a-offscreen",
        "#priceblock_dealprice",
        "#priceblock_ourprice",
        ".a-price .a-offscreen",
    )
    if price:
        return price

    whole = first_text(doc, ".a-price-whole")
    if whole:
        return "₹" + whole.rstrip(".")
    return ""


def extract_mrp(doc: BeautifulSoup, discounted_price: str) -> str:
    mrp = first_text(doc, ".basisPrice .a-offscreen", "span[data-a-strike='true'] .a-offscreen")
    if mrp:
        return mrp
    # Premier prix barré qui n'est pas le prix de vente
    for block in doc.select("span.a-text-price"):
        text = clean_text("".join(el.get_text() for el in block.select(".a-offscreen")))
        if text and text != discounted_price:
            return text
    return ""


def extract_discount(doc: BeautifulSoup) -> str:
    discount = first_text(doc, ".savingsPercentage")
    if discount:
        return discount
    for el in doc.select(".a-color-price"):
        text = clean_text(el.get_text())
        if "%" in text and "-" in text:
            return text
    return ""


def _about_this_item_lists(doc: BeautifulSoup):
    """Listes <li> associées au premier en-tête "About this item" (dans le bloc, puis les frères suivants)."""
    for header in doc.select(ABOUT_HEADERS):
        if "about this item" not in header.get_text().lower():
            continue
        parent = header.parent
        if parent is None:
            return
        yield parent.select("ul li")
        for sibling in next_element_siblings(parent, 5):
            if sibling.name == "ul" or sibling.select_one("ul") is not None:
                yield sibling.select("li")
        return


def extract_description(doc: BeautifulSoup) -> str:
    lines = [clean_text(el.get_text()) for el in doc.select("#feature-bullets li span.a-list-item")]
    lines = [line for line in lines if line]

    if not lines:
        text = first_text(doc, "#productDescription")
        if text:
            lines = [text]

    if not lines:
        for items in _about_this_item_lists(doc):
            lines = [
                text
                for text in (clean_text(li.get_text()) for li in items)
                if len(text) > 10 and "Make sure this fits" not in text
            ]
            if lines:
                break

    return "\n".join(lines)


def extract_categories(doc: BeautifulSoup) -> List[str]:
    crumbs = [clean_text(li.get_text()) for li in doc.select("#wayfinding-breadcrumbs_feature_div ul li")]
    return [c for c in crumbs if c and c != "›"]


def _match_value(regex: re.Pattern, text: str) -> str:
    match = regex.search(text)
    if match:
        return clean_text(match.group(1))
    for sep in ("-", ":"):
        if sep in text:
            return clean_text(text.split(sep, 1)[1])
    return ""


def _fill_from_text(attrs: Dict[str, str], text: str) -> None:
    text = clean_text(text)
    if not text:
        return
    if not attrs["dimensions"] and "Dimensions" in text:
        attrs["dimensions"] = _match_value(_DIMENSIONS_RE, text)
    if not attrs["material"] and ("Material" in text or "Fabric" in text):
        attrs["material"] = _match_value(_MATERIAL_RE, text)
    if not attrs["fit_type"] and "Fit" in text:
        attrs["fit_type"] = _match_value(_FIT_RE, text)


def extract_attributes(doc: BeautifulSoup) -> Dict[str, str]:
    """Dimensions, matière et coupe: table technique, puis product facts, puis puces texte."""
    attrs = {"dimensions": "", "material": "", "fit_type": ""}

    for row in doc.select("#productDetails_techSpec_section_1 tr"):
        key = first_text(row, "th")
        value = first_text(row, "td")
        if "Dimensions" in key:
            attrs["dimensions"] = value
        if "Material" in key or "Fabric" in key:
            attrs["material"] = value
        if "Fit" in key:
            attrs["fit_type"] = value

    for fact in doc.select(".product-facts-detail"):
        key = first_text(fact, ".a-col-left span")
        value = first_text(fact, ".a-col-right span")
        if "Material" in key:
            attrs["material"] = value
        if "Fit" in key:
            attrs["fit_type"] = value

    for li in doc.select("#detailBullets_feature_div li, #feature-bullets li"):
        _fill_from_text(attrs, li.get_text())

    if not all(attrs.values()):
        for items in _about_this_item_lists(doc):
            for li in items:
                _fill_from_text(attrs, li.get_text())
            if attrs["material"] and attrs["fit_type"]:
                break

    if attrs["dimensions"]:
        dims = attrs["dimensions"]
        for char in _INVISIBLE_CHARS:
            dims = dims.replace(char, "")
        attrs["dimensions"] = clean_text(dims)

    return attrs


def price_near_discount(doc: BeautifulSoup, discount: str) -> str:
    """Prix de vente retrouvé à proximité du badge de réduction."""
    for badge in doc.select(".savingsPercentage, .a-color-price"):
        if discount not in badge.get_text():
            continue
        parent = badge.parent
        if parent is None:
            return ""
        candidates = [parent]
        if parent.parent is not None:
            candidates.append(parent.parent)
        candidates.extend(parent.find_previous_siblings())
        candidates.extend(parent.find_next_siblings())
        for node in candidates:
            if not hasattr(node, "select_one"):
                continue
            price = first_text(node, ".a-price .a-offscreen")
            if price:
                return price
        return ""
    return ""


def extract_images(doc: BeautifulSoup) -> List[str]:
    images = [to_high_res(src) for src in select_attrs(doc, "#altImages ul li.item img", "src")]
    if images:
        return images

    dynamic = select_attr(doc, "#landingImage", "data-a-dynamic-image") or select_attr(
        doc, "#imgBlkFront", "data-a-dynamic-image"
    )
    if dynamic:
        try:
            mapping = json.loads(dynamic)
        except ValueError:
            mapping = None
        # Une seule image principale: les clés sont la même image à plusieurs tailles
        if isinstance(mapping, dict) and mapping:
            return [next(iter(mapping))]

    src = select_attr(doc, "#landingImage", "src")
    return [src] if src else []


# =============================================================================
# COLLECTOR
# =============================================================================

class AmazonCollector(BaseCollector):
    source = SOURCE
    domains = ("amazon", "amzn")

    def is_valid(self, doc: BeautifulSoup) -> bool:
        return bool(first_text(doc, "#productTitle"))

    def parse(self, doc: BeautifulSoup, url: str) -> Product:
        discounted_price = extract_discounted_price(doc)
        mrp = extract_mrp(doc, discounted_price)

        if not discounted_price:
            # Premier montant trouvé dans le corps (peut être un autre prix de la page)
            body_text = doc.body.get_text(" ") if doc.body else doc.get_text(" ")
            match = _PRICE_RE.search(body_text)
            if match:
                discounted_price = clean_text(match.group(0))

        discount = extract_discount(doc)
        if not discounted_price and discount:
            discounted_price = price_near_discount(doc, discount)

        categories = extract_categories(doc)
        attrs = extract_attributes(doc)
        images = extract_images(doc)

        twister = extract_twister_data(doc)
        variants = reconstruct_variants(
            twister["variation_values"],
            twister["dim_to_asin"],
            twister["dimensions"],
            twister["color_images"],
        )

        return Product(
            title=first_text(doc, "#productTitle"),
            mrp=mrp,
            discounted_price=discounted_price,
            discount_percent=discount,
            description=extract_description(doc),
            category=" > ".join(categories),
            subcategory=categories[-1] if categories else "",
            dimensions=attrs["dimensions"],
            material=attrs["material"],
            fit_type=attrs["fit_type"],
            images=images,
            variants=variants,
            current_selection=current_selection(doc, url, variants, images),
        )


def current_selection(
    doc: BeautifulSoup, url: str, variants: List[Variant], images: List[str]
) -> Optional[Variant]:
    """Variante correspondant à l'ASIN de la page, sinon synthétisée depuis les sélecteurs affichés."""
    asin = extract_asin(url, doc)
    if asin:
        for variant in variants:
            if variant.external_id == asin:
                return variant

    size = first_text(doc, "#variation_size_name .selection")
    color = first_text(doc, "#variation_color_name .selection")
    if size or color:
        return Variant(external_id=asin, size=size, color=color, images=list(images))
    return None
