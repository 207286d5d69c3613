"""
Collector de base - Interface commune des extracteurs par site.

Un collector sait:
- reconnaître ses URLs (can_scrape)
- valider qu'une page contient bien son ancre produit (is_valid)
- transformer un document en Product (parse), sans jamais lever d'exception
  pour un champ manquant

L'acquisition est déléguée à l'AcquisitionEngine.
"""
import json
import re
import time
from typing import Any, Iterable, List, Optional

from bs4 import BeautifulSoup, Tag

from fitly.core.exceptions import ScraperError
from fitly.core.logging import get_logger
from fitly.models.product import Product
from fitly.services.acquisition import AcquisitionEngine, get_engine

logger = get_logger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_JSON_DECODER = json.JSONDecoder()


# =============================================================================
# HELPERS DE PARSING
# =============================================================================

def clean_text(text: Optional[str]) -> str:
    """Normalise les espaces (y compris insécables) et retire les bords."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text.replace("\xa0", " ")).strip()


def first_text(root: Any, *selectors: str) -> str:
    """Cascade: texte du premier élément non vide, dans l'ordre des sélecteurs."""
    for selector in selectors:
        el = root.select_one(selector)
        if el is None:
            continue
        text = clean_text(el.get_text())
        if text:
            return text
    return ""


def select_attr(root: Any, selector: str, attr: str) -> str:
    el = root.select_one(selector)
    if el is None:
        return ""
    value = el.get(attr)
    if isinstance(value, list):
        value = " ".join(value)
    return (value or "").strip()


def select_attrs(root: Any, selector: str, attr: str) -> List[str]:
    """Valeurs non vides d'un attribut sur tous les éléments correspondants."""
    values = []
    for el in root.select(selector):
        value = el.get(attr)
        if value and isinstance(value, str) and value.strip():
            values.append(value.strip())
    return values


def script_texts(doc: BeautifulSoup) -> Iterable[str]:
    for script in doc.find_all("script"):
        text = script.string if script.string is not None else script.get_text()
        if text:
            yield text


def find_json_after(text: str, key_pattern: str, expected_type: Optional[type] = None) -> Optional[Any]:
    """
    Extrait la valeur JSON (objet ou tableau) qui suit le motif donné.

    Utilise raw_decode pour respecter l'imbrication, là où une regex
    s'arrêterait à la première accolade fermante. Les occurrences dont la
    valeur n'est pas décodable (ou pas du type attendu) sont ignorées.
    """
    for match in re.finditer(key_pattern, text):
        start = match.end()
        while start < len(text) and text[start] in " \t\r\n":
            start += 1
        if start >= len(text) or text[start] not in "{[":
            continue
        try:
            value, _ = _JSON_DECODER.raw_decode(text, start)
        except ValueError:
            continue
        if expected_type is not None and not isinstance(value, expected_type):
            continue
        return value
    return None


def next_element_siblings(node: Tag, limit: int) -> Iterable[Tag]:
    sibling = node.find_next_sibling()
    count = 0
    while sibling is not None and count < limit:
        yield sibling
        sibling = sibling.find_next_sibling()
        count += 1


# =============================================================================
# BASE COLLECTOR
# =============================================================================

class BaseCollector:
    source: str = "base"
    domains: tuple = ()

    def __init__(self, engine: Optional[AcquisitionEngine] = None):
        self._engine = engine

    @property
    def engine(self) -> AcquisitionEngine:
        if self._engine is None:
            self._engine = get_engine()
        return self._engine

    def can_scrape(self, url: str) -> bool:
        lowered = url.lower()
        return any(domain in lowered for domain in self.domains)

    def is_valid(self, doc: BeautifulSoup) -> bool:
        """Ancre produit propre au site."""
        raise NotImplementedError

    def parse(self, doc: BeautifulSoup, url: str) -> Product:
        raise NotImplementedError

    async def scrape_product(self, url: str) -> Product:
        """
        Récupère la page via l'engine puis extrait le produit.

        Raises:
            ScraperError: échec d'acquisition (le parsing ne lève jamais)
        """
        logger.scrape_start(self.source, url)
        start = time.perf_counter()
        try:
            doc = await self.engine.fetch(url, self.is_valid)
        except ScraperError as e:
            e.source = e.source or self.source
            logger.scrape_error(self.source, url, e, duration_ms=(time.perf_counter() - start) * 1000)
            raise

        product = self.parse(doc, url)
        logger.scrape_success(
            self.source,
            url,
            duration_ms=(time.perf_counter() - start) * 1000,
            variants_count=len(product.variants),
        )
        return product
