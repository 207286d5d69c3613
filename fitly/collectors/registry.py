"""
Registre des collectors - sélection par URL.

Liste ordonnée construite statiquement: le premier collector dont
can_scrape() accepte l'URL gagne.
"""
from typing import List, Optional, Sequence, Tuple

from fitly.collectors.base import BaseCollector
from fitly.collectors.sources.amazon import AmazonCollector
from fitly.collectors.sources.flipkart import FlipkartCollector
from fitly.collectors.sources.myntra import MyntraCollector
from fitly.collectors.sources.peterengland import PeterEnglandCollector
from fitly.collectors.sources.tatacliq import TataCliqCollector
from fitly.core.exceptions import NoExtractorError
from fitly.core.logging import get_logger
from fitly.services.acquisition import AcquisitionEngine
from fitly.services.url_resolver import resolve_url

logger = get_logger(__name__)


class CollectorRegistry:
    def __init__(self, collectors: Sequence[BaseCollector]):
        self.collectors: List[BaseCollector] = list(collectors)

    @property
    def sources(self) -> List[str]:
        return [c.source for c in self.collectors]

    def select(self, url: str) -> BaseCollector:
        """
        Raises:
            NoExtractorError: aucun collector ne reconnaît l'URL
        """
        for collector in self.collectors:
            if collector.can_scrape(url):
                return collector
        raise NoExtractorError(f"No scraper found for url: {url}", url=url)


def build_default_registry(engine: Optional[AcquisitionEngine] = None) -> CollectorRegistry:
    return CollectorRegistry(
        [
            AmazonCollector(engine),
            FlipkartCollector(engine),
            MyntraCollector(engine),
            TataCliqCollector(engine),
            PeterEnglandCollector(engine),
        ]
    )


_registry: Optional[CollectorRegistry] = None


def get_registry() -> CollectorRegistry:
    global _registry
    if _registry is None:
        _registry = build_default_registry()
    return _registry


async def get_scraper(
    url: str, registry: Optional[CollectorRegistry] = None
) -> Tuple[BaseCollector, str]:
    """
    Résout l'URL (liens raccourcis) puis sélectionne le collector.

    Raises:
        ResolutionError: l'URL n'a pas pu être résolue
        NoExtractorError: aucun collector pour l'URL résolue
    """
    registry = registry or get_registry()
    resolved = await resolve_url(url)
    collector = registry.select(resolved)
    logger.debug("Collector selected", source=collector.source, url=resolved)
    return collector, resolved
