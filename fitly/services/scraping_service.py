"""
Point d'entrée du scraping produit: résolution, sélection du collector,
acquisition puis extraction.
"""
import asyncio
import concurrent.futures
from typing import Optional

from fitly.collectors.registry import CollectorRegistry, get_scraper
from fitly.core.logging import set_trace_id
from fitly.models.product import Product


async def scrape_product(url: str, registry: Optional[CollectorRegistry] = None) -> Product:
    """
    Scrape une URL produit (liens raccourcis acceptés).

    Raises:
        ResolutionError: URL non résolue
        NoExtractorError: site non supporté
        AllStrategiesFailedError: aucune stratégie n'a produit de page valide
    """
    collector, resolved = await get_scraper(url, registry)
    return await collector.scrape_product(resolved)


async def _scrape_with_trace(url: str, registry: Optional[CollectorRegistry]) -> Product:
    set_trace_id()
    return await scrape_product(url, registry)


def scrape_product_sync(url: str, registry: Optional[CollectorRegistry] = None) -> Product:
    """Wrapper synchrone - gère les event loops imbriquées."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop and loop.is_running():
        # Déjà dans un event loop: exécution dans un thread séparé
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(asyncio.run, _scrape_with_trace(url, registry))
            return future.result()
    return asyncio.run(_scrape_with_trace(url, registry))
