"""
Scrape Router - Extraction d'un produit depuis son URL.
Endpoints: /v1/scrape
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from pydantic import BaseModel

from fitly.collectors.registry import CollectorRegistry, get_registry
from fitly.core import config
from fitly.core.exceptions import (
    AllStrategiesFailedError,
    ExhaustedError,
    NoExtractorError,
    ResolutionError,
    ScraperError,
)
from fitly.services.media_pipeline import MediaPipeline, apply_image_keys, collect_image_urls
from fitly.services.scraping_service import scrape_product

router = APIRouter(prefix="/v1", tags=["scrape"])

# Délai suggéré quand le pool navigateur est saturé
RETRY_AFTER_SECONDS = 30


class ScrapeRequest(BaseModel):
    url: Optional[str] = None


def get_scrape_registry() -> CollectorRegistry:
    return get_registry()


def get_media_pipeline() -> Optional[MediaPipeline]:
    if not config.MEDIA_ENABLED:
        return None
    return MediaPipeline()


async def _scrape(
    url: Optional[str],
    registry: CollectorRegistry,
    pipeline: Optional[MediaPipeline],
) -> Dict[str, Any]:
    url = (url or "").strip()
    if not url:
        raise HTTPException(status_code=400, detail="URL is required")

    try:
        product = await scrape_product(url, registry)
    except (NoExtractorError, ResolutionError) as e:
        logger.warning(f"Scrape rejected url={url}: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except AllStrategiesFailedError as e:
        if isinstance(e.last_error, ExhaustedError):
            logger.warning(f"Browser pool exhausted url={url}")
            raise HTTPException(
                status_code=503,
                detail="Scraper busy, retry later",
                headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
            )
        logger.error(f"Scrape failed url={url}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to scrape product: {e}")
    except ScraperError as e:
        logger.error(f"Scrape failed url={url}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to scrape product: {e}")

    if pipeline is not None:
        image_urls = collect_image_urls(product)
        if image_urls:
            mapping = await pipeline.fetch_and_store(image_urls)
            logger.info(f"Images stored {len(mapping)}/{len(image_urls)} url={url}")
            product = apply_image_keys(product, mapping)

    return product.to_dict()


@router.get("/scrape")
async def scrape_get(
    url: Optional[str] = None,
    registry: CollectorRegistry = Depends(get_scrape_registry),
    pipeline: Optional[MediaPipeline] = Depends(get_media_pipeline),
):
    """
    Usage: /v1/scrape?url=https://www.amazon.in/dp/B0XXXXXXXX
    """
    return await _scrape(url, registry, pipeline)


@router.post("/scrape")
async def scrape_post(
    body: Optional[ScrapeRequest] = None,
    url: Optional[str] = None,
    registry: CollectorRegistry = Depends(get_scrape_registry),
    pipeline: Optional[MediaPipeline] = Depends(get_media_pipeline),
):
    """Accepte l'URL en query (?url=) ou dans le corps JSON {"url": "..."}."""
    return await _scrape(url or (body.url if body else None), registry, pipeline)
