"""
Media Pipeline - Téléchargement et stockage des images produit.

- Dédoublonnage (ordre de première apparition, URLs vides ignorées)
- Fan-out borné par un asyncio.Semaphore
- Clé de stockage: <prefix>/<stamp>_<index>_<filename>, stamp pris une
  seule fois par appel, index = position de première apparition
- Toute erreur sur une image est loggée et l'image omise:
  fetch_and_store() ne lève jamais
"""
import asyncio
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import httpx

from fitly.core import config
from fitly.core.exceptions import HTTPError, StorageError
from fitly.core.logging import get_logger
from fitly.models.product import Product, Variant
from fitly.utils.http_stealth import get_random_user_agent

logger = get_logger(__name__)

MAX_FILENAME_LENGTH = 255


# =============================================================================
# STOCKAGE
# =============================================================================

class MediaStore:
    """Backend de stockage des médias (disque, objet...)."""

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        raise NotImplementedError


class LocalMediaStore(MediaStore):
    def __init__(self, root: str = config.MEDIA_ROOT):
        self.root = Path(root)

    def _write(self, key: str, data: bytes) -> None:
        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        try:
            await asyncio.to_thread(self._write, key, data)
        except OSError as e:
            raise StorageError(f"Écriture impossible: {e}", url=key) from e
        return key


# =============================================================================
# HELPERS
# =============================================================================

def dedupe_urls(urls: Sequence[str]) -> List[str]:
    seen = set()
    result = []
    for url in urls:
        if not url or url in seen:
            continue
        seen.add(url)
        result.append(url)
    return result


def build_storage_key(prefix: str, index: int, url: str, stamp: int) -> str:
    filename = url.rsplit("/", 1)[-1].split("?", 1)[0].split("#", 1)[0]
    if not filename or len(filename) > MAX_FILENAME_LENGTH:
        filename = f"image_{index}.jpg"
    return f"{prefix}/{stamp}_{index}_{filename}"


def collect_image_urls(product: Product) -> List[str]:
    """Toutes les images du produit: principales, sélection courante, variantes."""
    urls = list(product.images)
    if product.current_selection is not None:
        urls.extend(product.current_selection.images)
    for variant in product.variants:
        urls.extend(variant.images)
    return dedupe_urls(urls)


def _remap(images: List[str], mapping: Dict[str, str]) -> List[str]:
    # Repli sur l'URL d'origine si l'upload a échoué
    return [mapping.get(url, url) for url in images]


def _remap_variant(variant: Variant, mapping: Dict[str, str]) -> Variant:
    return variant.model_copy(update={"images": _remap(variant.images, mapping)})


def apply_image_keys(product: Product, mapping: Dict[str, str]) -> Product:
    """Remplace les URLs par les clés de stockage dans une copie du produit."""
    selection = product.current_selection
    return product.model_copy(
        update={
            "images": _remap(product.images, mapping),
            "variants": [_remap_variant(v, mapping) for v in product.variants],
            "current_selection": _remap_variant(selection, mapping) if selection is not None else None,
        }
    )


# =============================================================================
# PIPELINE
# =============================================================================

class MediaPipeline:
    def __init__(
        self,
        store: Optional[MediaStore] = None,
        concurrency: int = config.MEDIA_CONCURRENCY,
        timeout: float = config.MEDIA_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], int] = time.time_ns,
    ):
        if concurrency <= 0:
            raise ValueError("concurrency must be positive")
        self.store = store or LocalMediaStore()
        self.concurrency = concurrency
        self.timeout = timeout
        self.transport = transport
        self.clock = clock

    async def _download(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        resp = await client.get(url)
        if resp.status_code != 200:
            raise HTTPError("Image download failed", status_code=resp.status_code, url=url)
        return resp

    async def _process(
        self,
        client: httpx.AsyncClient,
        semaphore: asyncio.Semaphore,
        url: str,
        key: str,
    ) -> Optional[str]:
        async with semaphore:
            try:
                resp = await self._download(client, url)
                content_type = resp.headers.get("content-type", "image/jpeg")
                return await self.store.put(key, resp.content, content_type)
            except Exception as e:
                # Une erreur omet l'image sans interrompre le lot
                logger.warning(
                    "Image skipped",
                    url=url,
                    error_type=type(e).__name__,
                    status_code=getattr(e, "status_code", None),
                    error=str(e),
                )
                return None

    async def fetch_and_store(self, urls: Sequence[str], prefix: str = config.MEDIA_PREFIX) -> Dict[str, str]:
        """
        Télécharge et stocke chaque image unique.

        Returns:
            Dict URL d'origine -> clé de stockage (seulement les succès)
        """
        unique = dedupe_urls(urls)
        if not unique:
            return {}

        stamp = self.clock()
        keys = [build_storage_key(prefix, i, url, stamp) for i, url in enumerate(unique)]
        semaphore = asyncio.Semaphore(self.concurrency)
        start = time.perf_counter()

        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={"User-Agent": get_random_user_agent()},
            transport=self.transport,
        ) as client:
            results = await asyncio.gather(
                *(self._process(client, semaphore, url, key) for url, key in zip(unique, keys))
            )

        mapping = {url: key for url, key in zip(unique, results) if key is not None}
        logger.info(
            "Media stored",
            stored=len(mapping),
            requested=len(unique),
            duration_ms=(time.perf_counter() - start) * 1000,
        )
        return mapping
