"""
Stratégie 1 - HTTP direct via cloudscraper.

La moins chère: une seule requête GET avec headers navigateur. Suffit pour les
sites peu protégés, échoue vite sur Akamai/PerimeterX.
"""
import asyncio

import requests
from cloudscraper.exceptions import CaptchaException, CloudflareException

from fitly.core import config
from fitly.core.exceptions import BlockedError, FetchTimeoutError, HTTPError, NetworkError
from fitly.core.logging import get_logger
from fitly.services.acquisition import Attempt, AttemptState, FetchStrategy
from fitly.utils.http_stealth import create_stealth_scraper

logger = get_logger(__name__)


def fetch_html(url: str, timeout: float = config.HTTP_TIMEOUT) -> str:
    """
    GET synchrone avec session cloudscraper stealth.

    Raises:
        BlockedError: 403/429/503 ou challenge Cloudflare non résolu
        HTTPError: autre status != 200
        FetchTimeoutError / NetworkError: erreurs de transport
    """
    scraper, headers = create_stealth_scraper()
    try:
        resp = scraper.get(url, headers=headers, timeout=timeout)
    except (CloudflareException, CaptchaException) as e:
        raise BlockedError(f"Challenge anti-bot non résolu: {e}", url=url) from e
    except requests.exceptions.Timeout as e:
        raise FetchTimeoutError(f"Timeout après {timeout:.0f}s", url=url) from e
    except requests.exceptions.RequestException as e:
        raise NetworkError(f"Erreur de connexion: {e}", url=url) from e
    finally:
        scraper.close()

    if resp.status_code in (403, 429, 503):
        raise BlockedError("Bloqué par la protection anti-bot", url=url, status_code=resp.status_code)
    if resp.status_code != 200:
        raise HTTPError("Erreur HTTP", status_code=resp.status_code, url=url)

    return resp.text


class HttpStrategy(FetchStrategy):
    name = "http"

    def __init__(self, timeout: float = config.HTTP_TIMEOUT):
        self.request_timeout = timeout
        # Marge pour la résolution du challenge cloudscraper
        self.timeout = timeout + 15

    async def fetch(self, url: str, attempt: Attempt) -> str:
        attempt.advance(AttemptState.NAVIGATING)
        html = await asyncio.to_thread(fetch_html, url, self.request_timeout)
        attempt.advance(AttemptState.CAPTURING)
        logger.debug("HTTP fetch done", strategy=self.name, url=url, response_size=len(html))
        return html
