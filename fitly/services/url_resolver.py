"""
Résolution des URLs raccourcies (amzn.to, fkrt.it, ...) vers l'URL finale.

HEAD d'abord (pas de corps), GET en repli si le serveur refuse HEAD.
Une URL déjà canonique est retournée telle quelle.
"""
from typing import Optional

import httpx

from fitly.core import config
from fitly.core.exceptions import ResolutionError
from fitly.core.logging import get_logger
from fitly.utils.http_stealth import get_random_user_agent

logger = get_logger(__name__)


async def resolve_url(
    url: str,
    timeout: float = config.RESOLVE_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """
    Suit la chaîne de redirections et retourne l'URL finale.

    Raises:
        ResolutionError: ni HEAD ni GET n'ont abouti
    """
    headers = {"User-Agent": get_random_user_agent()}
    async with httpx.AsyncClient(
        follow_redirects=True,
        timeout=timeout,
        headers=headers,
        transport=transport,
    ) as client:
        head_resp = None
        try:
            head_resp = await client.head(url)
            if head_resp.status_code == 200:
                return _final_url(url, head_resp)
            logger.debug(
                "HEAD not accepted, retrying with GET", url=url, status_code=head_resp.status_code
            )
        except httpx.HTTPError as e:
            logger.debug("HEAD failed, retrying with GET", url=url, error=str(e))

        try:
            resp = await client.get(url)
        except httpx.HTTPError as e:
            # HEAD a atteint l'origine: son URL finale reste valable
            if head_resp is not None:
                logger.debug("GET failed, keeping HEAD result", url=url, error=str(e))
                return _final_url(url, head_resp)
            raise ResolutionError(f"Impossible de résoudre l'URL: {e}", url=url) from e

        return _final_url(url, resp)


def _final_url(url: str, resp: httpx.Response) -> str:
    final = str(resp.url)
    if final != url:
        logger.info("URL resolved", url=url, resolved=final, redirects=len(resp.history))
    return final
