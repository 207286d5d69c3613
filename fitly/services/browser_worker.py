"""
Stratégie 2 - Navigateur headless (Playwright).

Nouvelle instance chromium à chaque tentative (pas de pool, plus stable).
Le contenu est capturé après un délai aléatoire laissant le JS hydrater la page.
"""
import asyncio
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from fitly.core import config
from fitly.core.exceptions import BlockedError, FetchTimeoutError, HTTPError, NetworkError
from fitly.core.logging import get_logger
from fitly.services.acquisition import Attempt, AttemptState, FetchStrategy
from fitly.utils.http_stealth import (
    BROWSER_EXTRA_HEADERS,
    STEALTH_SCRIPT,
    async_random_delay,
    get_random_chrome_user_agent,
    get_random_viewport,
)

logger = get_logger(__name__)

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
]


class HeadlessBrowserStrategy(FetchStrategy):
    name = "headless"

    def __init__(
        self,
        timeout: float = config.HEADLESS_TIMEOUT,
        delay_min: float = config.HEADLESS_DELAY_MIN,
        delay_max: float = config.HEADLESS_DELAY_MAX,
        wait_for_selector: Optional[str] = "body",
    ):
        self.timeout = timeout
        self.delay_min = delay_min
        self.delay_max = delay_max
        self.wait_for_selector = wait_for_selector

    async def fetch(self, url: str, attempt: Attempt) -> str:
        playwright = None
        browser = None
        try:
            attempt.advance(AttemptState.LAUNCHING)
            playwright = await async_playwright().start()
            browser = await playwright.chromium.launch(headless=True, args=LAUNCH_ARGS)

            width, height = get_random_viewport()
            context = await browser.new_context(
                viewport={"width": width, "height": height},
                user_agent=get_random_chrome_user_agent(),
                locale="en-US",
                extra_http_headers=BROWSER_EXTRA_HEADERS,
            )
            await context.add_init_script(STEALTH_SCRIPT)
            page = await context.new_page()

            attempt.advance(AttemptState.NAVIGATING)
            response = await page.goto(
                url,
                timeout=self.timeout * 1000,
                wait_until="domcontentloaded",
            )
            if response is None:
                raise NetworkError("Pas de réponse du navigateur", url=url)

            status_code = response.status
            if status_code in (403, 429):
                raise BlockedError(url=url, status_code=status_code)
            if status_code >= 400:
                raise HTTPError("Erreur HTTP navigateur", status_code=status_code, url=url)

            if self.wait_for_selector:
                await page.wait_for_selector(self.wait_for_selector, timeout=10000)

            # Laisser le JS charger le contenu
            delay = await async_random_delay(self.delay_min, self.delay_max)

            attempt.advance(AttemptState.CAPTURING)
            content = await page.content()
            logger.debug(
                "Headless fetch done",
                strategy=self.name,
                url=url,
                status_code=status_code,
                delay_s=round(delay, 2),
                response_size=len(content),
            )
            return content

        except PlaywrightTimeoutError as e:
            raise FetchTimeoutError(f"Timeout navigateur: {e}", url=url) from e
        except PlaywrightError as e:
            raise NetworkError(f"Erreur navigateur: {e}", url=url) from e
        finally:
            # Fermeture garantie, y compris sur annulation
            if browser is not None:
                await _close_quietly(browser.close(), url)
            if playwright is not None:
                await _close_quietly(playwright.stop(), url)


async def _close_quietly(closing, url: str) -> None:
    try:
        await asyncio.shield(closing)
    except (PlaywrightError, OSError) as e:
        logger.warning("Browser cleanup failed", url=url, error=str(e))
