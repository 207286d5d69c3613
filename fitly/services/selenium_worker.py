"""
Stratégie 3 - Navigateur complet (Selenium + chromedriver).

Dernier recours, la plus coûteuse. Chaque session:
1. réserve un port dans le PortManager (ExhaustedError si le pool est plein)
2. démarre son propre chromedriver sur ce port
3. masque l'automatisation via CDP, navigue, attend, scrolle, capture
4. quitte le navigateur, PUIS libère le port

La session tourne dans un thread; l'annulation côté asyncio est propagée
via un threading.Event vérifié entre chaque étape.
"""
import asyncio
import threading

from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service

from fitly.core import config
from fitly.core.exceptions import FetchTimeoutError, NetworkError
from fitly.core.logging import get_logger
from fitly.services.acquisition import Attempt, AttemptState, FetchStrategy
from fitly.services.port_manager import PortManager
from fitly.utils.http_stealth import (
    HUMAN_SCROLL_SCRIPT,
    STEALTH_SCRIPT,
    get_random_chrome_user_agent,
    get_random_viewport,
    jittered_delay,
)

logger = get_logger(__name__)

SETTLE_SECONDS = 2.0


def build_chrome_options() -> Options:
    options = Options()
    options.add_argument("--headless=new")
    options.add_argument("--no-sandbox")
    options.add_argument("--disable-dev-shm-usage")
    options.add_argument("--disable-gpu")
    options.add_argument("--disable-blink-features=AutomationControlled")
    options.add_argument("--lang=en-US")

    width, height = get_random_viewport()
    options.add_argument(f"--window-size={width},{height}")
    options.add_argument(f"--user-agent={get_random_chrome_user_agent()}")

    options.add_experimental_option("excludeSwitches", ["enable-automation"])
    options.add_experimental_option("useAutomationExtension", False)
    options.add_experimental_option(
        "prefs", {"profile.default_content_setting_values.notifications": 2}
    )
    return options


class FullBrowserStrategy(FetchStrategy):
    name = "full_browser"

    def __init__(
        self,
        port_manager: PortManager,
        timeout: float = config.FULL_BROWSER_TIMEOUT,
        page_load_timeout: float = config.SELENIUM_PAGE_LOAD_TIMEOUT,
        driver_path: str = config.CHROMEDRIVER_PATH,
    ):
        self.port_manager = port_manager
        self.timeout = timeout
        self.page_load_timeout = page_load_timeout
        self.driver_path = driver_path

    async def fetch(self, url: str, attempt: Attempt) -> str:
        cancelled = threading.Event()
        try:
            return await asyncio.to_thread(self._run_session, url, attempt, cancelled)
        except asyncio.CancelledError:
            # Le thread quittera le navigateur et libérera le port au prochain point de contrôle
            cancelled.set()
            raise

    def _run_session(self, url: str, attempt: Attempt, cancelled: threading.Event) -> str:
        _checkpoint(cancelled, url)
        attempt.advance(AttemptState.LAUNCHING)

        with self.port_manager.reserve() as port:
            logger.debug("Starting chromedriver", strategy=self.name, url=url, port=port)
            driver = None
            try:
                service = Service(executable_path=self.driver_path, port=port)
                driver = webdriver.Chrome(service=service, options=build_chrome_options())
                driver.execute_cdp_cmd(
                    "Page.addScriptToEvaluateOnNewDocument", {"source": STEALTH_SCRIPT}
                )
                driver.set_page_load_timeout(self.page_load_timeout)

                _checkpoint(cancelled, url)
                attempt.advance(AttemptState.NAVIGATING)
                driver.get(url)

                _pause(cancelled, url, SETTLE_SECONDS)
                driver.execute_script(HUMAN_SCROLL_SCRIPT)
                _pause(cancelled, url, SETTLE_SECONDS)

                attempt.advance(AttemptState.CAPTURING)
                html = driver.page_source
                logger.debug(
                    "Full browser fetch done",
                    strategy=self.name,
                    url=url,
                    port=port,
                    response_size=len(html),
                )
                return html

            except TimeoutException as e:
                raise FetchTimeoutError(f"Timeout chargement page: {e.msg}", url=url) from e
            except WebDriverException as e:
                raise NetworkError(f"Erreur webdriver: {e.msg}", url=url) from e
            finally:
                if driver is not None:
                    _quit_driver(driver, url)


def _checkpoint(cancelled: threading.Event, url: str) -> None:
    if cancelled.is_set():
        raise FetchTimeoutError("Session navigateur annulée", url=url)


def _pause(cancelled: threading.Event, url: str, seconds: float) -> None:
    # Attente interruptible par l'annulation
    if cancelled.wait(jittered_delay(seconds, seconds + 0.5)):
        raise FetchTimeoutError("Session navigateur annulée", url=url)


def _quit_driver(driver: webdriver.Chrome, url: str) -> None:
    try:
        driver.quit()
    except WebDriverException as e:
        logger.warning("Driver quit failed", url=url, error=str(e))
