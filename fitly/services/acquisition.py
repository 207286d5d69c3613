"""
Acquisition Engine - Escalade de stratégies de récupération de page.

Ordre de coût croissant, exécution séquentielle (jamais en parallèle):
1. HTTP direct (cloudscraper)           - rapide, souvent bloqué
2. Navigateur headless (Playwright)     - rendu JS, délai humain
3. Navigateur complet (Selenium)        - port réservé, anti-détection, scroll

La première page acceptée par le validateur gagne. Chaque tentative suit une
machine à états explicite; les ressources (navigateur, port) sont libérées par
la stratégie avant que la tentative n'atteigne un état terminal.
"""
import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

from bs4 import BeautifulSoup

from fitly.core import config
from fitly.core.exceptions import (
    AllStrategiesFailedError,
    FetchTimeoutError,
    InvalidDocumentError,
    NetworkError,
    ScraperError,
)
from fitly.core.logging import get_logger

logger = get_logger(__name__)

Validator = Callable[[BeautifulSoup], bool]

# Titres typiques des pages de blocage anti-bot
BLOCK_TITLE_MARKERS = ("robot check", "captcha", "access denied")


# =============================================================================
# MACHINE À ÉTATS PAR TENTATIVE
# =============================================================================

class AttemptState(str, Enum):
    NOT_STARTED = "not_started"
    LAUNCHING = "launching"
    NAVIGATING = "navigating"
    CAPTURING = "capturing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATES = frozenset({AttemptState.SUCCEEDED, AttemptState.FAILED})


@dataclass
class Attempt:
    """Une tentative d'une stratégie sur une URL."""
    strategy: str
    url: str
    state: AttemptState = AttemptState.NOT_STARTED
    history: List[AttemptState] = field(default_factory=list)
    error: Optional[BaseException] = None
    duration_ms: float = 0.0

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, state: AttemptState) -> None:
        if self.finished:
            raise RuntimeError(f"Attempt already {self.state.value}, cannot move to {state.value}")
        self.history.append(self.state)
        self.state = state

    def succeed(self) -> None:
        self.advance(AttemptState.SUCCEEDED)

    def fail(self, error: BaseException) -> None:
        self.error = error
        self.advance(AttemptState.FAILED)


class FetchStrategy:
    """
    Interface d'une stratégie d'acquisition.

    fetch() retourne le HTML rendu ou lève une ScraperError. Les ressources
    externes doivent être libérées avant le retour, y compris sur annulation.
    """
    name: str = "base"
    timeout: float = 60.0

    async def fetch(self, url: str, attempt: Attempt) -> str:
        raise NotImplementedError


# =============================================================================
# VALIDATION
# =============================================================================

def parse_document(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def is_valid_document(doc: BeautifulSoup, min_body_length: int = config.MIN_BODY_TEXT_LENGTH) -> bool:
    """Rejette les pages de blocage (captcha, robot check) et les corps quasi vides."""
    title = doc.title.get_text(strip=True).lower() if doc.title else ""
    if any(marker in title for marker in BLOCK_TITLE_MARKERS):
        return False

    body = doc.body.get_text(strip=True) if doc.body else ""
    return len(body) > min_body_length


# =============================================================================
# ENGINE
# =============================================================================

class AcquisitionEngine:
    def __init__(
        self,
        strategies: Sequence[FetchStrategy],
        min_body_length: int = config.MIN_BODY_TEXT_LENGTH,
    ):
        if not strategies:
            raise ValueError("At least one fetch strategy is required")
        self.strategies = list(strategies)
        self.min_body_length = min_body_length

    def accepts(self, doc: BeautifulSoup, is_valid: Validator) -> bool:
        return is_valid_document(doc, self.min_body_length) and is_valid(doc)

    async def _run_attempt(
        self, strategy: FetchStrategy, attempt: Attempt, is_valid: Validator
    ) -> BeautifulSoup:
        url = attempt.url
        start = time.perf_counter()
        try:
            try:
                html = await asyncio.wait_for(strategy.fetch(url, attempt), timeout=strategy.timeout)
                doc = parse_document(html)
                accepted = self.accepts(doc, is_valid)
            except asyncio.TimeoutError as e:
                raise FetchTimeoutError(
                    f"{strategy.name} timed out after {strategy.timeout:.0f}s", url=url
                ) from e
            except ScraperError:
                raise
            except Exception as e:
                # Toute autre erreur de stratégie ou de validateur compte comme un échec
                raise NetworkError(
                    f"{strategy.name} failed: {type(e).__name__}: {e}", url=url
                ) from e

            if not accepted:
                raise InvalidDocumentError(f"{strategy.name} returned a rejected document", url=url)
        except ScraperError as e:
            attempt.duration_ms = (time.perf_counter() - start) * 1000
            attempt.fail(e)
            raise
        except asyncio.CancelledError as e:
            attempt.duration_ms = (time.perf_counter() - start) * 1000
            attempt.fail(e)
            raise

        attempt.duration_ms = (time.perf_counter() - start) * 1000
        attempt.succeed()
        return doc

    async def fetch(self, url: str, is_valid: Validator) -> BeautifulSoup:
        """
        Récupère une page validée en escaladant les stratégies.

        Raises:
            AllStrategiesFailedError: toutes les stratégies ont échoué ou été rejetées
        """
        attempts: List[Attempt] = []
        last_error: Optional[ScraperError] = None

        for strategy in self.strategies:
            attempt = Attempt(strategy=strategy.name, url=url)
            attempts.append(attempt)
            logger.debug("Trying strategy", strategy=strategy.name, url=url)
            try:
                doc = await self._run_attempt(strategy, attempt, is_valid)
            except ScraperError as e:
                last_error = e
                logger.warning(
                    "Strategy failed, escalating",
                    strategy=strategy.name,
                    url=url,
                    duration_ms=attempt.duration_ms,
                    error_type=type(e).__name__,
                    status_code=getattr(e, "status_code", None),
                    error=str(e),
                )
                continue

            logger.info(
                "Strategy succeeded",
                strategy=strategy.name,
                url=url,
                duration_ms=attempt.duration_ms,
                attempts=len(attempts),
            )
            return doc

        raise AllStrategiesFailedError(
            f"All {len(attempts)} strategies failed",
            url=url,
            last_error=last_error,
            attempts=attempts,
        ) from last_error


def build_default_strategies(port_manager=None) -> List[FetchStrategy]:
    # Imports locaux: les modules de stratégies importent ce module
    from fitly.services.browser_worker import HeadlessBrowserStrategy
    from fitly.services.http_fetcher import HttpStrategy
    from fitly.services.port_manager import get_port_manager
    from fitly.services.selenium_worker import FullBrowserStrategy

    return [
        HttpStrategy(),
        HeadlessBrowserStrategy(),
        FullBrowserStrategy(port_manager or get_port_manager()),
    ]


_engine: Optional[AcquisitionEngine] = None


def get_engine() -> AcquisitionEngine:
    global _engine
    if _engine is None:
        _engine = AcquisitionEngine(build_default_strategies())
    return _engine
