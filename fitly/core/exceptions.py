"""
Hiérarchie d'exceptions du moteur de scraping.

Permet de distinguer:
- Erreurs transitoires (réessayer plus tard)
- Erreurs terminales pour une requête
- Blocages anti-bot (nécessitent une escalade de stratégie)

Les erreurs de parsing n'existent pas ici: un champ manquant donne une valeur vide.
"""
from typing import List, Optional


class ScraperError(Exception):
    """Exception de base pour tout le moteur."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        url: Optional[str] = None,
        retryable: bool = False,
    ):
        self.source = source
        self.url = url
        self.retryable = retryable
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.source:
            parts.append(f"source={self.source}")
        if self.url:
            parts.append(f"url={self.url[:80]}")
        return " | ".join(parts)


# =============================================================================
# ERREURS RÉSEAU (généralement retryable)
# =============================================================================

class NetworkError(ScraperError):
    """Erreur réseau générique (DNS, connexion refusée, navigateur planté)."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)


class FetchTimeoutError(NetworkError):
    """Timeout lors d'une stratégie d'acquisition ou d'un téléchargement."""
    pass


class ResolutionError(NetworkError):
    """Impossible de résoudre l'URL canonique (HEAD et GET ont échoué)."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)


# =============================================================================
# ERREURS HTTP
# =============================================================================

class HTTPError(ScraperError):
    """Erreur HTTP avec code de status."""

    def __init__(self, message: str, status_code: int, **kwargs):
        self.status_code = status_code
        # 5xx et 429 sont retryable, le reste non
        kwargs.setdefault("retryable", status_code >= 500 or status_code == 429)
        super().__init__(message, **kwargs)

    def __str__(self) -> str:
        return f"HTTP {self.status_code}: {super().__str__()}"


class BlockedError(HTTPError):
    """
    Requête bloquée par une protection anti-bot (captcha, robot check, 403).

    Non retryable avec la même méthode - nécessite une escalade.
    """

    def __init__(self, message: str = "Blocked by anti-bot protection", **kwargs):
        status_code = kwargs.pop("status_code", 403)
        kwargs.setdefault("retryable", False)
        super().__init__(message, status_code=status_code, **kwargs)


# =============================================================================
# ERREURS D'ACQUISITION
# =============================================================================

class InvalidDocumentError(ScraperError):
    """Document récupéré mais refusé par le validateur (page de blocage, ancre absente)."""

    def __init__(self, message: str = "Document rejected by validator", **kwargs):
        super().__init__(message, **kwargs)


class ExhaustedError(ScraperError):
    """
    Plus aucun port libre dans le pool navigateur.

    Signal de contre-pression: la stratégie est indisponible pour l'instant.
    """

    def __init__(self, message: str = "No free browser port", **kwargs):
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)


class AllStrategiesFailedError(ScraperError):
    """Toutes les stratégies ont échoué ou produit un document invalide."""

    def __init__(
        self,
        message: str,
        last_error: Optional[Exception] = None,
        attempts: Optional[List] = None,
        **kwargs
    ):
        self.last_error = last_error
        self.attempts = attempts or []
        kwargs.setdefault("retryable", bool(last_error and getattr(last_error, "retryable", False)))
        super().__init__(message, **kwargs)

    def __str__(self) -> str:
        base = super().__str__()
        if self.last_error is not None:
            return f"{base} | last_error={type(self.last_error).__name__}: {self.last_error}"
        return base


class NoExtractorError(ScraperError):
    """Aucun collector enregistré ne sait traiter cette URL."""
    pass


# =============================================================================
# ERREURS DE STOCKAGE
# =============================================================================

class StorageError(ScraperError):
    """Échec d'écriture d'un média dans le backend de stockage."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)
