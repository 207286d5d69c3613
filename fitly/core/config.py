"""
Configuration du scraper - lue depuis les variables d'environnement.

Toutes les valeurs ont un défaut utilisable en local.
"""
import os

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Pool de ports pour les sessions navigateur complètes (chromedriver)
PORT_POOL_BASE = int(os.getenv("PORT_POOL_BASE", "4444"))
PORT_POOL_SIZE = int(os.getenv("PORT_POOL_SIZE", "16"))
CHROMEDRIVER_PATH = os.getenv("CHROMEDRIVER_PATH", "/usr/local/bin/chromedriver")

# Timeouts (secondes)
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "30"))
RESOLVE_TIMEOUT = float(os.getenv("RESOLVE_TIMEOUT", "15"))
HEADLESS_TIMEOUT = float(os.getenv("HEADLESS_TIMEOUT", "120"))
SELENIUM_PAGE_LOAD_TIMEOUT = float(os.getenv("SELENIUM_PAGE_LOAD_TIMEOUT", "60"))
FULL_BROWSER_TIMEOUT = float(os.getenv("FULL_BROWSER_TIMEOUT", "180"))

# Délai "humain" avant capture en mode headless
HEADLESS_DELAY_MIN = float(os.getenv("HEADLESS_DELAY_MIN", "5"))
HEADLESS_DELAY_MAX = float(os.getenv("HEADLESS_DELAY_MAX", "10"))

# En dessous, la page est considérée comme vide ou bloquée
MIN_BODY_TEXT_LENGTH = int(os.getenv("MIN_BODY_TEXT_LENGTH", "200"))

# Pipeline média
MEDIA_CONCURRENCY = int(os.getenv("MEDIA_CONCURRENCY", "5"))
MEDIA_TIMEOUT = float(os.getenv("MEDIA_TIMEOUT", "30"))
MEDIA_ROOT = os.getenv("MEDIA_ROOT", "media")
MEDIA_PREFIX = os.getenv("MEDIA_PREFIX", "product_images")
MEDIA_ENABLED = os.getenv("MEDIA_ENABLED", "true").lower() in ("1", "true", "yes")
