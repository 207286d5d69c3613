"""
HTTP Stealth - Utilitaires anti-détection pour l'acquisition des pages produit.

Fournit:
- Rotation User-Agent réaliste
- Headers complets simulant un vrai navigateur
- Délais aléatoires "humains"
- Session cloudscraper préconfigurée
- Script d'init masquant l'automatisation dans les navigateurs pilotés
"""
import asyncio
import random
from typing import Dict, Optional, Tuple

import cloudscraper

# Pool de User-Agents réalistes (Chrome/Firefox/Safari récents)
USER_AGENTS = [
    # Chrome Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    # Chrome Mac
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    # Firefox Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:124.0) Gecko/20100101 Firefox/124.0",
    # Firefox Mac
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:124.0) Gecko/20100101 Firefox/124.0",
    # Safari Mac
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
    # Edge Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36 Edg/122.0.0.0",
]

# Les navigateurs pilotés (Chromium) ne doivent annoncer que des UA Chrome
CHROME_USER_AGENTS = [ua for ua in USER_AGENTS if "Chrome/" in ua and "Edg/" not in ua]

VIEWPORTS = [
    (1920, 1080),
    (1536, 864),
    (1440, 900),
    (1366, 768),
    (1280, 800),
]

# Headers de base pour simuler un vrai navigateur
BASE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Encoding": "gzip, deflate, br",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Sec-Ch-Ua": '"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
    "Sec-Ch-Ua-Mobile": "?0",
    "Sec-Ch-Ua-Platform": '"Windows"',
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Upgrade-Insecure-Requests": "1",
}

# Headers envoyés par les navigateurs pilotés (le UA est fixé par le contexte)
BROWSER_EXTRA_HEADERS = {
    "Accept": BASE_HEADERS["Accept"],
    "Accept-Language": BASE_HEADERS["Accept-Language"],
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
}

# Masque les marqueurs d'automatisation (navigator.webdriver, variables cdc_ de chromedriver)
STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
window.chrome = { runtime: {} };
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
delete window.cdc_adoQpoasnfa76pfcZLmcfl_Array;
delete window.cdc_adoQpoasnfa76pfcZLmcfl_Promise;
delete window.cdc_adoQpoasnfa76pfcZLmcfl_Symbol;
"""

# Scroll partiel aléatoire (jusqu'à la moitié de la page)
HUMAN_SCROLL_SCRIPT = """
window.scrollTo({
    top: Math.floor(Math.random() * document.body.scrollHeight / 2),
    behavior: 'smooth'
});
"""


def get_random_user_agent() -> str:
    """Retourne un User-Agent aléatoire."""
    return random.choice(USER_AGENTS)


def get_random_chrome_user_agent() -> str:
    """User-Agent Chrome uniquement, cohérent avec un navigateur Chromium piloté."""
    return random.choice(CHROME_USER_AGENTS)


def get_random_viewport() -> Tuple[int, int]:
    return random.choice(VIEWPORTS)


def get_stealth_headers(referer: Optional[str] = None, user_agent: Optional[str] = None) -> Dict[str, str]:
    """
    Retourne des headers complets simulant un vrai navigateur.

    Args:
        referer: URL de référence optionnelle
        user_agent: UA imposé (sinon tiré au hasard)

    Returns:
        Dict de headers
    """
    headers = BASE_HEADERS.copy()
    headers["User-Agent"] = user_agent or get_random_user_agent()

    if referer:
        headers["Referer"] = referer
        headers["Sec-Fetch-Site"] = "same-origin"

    # Varier Sec-Ch-Ua selon le User-Agent (Firefox et Safari ne l'envoient pas)
    ua = headers["User-Agent"]
    if "Firefox" in ua or ("Safari" in ua and "Chrome" not in ua):
        del headers["Sec-Ch-Ua"]
        del headers["Sec-Ch-Ua-Mobile"]
        del headers["Sec-Ch-Ua-Platform"]
    elif "Macintosh" in ua:
        headers["Sec-Ch-Ua-Platform"] = '"macOS"'

    return headers


def jittered_delay(min_delay: float, max_delay: float, multiplier: float = 1.0) -> float:
    """Durée aléatoire entre les bornes, avec un jitter de ±20%."""
    delay = random.uniform(min_delay, max_delay) * multiplier
    jitter = delay * random.uniform(-0.2, 0.2)
    return max(0.5, delay + jitter)


async def async_random_delay(min_delay: float, max_delay: float, multiplier: float = 1.0) -> float:
    """Applique un délai aléatoire (annulable) et retourne la durée."""
    delay = jittered_delay(min_delay, max_delay, multiplier)
    await asyncio.sleep(delay)
    return delay


def create_stealth_scraper() -> Tuple[cloudscraper.CloudScraper, Dict[str, str]]:
    """
    Crée un scraper cloudscraper avec headers stealth.

    Returns:
        Tuple (scraper, headers)
    """
    # Choisir un browser cohérent avec le User-Agent
    ua = get_random_user_agent()

    if "Firefox" in ua:
        browser = {"browser": "firefox", "platform": "windows", "mobile": False}
    elif "Safari" in ua and "Chrome" not in ua:
        browser = {"browser": "chrome", "platform": "darwin", "mobile": False}
    else:
        platform = "darwin" if "Macintosh" in ua else "windows"
        browser = {"browser": "chrome", "platform": platform, "mobile": False}

    scraper = cloudscraper.create_scraper(browser=browser)
    headers = get_stealth_headers(user_agent=ua)

    return scraper, headers
