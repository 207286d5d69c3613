"""
Logging structuré JSON.

Une ligne JSON par événement: timestamp, level, logger, message, puis les
champs de contexte présents (RECORD_FIELDS), le trace_id de la requête et
les données additionnelles sous "extra".
"""
import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

# Champs de contexte promus au premier niveau du JSON
RECORD_FIELDS = ("source", "url", "strategy", "duration_ms", "status_code", "error_type")

# Libs dont les logs DEBUG/INFO noient ceux du moteur
NOISY_LOGGERS = ("urllib3", "httpx", "selenium", "asyncio")

MAX_URL_LENGTH = 200

# Propagé à travers les tâches asyncio (copié par asyncio.to_thread)
_trace_id: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)


def set_trace_id(trace_id: Optional[str] = None) -> str:
    """Définit le trace_id de la requête courante (généré si absent)."""
    if trace_id is None:
        trace_id = uuid.uuid4().hex[:8]
    _trace_id.set(trace_id)
    return trace_id


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        trace_id = _trace_id.get()
        if trace_id:
            log_data["trace_id"] = trace_id

        for key in RECORD_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = value

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            log_data["extra"] = extra_data

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class StructuredLogger:
    """Logger avec champs de contexte scraping (source, url, stratégie...)."""

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, message: str, exc_info: bool = False, **fields):
        if not self._logger.isEnabledFor(level):
            return

        record_extra = {}
        for key in RECORD_FIELDS:
            value = fields.pop(key, None)
            if value is None or value == "":
                continue
            if key == "url":
                value = value[:MAX_URL_LENGTH]
            elif key == "duration_ms":
                value = round(value, 2)
            record_extra[key] = value

        extra_data = {k: v for k, v in fields.items() if v is not None}
        if extra_data:
            record_extra["extra_data"] = extra_data

        self._logger.log(level, message, exc_info=exc_info, extra=record_extra)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, exc_info: bool = True, **kwargs):
        self._log(logging.ERROR, message, exc_info=exc_info, **kwargs)

    # Cycle de vie d'un scrape produit

    def scrape_start(self, source: str, url: str):
        self.info("Scrape started", source=source, url=url)

    def scrape_success(self, source: str, url: str, duration_ms: float, variants_count: int = 0):
        self.info(
            "Scrape successful",
            source=source,
            url=url,
            duration_ms=duration_ms,
            variants_count=variants_count,
        )

    def scrape_error(self, source: Optional[str], url: str, error: Exception, duration_ms: Optional[float] = None):
        # Le message porte déjà l'erreur, pas de traceback
        self.error(
            f"Scrape failed: {error}",
            exc_info=False,
            source=source,
            url=url,
            duration_ms=duration_ms,
            error_type=type(error).__name__,
            status_code=getattr(error, "status_code", None),
        )


def setup_logging(level: str = "INFO"):
    """Installe le formatter JSON sur stdout à la place des handlers existants."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(name)
