import time

from fastapi import FastAPI, Request

from fitly.core import config
from fitly.core.logging import get_logger, set_trace_id, setup_logging
from fitly.routers.scrape import router as scrape_router

setup_logging(config.LOG_LEVEL)
logger = get_logger(__name__)

# =============================================================================
# APP CONFIGURATION
# =============================================================================

API_VERSION = "1.0.0"
API_TITLE = "Fitly Scraper API"

app = FastAPI(
    title=API_TITLE,
    version=API_VERSION,
    description="Product page scraping & extraction API",
    docs_url="/docs",
    redoc_url="/redoc",
)


# =============================================================================
# MIDDLEWARE - Request tracking & timing
# =============================================================================

@app.middleware("http")
async def add_request_context(request: Request, call_next):
    """Add trace_id and timing to all requests."""
    trace_id = set_trace_id()
    start_time = time.perf_counter()

    response = await call_next(request)

    duration_ms = (time.perf_counter() - start_time) * 1000
    response.headers["X-Request-ID"] = trace_id
    response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

    if request.url.path != "/health":
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

    return response


# =============================================================================
# SYSTEM ENDPOINTS
# =============================================================================

@app.get("/health")
def health():
    """Health check endpoint for load balancers & monitoring."""
    return {"status": "ok"}


app.include_router(scrape_router)
