"""
FastAPI application for the communication history service.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.config import settings
from app.features.comms_history.api.router import router as comms_history_router
from app.features.comms_history.api.router import stats_cache
from app.infrastructure.observability.logging import get_logger, log_request, setup_logging
from app.models.domain.errors import FatalRequestError
from app.routes import health

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log startup configuration and drop cached exports on shutdown."""
    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        dialpad_configured=bool(settings.DIALPAD_BEARER_TOKEN),
        mailboxes=len(settings.GRAPH_MAILBOXES),
        fanout_concurrency=settings.FANOUT_CONCURRENCY,
    )

    yield

    logger.info("Application shutting down", cached_exports=len(stats_cache))
    stats_cache.clear()


app = FastAPI(
    title="Communication History Service",
    description="Aggregated call, text and email history from Dialpad and Microsoft Graph",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(comms_history_router)


@app.exception_handler(FatalRequestError)
async def fatal_request_error_handler(request: Request, exc: FatalRequestError):
    logger.error(
        "Fatal request error",
        path=request.url.path,
        operation=exc.operation,
        status_code=exc.status_code,
        error=str(exc),
    )
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
