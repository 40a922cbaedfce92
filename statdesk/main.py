"""
FastAPI application with database pool lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from statdesk.config import settings
from statdesk.db.migrations import apply_migrations
from statdesk.db.pool import db_pool
from statdesk.features.analytics import analytics_router
from statdesk.features.entries import entries_router
from statdesk.features.taxonomy import taxonomy_router
from statdesk.infrastructure.observability.logging import get_logger, log_request, setup_logging
from statdesk.routes import health

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the pool, bring the schema up to date, close the pool on shutdown."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    try:
        await db_pool.initialize()
        if settings.RUN_MIGRATIONS_ON_STARTUP:
            applied = await apply_migrations()
            logger.info("Schema migrations checked", applied=applied)
    except Exception as e:
        logger.error("Failed to initialize services", error=str(e))
        try:
            await db_pool.close()
        except Exception as cleanup_error:
            logger.error("Error cleaning up database pool", error=str(cleanup_error))
        raise

    yield

    logger.info("Application shutting down")
    try:
        await db_pool.close()
    except Exception as e:
        logger.error("Error closing database pool", error=str(e))


app = FastAPI(
    title="statdesk",
    description="Statistics backend for a helpdesk: entries, analytics and taxonomy editing",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(entries_router)
app.include_router(analytics_router)
app.include_router(taxonomy_router)


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
