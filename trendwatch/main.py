"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from trendwatch.api.routes import admin, products, signals
from trendwatch.config import settings
from trendwatch.db.models import Base
from trendwatch.db.session import engine
from trendwatch.errors import (
    LifecycleError,
    MergeError,
    NotFoundError,
    StorageError,
    TrendwatchError,
    ValidationError,
)
from trendwatch.logging_config import setup_logging
from trendwatch.worker.scheduler import setup_scheduler
from trendwatch.worker.tasks import task_runner

setup_logging()
logger = logging.getLogger(__name__)

# Global scheduler
scheduler = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global scheduler

    logger.info("Starting trendwatch...")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if settings.scheduler_enabled:
        scheduler = setup_scheduler()
        scheduler.start()
        logger.info("Scheduler started")

    yield

    logger.info("Shutting down...")
    if scheduler:
        scheduler.shutdown()
    await task_runner.close()
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Trendwatch",
    description="Trend signal aggregation and age-decay scoring engine",
    version="0.1.0",
    lifespan=lifespan,
)

Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

app.include_router(products.router)
app.include_router(signals.router)
app.include_router(admin.router)


def _status_for(exc: TrendwatchError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, LifecycleError):
        return 409
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, StorageError):
        return 503
    if isinstance(exc, MergeError):
        return 409 if isinstance(exc.cause, ValidationError) else 500
    return 500


@app.exception_handler(TrendwatchError)
async def trendwatch_error_handler(request: Request, exc: TrendwatchError):
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    uvicorn.run(
        "trendwatch.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
    )
