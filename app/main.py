"""
StreamWatch Sentinel - Main FastAPI Application

Admin API for the anomaly-scoring and alert-delivery core. Mounts all
routers and the health endpoint.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.config import settings
from app.core.database import close_db, get_session_factory, init_db
from app.api.households import router as households_router
from app.api.notifications import router as notifications_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan events.

    Runs on startup and shutdown.
    """
    logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})")

    from app.core.sentry import init_sentry
    init_sentry()

    # Create tables locally; production schemas are managed externally
    if settings.ENVIRONMENT == "development":
        await init_db()

    yield

    logger.info("Shutting down...")
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    description="Trust scoring, household learning and violation alerts for media server accounts",
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:8000"] if settings.DEBUG else [settings.APP_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(notifications_router)
app.include_router(households_router)


@app.get("/health")
async def health_check(session_factory: async_sessionmaker = Depends(get_session_factory)):
    """
    Health check endpoint for monitoring.

    Status codes:
    - healthy: All systems operational
    - degraded: Some warnings but functional
    - unhealthy: Critical components down
    """
    from app.core.health import get_health_metrics

    metrics = await get_health_metrics(session_factory)

    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        **metrics,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
