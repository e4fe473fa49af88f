"""
FastAPI application initialization
"""

from fastapi import FastAPI
from api.routes import health, refresh
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.logging import setup_logging
import logging

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Hotel Rate Refresh API",
    description="Refreshes external hotel rates and availability for tracked sources",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(refresh.router)

scheduler = None


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    global scheduler
    logger.info("Starting Hotel Rate Refresh API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    if settings.REFRESH_SCHEDULER_ENABLED:
        from refresh.scheduler import RefreshScheduler

        scheduler = RefreshScheduler()
        scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    global scheduler
    logger.info("Shutting down Hotel Rate Refresh API")
    if scheduler is not None:
        scheduler.stop()
        scheduler = None


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Hotel Rate Refresh API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "run": "/refresh/run",
            "records": "/refresh/records",
            "runs": "/refresh/runs"
        }
    }
