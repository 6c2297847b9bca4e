"""
FastAPI application initialization
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from api.routes import health, imports, sync
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.exceptions import (
    AuthenticationError,
    BatchLimitExceededError,
    CatalogueException,
    FatalOrchestrationError
)
from core.logging import setup_logging
from sync.scheduler import SyncScheduler
import logging

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Substance Catalogue API",
    description="Enrichment imports and sync consumers for the substance catalogue",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

scheduler = SyncScheduler()

ERROR_STATUS_CODES = {
    AuthenticationError: 401,
    BatchLimitExceededError: 422,
    FatalOrchestrationError: 502,
}


@app.exception_handler(CatalogueException)
async def catalogue_exception_handler(request: Request, exc: CatalogueException):
    """Setup-phase failures propagate to the caller with their context."""
    status_code = next(
        (code for exc_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, exc_type)),
        500
    )
    if status_code >= 500:
        logger.error(f"Request failed: {exc}", extra={"error_context": exc.to_dict()})
    return JSONResponse(status_code=status_code, content={"error": exc.message, "details": exc.to_dict()})


# Include routers
app.include_router(health.router)
app.include_router(imports.router)
app.include_router(sync.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Substance Catalogue API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    if settings.SYNC_SCHEDULER_ENABLED:
        scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Substance Catalogue API")
    if scheduler.scheduler.running:
        scheduler.stop()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Substance Catalogue API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "enrich": "/imports/enrich",
            "bulk": "/imports/bulk",
            "jobs": "/imports/jobs",
            "sync": "/sync/{consumer_name}/run",
            "consumers": "/sync/consumers"
        }
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.ENVIRONMENT == "development"
    )
