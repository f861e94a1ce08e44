"""
Catalog Pilot
Main FastAPI application
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from catalog_pilot.config import settings
from catalog_pilot.database import close_db, init_db
from catalog_pilot.middleware.rate_limit import RateLimitMiddleware
from catalog_pilot.routes import categories, company, products, subscription, work_orders
from catalog_pilot.routes import settings as settings_routes
from catalog_pilot.services.scheduler import scheduler
from catalog_pilot.utils.redis_client import close_redis

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting Catalog Pilot...")
    await init_db()

    if settings.scheduler_enabled:
        await scheduler.initialize_scheduled_jobs()

    logger.info("Catalog Pilot started")

    yield

    # Shutdown
    logger.info("Shutting down Catalog Pilot...")
    await scheduler.shutdown()
    await close_redis()
    await close_db()
    logger.info("Catalog Pilot stopped")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="BigCommerce catalog pricing with scheduled work orders",
    version=settings.app_version,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.app_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add rate limiting for /api
app.add_middleware(RateLimitMiddleware, requests_per_minute=settings.rate_limit_per_minute)

# Mount routes
app.include_router(settings_routes.router, prefix="/api/settings", tags=["Settings"])
app.include_router(products.router, prefix="/api/products", tags=["Products"])
app.include_router(categories.router, prefix="/api/categories", tags=["Categories"])
app.include_router(work_orders.router, prefix="/api/work-orders", tags=["Work Orders"])
app.include_router(subscription.router, prefix="/api/subscription", tags=["Subscription"])
app.include_router(company.router, prefix="/api", tags=["Company"])


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "catalog-pilot",
        "version": settings.app_version,
        "status": "running",
    }


# Health check
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "catalog-pilot",
        "version": settings.app_version,
    }


@app.get("/api/health")
async def api_health_check():
    return {"status": "healthy", "service": "catalog-pilot"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "catalog_pilot.main:app",
        host="0.0.0.0",
        port=5000,
        reload=settings.debug,
    )
