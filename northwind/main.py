"""
FastAPI Application

Main entry point for the Northwind Slim trackable entities API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import structlog

from northwind.config import get_settings
from northwind.config.logging import configure_logging
from northwind.database.connection import close_database, get_db, init_database
from northwind.ingestion.seed_db import seed_database
from northwind.serving.api import (
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
    register_exception_handlers,
)
from northwind.serving.api.routes import (
    health_router,
    customers_router,
    categories_router,
    products_router,
    orders_router,
)

settings = get_settings()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging("DEBUG" if settings.debug else None)

    logger.info("Starting Northwind API", environment=settings.app_env)

    try:
        await init_database(create_tables=settings.is_development)
        logger.info("Database initialized")
        if settings.is_development and settings.database.seed_on_startup:
            async with get_db() as db:
                await seed_database(db)
    except Exception as e:
        logger.error("Database init failed", error=str(e), error_type=type(e).__name__)

    yield

    logger.info("Shutting down...")
    await close_database()


app = FastAPI(
    title="Northwind Slim API",
    description="Customers, orders, products and categories exchanged as change-tracked entity graphs",
    version=settings.version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.security.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)

register_exception_handlers(app)

app.include_router(health_router, prefix="/api/v1", tags=["Health"])
app.include_router(customers_router, prefix="/api/v1/customers", tags=["Customers"])
app.include_router(categories_router, prefix="/api/v1/categories", tags=["Categories"])
app.include_router(products_router, prefix="/api/v1/products", tags=["Products"])
app.include_router(orders_router, prefix="/api/v1/orders", tags=["Orders"])


@app.get("/api/v1/info")
async def api_info():
    """API information endpoint."""
    return {
        "name": "Northwind Slim API",
        "version": settings.version,
        "environment": settings.app_env,
        "documentation": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
