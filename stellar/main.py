"""FastAPI main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from stellar.core.config import settings
from stellar.core.exceptions import ConsoleError
from stellar.core.middleware import setup_middleware
from stellar.core.rate_limiter import limiter

from stellar.api.auth import router as auth_router
from stellar.api.permission_requests import router as permission_requests_router
from stellar.api.clusters import router as clusters_router
from stellar.api.admin import router as admin_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("stellar_console")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting %s", settings.APP_NAME)
    from stellar.services.cache_service import cache_service
    if cache_service.health_check():
        logger.info("Redis connected")
    else:
        logger.warning("Redis not available; catalog listings will not be cached")

    yield

    logger.info("Shutting down %s", settings.APP_NAME)


app = FastAPI(
    title="Stellar Console API",
    description="Operations console for StarRocks clusters",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Middleware
setup_middleware(app)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(ConsoleError)
async def console_exception_handler(request: Request, exc: ConsoleError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
    )


# Register routers
app.include_router(auth_router, prefix="/api")
app.include_router(permission_requests_router, prefix="/api")
app.include_router(clusters_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/api/health")
async def health():
    """Quick health check endpoint."""
    return {"status": "ok"}
