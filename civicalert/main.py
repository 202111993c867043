"""Main FastAPI application with all middleware"""

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from slowapi.errors import RateLimitExceeded

from civicalert.core.config import settings
from civicalert.core.events import lifespan
from civicalert.core.exceptions import (
    CivicAlertException,
    civicalert_exception_handler,
    request_validation_handler,
)
from civicalert.core.monitoring import setup_monitoring_middleware
from civicalert.middleware.rate_limit import limiter, custom_rate_limit_handler
from civicalert.api.health import router as health_router
from civicalert.api.v1 import api_router

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Proximity alerts for community-reported civic issues",
    version=settings.APP_VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, custom_rate_limit_handler)

# Error rendering
app.add_exception_handler(CivicAlertException, civicalert_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.ALLOWED_HOSTS
)

app.add_middleware(GZipMiddleware, minimum_size=1000)

if settings.PROMETHEUS_ENABLED:
    setup_monitoring_middleware(app)

# Include routers
app.include_router(api_router, prefix="/api/v1")
app.include_router(health_router, tags=["Health"])

# Root endpoint
@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/api/docs",
        "health": "/health"
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "civicalert.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS
    )
