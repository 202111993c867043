"""Health check and monitoring endpoints"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, Any
from datetime import datetime, timezone
import time

from civicalert.core.database import get_db
from civicalert.core.config import settings
from civicalert.core.monitoring import metrics_response

router = APIRouter()

@router.get("/health")
async def health_check():
    """Basic health check"""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

@router.get("/health/detailed")
async def detailed_health_check(
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """Detailed health check with component status"""
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {}
    }

    # Check database
    started = time.perf_counter()
    try:
        await db.execute(text("SELECT 1"))
        health_status["components"]["database"] = {
            "status": "healthy",
            "response_time_ms": round((time.perf_counter() - started) * 1000, 2)
        }
    except SQLAlchemyError as e:
        health_status["components"]["database"] = {
            "status": "unhealthy",
            "error": str(e)
        }
        health_status["status"] = "unhealthy"

    # Push transport is optional; without VAPID keys deliveries fail as transient
    health_status["components"]["push"] = {
        "status": "healthy" if settings.push_enabled else "not_configured"
    }
    if not settings.push_enabled and health_status["status"] == "healthy":
        health_status["status"] = "degraded"

    health_status["application"] = {
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT
    }

    return health_status

if settings.PROMETHEUS_ENABLED:
    @router.get("/metrics", include_in_schema=False)
    async def metrics():
        """Prometheus metrics"""
        return metrics_response()
