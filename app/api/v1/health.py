"""Health check endpoint."""

import time
from datetime import datetime, timezone

from fastapi import APIRouter

from app.config import settings

router = APIRouter()

_STARTED = time.monotonic()


@router.get("/health")
async def health_check():
    """Liveness, uptime in seconds and the configured environment."""
    return {
        "message": "Weather Processing Service is healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status": "OK",
        "uptime": round(time.monotonic() - _STARTED, 3),
        "environment": settings.environment,
    }
