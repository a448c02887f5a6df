"""Health endpoint."""

import time

from fastapi import APIRouter, Request

from src.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict:
    started_at = getattr(request.app.state, "started_at", None)
    uptime = int(time.time() - started_at) if started_at else 0
    services = getattr(request.app.state, "services", None)
    return {
        "status": "healthy" if services is not None else "starting",
        "version": settings.app_version,
        "uptime_seconds": uptime,
    }
