from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter

from relay.core.config import get_settings

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def get_health() -> dict[str, object]:
    """Liveness probe."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "server": get_settings().server_name,
    }
