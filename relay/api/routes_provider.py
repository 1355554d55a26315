from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from relay.core.errors import error_response
from relay.core.logger import get_logger
from relay.core.provider import provider

router = APIRouter(tags=["provider"])
audit = get_logger("audit")


class ApiKeyPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_key: Optional[str] = Field(default=None, alias="apiKey")


@router.get("/api-status")
async def api_status() -> dict[str, Any]:
    """Report whether a credential and a model are both configured."""
    has_key = bool(provider.api_key)
    audit.info(
        "API status check",
        extra={"has_key": has_key, "has_model": provider.is_configured},
    )
    return {
        "configured": provider.is_configured,
        "message": "API key configured" if has_key else "API key required",
        "server": "running",
    }


@router.post("/set-api-key")
async def set_api_key(payload: ApiKeyPayload) -> Any:
    api_key = (payload.api_key or "").strip()
    if not api_key:
        return JSONResponse(status_code=400, content=error_response("API key is required"))

    if not provider.initialize(api_key):
        audit.warning("API key rejected by provider initialization")
        return JSONResponse(
            status_code=500,
            content=error_response("Failed to initialize AI with provided key"),
        )
    audit.info("API key updated")
    return {"success": True, "message": "API key set successfully"}
