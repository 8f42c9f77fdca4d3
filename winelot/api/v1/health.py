from fastapi import APIRouter, Depends, Request

from winelot.core.config import Settings, get_settings

router = APIRouter()


@router.get("/health")
async def health(request: Request, settings: Settings = Depends(get_settings)):
    rid = getattr(request.state, "request_id", None)
    return {
        "status": "ok",
        "network": settings.stellar_network.upper(),
        "request_id": rid,
    }
