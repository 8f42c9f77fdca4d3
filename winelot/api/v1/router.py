from fastapi import APIRouter

from winelot.api.v1.health import router as health_router
from winelot.api.v1.tokenization import router as tokenization_router

v1_router = APIRouter()

v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(tokenization_router)
