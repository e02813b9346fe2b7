"""API v1 router."""

from fastapi import APIRouter

from hub_treasuries.api.v1 import health, treasuries, webhooks

router = APIRouter(prefix="/api/v1")

router.include_router(health.router, tags=["Health"])
router.include_router(treasuries.router, prefix="/treasuries", tags=["Treasuries"])
router.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
