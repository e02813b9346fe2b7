"""Custody provider webhook callbacks."""

import structlog
from fastapi import APIRouter, Depends, HTTPException

from hub_treasuries.schemas.common import WebhookResponse
from hub_treasuries.schemas.fireblocks import WebhookNotification
from hub_treasuries.services.webhook import (
    WebhookError,
    WebhookProcessor,
    get_webhook_processor,
)

logger = structlog.get_logger()

router = APIRouter()


@router.post("/fireblocks", response_model=WebhookResponse)
async def fireblocks_webhook(
    notification: WebhookNotification,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> WebhookResponse:
    """Receive a ``TRANSACTION_STATUS_UPDATED`` callback.

    400 for non-Solana assets, 404 for a transaction with no pending
    signature when webhook completion is enabled.
    """
    try:
        outcome = await processor.handle(notification)
    except WebhookError as e:
        logger.warning("Webhook rejected", error=e.message, status_code=e.status_code)
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return WebhookResponse(outcome=outcome.value)
