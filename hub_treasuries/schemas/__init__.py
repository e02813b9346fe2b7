"""Pydantic schemas for the HTTP API, the event bus and the custody provider."""

from hub_treasuries.schemas.common import (
    ConsumerStatus,
    HealthResponse,
    WebhookResponse,
)
from hub_treasuries.schemas.treasury import (
    CreateTreasuryWalletRequest,
    TreasuryWalletAsset,
    WalletResponse,
)

__all__ = [
    "ConsumerStatus",
    "HealthResponse",
    "WebhookResponse",
    "CreateTreasuryWalletRequest",
    "TreasuryWalletAsset",
    "WalletResponse",
]
