"""Schemas for treasury wallet management."""

import enum
import uuid
from typing import Optional

from pydantic import BaseModel

from hub_treasuries.models import AssetType


class TreasuryWalletAsset(str, enum.Enum):
    """Assets a wallet can be added for after provisioning."""

    Solana = "SOL"
    SolanaTest = "SOL_TEST"

    @property
    def asset_type(self) -> AssetType:
        return AssetType(self.value)


class CreateTreasuryWalletRequest(BaseModel):
    asset_type: TreasuryWalletAsset


class WalletResponse(BaseModel):
    """Stored wallet row."""

    id: uuid.UUID
    treasury_id: uuid.UUID
    asset_id: AssetType
    address: Optional[str] = None
    legacy_address: Optional[str] = None
    tag: Optional[str] = None
    created_by: uuid.UUID

    model_config = {"from_attributes": True}
