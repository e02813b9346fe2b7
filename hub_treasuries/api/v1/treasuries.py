"""Treasury wallet management."""

import uuid

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException

from hub_treasuries.schemas.treasury import CreateTreasuryWalletRequest, WalletResponse
from hub_treasuries.services.custody import CustodyTransportError
from hub_treasuries.services.errors import NotFound
from hub_treasuries.services.provisioning import Provisioner, get_provisioner

logger = structlog.get_logger()

router = APIRouter()


@router.post("/{treasury_id}/wallets", response_model=WalletResponse, status_code=201)
async def create_treasury_wallet(
    treasury_id: uuid.UUID,
    request: CreateTreasuryWalletRequest,
    user_id: uuid.UUID = Header(..., alias="X-User-Id"),
    provisioner: Provisioner = Depends(get_provisioner),
) -> WalletResponse:
    """Create a wallet for ``asset_type`` in the treasury's vault.

    404 when the treasury does not exist, 502 when the custody provider
    rejects the wallet.
    """
    try:
        wallet = await provisioner.create_treasury_wallet(
            treasury_id, request.asset_type.asset_type, created_by=user_id
        )
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CustodyTransportError as e:
        logger.error("Treasury wallet creation failed", treasury_id=str(treasury_id), error=str(e))
        raise HTTPException(status_code=502, detail="Custody provider error")

    return WalletResponse.model_validate(wallet)
