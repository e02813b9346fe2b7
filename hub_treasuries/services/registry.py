"""Vault registry: treasuries, their links and wallets.

Lookups raise ``NotFound`` when no row matches. Inserts flush but do not
commit; the caller owns the transaction.
"""

import uuid
from typing import Iterable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hub_treasuries.models import (
    AssetType,
    Blockchain,
    CustomerTreasury,
    ProjectTreasury,
    Treasury,
    Wallet,
    normalize_address,
)
from hub_treasuries.services.errors import InvalidBlockchain, InvalidPayload, NotFound

logger = structlog.get_logger()


def parse_uuid(value: str, field: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError as e:
        raise InvalidPayload(f"{field} is not a UUID: {value!r}") from e


# ==================== Lookups ====================


async def get_treasury(session: AsyncSession, treasury_id: uuid.UUID) -> Treasury:
    treasury = await session.get(Treasury, treasury_id)
    if treasury is None:
        raise NotFound(f"Treasury {treasury_id} not found")
    return treasury


async def find_vault_id_by_wallet_address(session: AsyncSession, address: str) -> str:
    stmt = (
        select(Treasury.vault_id)
        .join(Wallet, Wallet.treasury_id == Treasury.id)
        .where(Wallet.address == normalize_address(address))
        .where(Wallet.removed_at.is_(None))
        .limit(1)
    )
    vault_id = (await session.execute(stmt)).scalar_one_or_none()
    if vault_id is None:
        raise NotFound(f"No treasury found for wallet address {address!r}")
    return vault_id


async def find_vault_id_by_project_id(session: AsyncSession, project_id: str) -> str:
    stmt = (
        select(Treasury.vault_id)
        .join(ProjectTreasury, ProjectTreasury.treasury_id == Treasury.id)
        .where(ProjectTreasury.project_id == parse_uuid(project_id, "project_id"))
        .limit(1)
    )
    vault_id = (await session.execute(stmt)).scalar_one_or_none()
    if vault_id is None:
        raise NotFound(f"No treasury found for project {project_id}")
    return vault_id


async def find_wallet_by_vault(
    session: AsyncSession, vault_id: str, asset_types: Iterable[AssetType]
) -> Wallet:
    """Active wallet of ``vault_id`` holding one of ``asset_types``."""
    asset_types = list(asset_types)
    stmt = (
        select(Wallet)
        .join(Treasury, Treasury.id == Wallet.treasury_id)
        .where(Treasury.vault_id == vault_id)
        .where(Wallet.asset_id.in_(asset_types))
        .where(Wallet.removed_at.is_(None))
        .order_by(Wallet.created_at)
        .limit(1)
    )
    wallet = (await session.execute(stmt)).scalar_one_or_none()
    if wallet is None:
        raise NotFound(
            f"No wallet for vault {vault_id} with assets {[a.value for a in asset_types]}"
        )
    return wallet


async def find_wallet_by_blockchain(
    session: AsyncSession, vault_id: str, blockchain: Blockchain
) -> Wallet:
    """Active wallet of ``vault_id`` on ``blockchain``, production or test asset."""
    try:
        asset_types = blockchain.asset_types()
    except KeyError as e:
        raise InvalidBlockchain(blockchain.value) from e
    return await find_wallet_by_vault(session, vault_id, asset_types)


# ==================== Provisioning inserts ====================


async def create_treasury(
    session: AsyncSession, vault_id: str, organization_id: Optional[uuid.UUID] = None
) -> Treasury:
    treasury = Treasury(vault_id=vault_id, organization_id=organization_id)
    session.add(treasury)
    await session.flush()
    return treasury


async def create_project_treasury(
    session: AsyncSession, project_id: uuid.UUID, treasury_id: uuid.UUID
) -> ProjectTreasury:
    link = ProjectTreasury(project_id=project_id, treasury_id=treasury_id)
    session.add(link)
    await session.flush()
    return link


async def create_customer_treasury(
    session: AsyncSession,
    customer_id: uuid.UUID,
    project_id: uuid.UUID,
    treasury_id: uuid.UUID,
) -> CustomerTreasury:
    link = CustomerTreasury(customer_id=customer_id, project_id=project_id, treasury_id=treasury_id)
    session.add(link)
    await session.flush()
    return link


async def create_wallet(
    session: AsyncSession,
    treasury_id: uuid.UUID,
    asset_type: AssetType,
    address: Optional[str],
    created_by: uuid.UUID,
    legacy_address: Optional[str] = None,
    tag: Optional[str] = None,
) -> Wallet:
    wallet = Wallet(
        treasury_id=treasury_id,
        asset_id=asset_type,
        address=normalize_address(address),
        legacy_address=legacy_address,
        tag=tag,
        created_by=created_by,
    )
    session.add(wallet)
    await session.flush()
    logger.debug("Wallet stored", treasury_id=str(treasury_id), asset_id=asset_type.value)
    return wallet
