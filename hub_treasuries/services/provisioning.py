"""Vault provisioning for new customers and projects.

Errors propagate to the dispatcher. A custody or database failure leaves the
message unacknowledged so the bus redelivers it.
"""

import uuid
from typing import List

import structlog

from hub_treasuries.core.database import get_db_context
from hub_treasuries.models import AssetType, Treasury, Wallet
from hub_treasuries.schemas.events import (
    Customer,
    CustomerEventKey,
    CustomerTreasury,
    OrganizationEventKey,
    Project,
    ProjectWallet,
    TreasuryEventKey,
    TreasuryEventKind,
)
from hub_treasuries.services import registry
from hub_treasuries.services.custody import FireblocksClient, get_fireblocks_client
from hub_treasuries.services.emitter import Emitter
from hub_treasuries.services.errors import InvalidAssetType

logger = structlog.get_logger()


def customer_vault_name(customer_id: str) -> str:
    return f"customer:{customer_id}"


def project_vault_name(project_id: str) -> str:
    return f"project:{project_id}"


class Provisioner:
    """Creates custody vaults and records them as treasuries."""

    def __init__(self, fireblocks: FireblocksClient, emitter: Emitter):
        self.fireblocks = fireblocks
        self.emitter = emitter

    def asset_types(self) -> List[AssetType]:
        """Active asset types of the deployment, in configured order.

        Raises:
            InvalidAssetType: a configured id has no wallet asset type
        """
        asset_types = []
        for asset_id in self.fireblocks.assets.ids():
            try:
                asset_types.append(AssetType(asset_id))
            except ValueError as e:
                raise InvalidAssetType(asset_id) from e
        return asset_types

    async def create_customer_treasury(self, key: CustomerEventKey, customer: Customer) -> Treasury:
        customer_id = registry.parse_uuid(key.id, "customer_id")
        project_id = registry.parse_uuid(customer.project_id, "project_id")

        vault = await self.fireblocks.create_vault(
            customer_vault_name(key.id), auto_fuel=False
        )

        async with get_db_context() as session:
            treasury = await registry.create_treasury(session, vault.id)
            await registry.create_customer_treasury(
                session, customer_id, project_id, treasury.id
            )

        logger.info(
            "Customer treasury created",
            customer_id=key.id,
            project_id=customer.project_id,
            treasury_id=str(treasury.id),
            vault_id=vault.id,
        )

        await self.emitter.emit(
            TreasuryEventKind.CustomerTreasuryCreated,
            CustomerTreasury(customer_id=key.id, project_id=customer.project_id),
            TreasuryEventKey(
                id=str(treasury.id), user_id=key.id, project_id=customer.project_id
            ),
        )
        return treasury

    async def create_project_treasury(self, key: OrganizationEventKey, project: Project) -> Treasury:
        """Vault for the project plus one wallet per supported asset.

        One ``ProjectWalletCreated`` is emitted per wallet, each after its row
        is committed.
        """
        user_id = registry.parse_uuid(key.user_id, "user_id")
        project_id = registry.parse_uuid(project.id, "project_id")
        organization_id = (
            registry.parse_uuid(project.organization_id, "organization_id")
            if project.organization_id
            else None
        )
        asset_types = self.asset_types()

        vault = await self.fireblocks.create_vault(
            project_vault_name(project.id),
            customer_ref_id=key.user_id,
            auto_fuel=False,
        )

        async with get_db_context() as session:
            treasury = await registry.create_treasury(session, vault.id, organization_id)
            await registry.create_project_treasury(session, project_id, treasury.id)

        logger.info(
            "Project treasury created",
            project_id=project.id,
            treasury_id=str(treasury.id),
            vault_id=vault.id,
        )

        event_key = TreasuryEventKey(id=str(treasury.id), user_id=key.user_id, project_id=project.id)

        for asset_type in asset_types:
            created = await self.fireblocks.create_wallet(vault.id, asset_type.value)

            async with get_db_context() as session:
                await registry.create_wallet(
                    session,
                    treasury.id,
                    asset_type,
                    created.address,
                    created_by=user_id,
                    legacy_address=created.legacy_address,
                    tag=created.tag,
                )

            blockchain = asset_type.blockchain
            await self.emitter.emit(
                TreasuryEventKind.ProjectWalletCreated,
                ProjectWallet(
                    project_id=project.id,
                    wallet_address=created.address,
                    blockchain=blockchain,
                ),
                event_key,
                correlation_ids=[blockchain.value],
            )

        return treasury

    async def create_treasury_wallet(
        self, treasury_id: uuid.UUID, asset_type: AssetType, created_by: uuid.UUID
    ) -> Wallet:
        """Add an ``asset_type`` wallet to an existing treasury's vault.

        Raises:
            NotFound: no treasury with ``treasury_id``
        """
        async with get_db_context() as session:
            treasury = await registry.get_treasury(session, treasury_id)

        created = await self.fireblocks.create_wallet(treasury.vault_id, asset_type.value)

        async with get_db_context() as session:
            wallet = await registry.create_wallet(
                session,
                treasury.id,
                asset_type,
                created.address,
                created_by=created_by,
                legacy_address=created.legacy_address,
                tag=created.tag,
            )

        logger.info(
            "Treasury wallet created",
            treasury_id=str(treasury.id),
            vault_id=treasury.vault_id,
            asset_id=asset_type.value,
            address=created.address,
        )
        return wallet


def get_provisioner() -> Provisioner:
    """Provisioner over the shared custody client, for API routes."""
    return Provisioner(get_fireblocks_client(), Emitter())
