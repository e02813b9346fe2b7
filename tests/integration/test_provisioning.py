"""Integration tests for customer and project vault provisioning.

Runs against an in-memory SQLite database and the in-process custody fake.
"""

import uuid

import pytest
from sqlalchemy import select


class TestProjectProvisioning:
    """ProjectCreated -> vault, treasury rows, one wallet and event per asset."""

    @pytest.mark.asyncio
    async def test_project_treasury_in_test_mode(self, db, fireblocks, custody, emitter, producer):
        from hub_treasuries.models import AssetType, ProjectTreasury, Treasury, Wallet
        from hub_treasuries.schemas.events import (
            OrganizationEventKey,
            Project,
            TreasuryEventKind,
        )
        from hub_treasuries.services.custody import Assets
        from hub_treasuries.services.provisioning import Provisioner

        fireblocks.assets = Assets(["SOL", "MATIC", "ETH"], test_mode=True)
        project_id, user_id = str(uuid.uuid4()), str(uuid.uuid4())

        treasury = await Provisioner(fireblocks, emitter).create_project_treasury(
            OrganizationEventKey(user_id=user_id), Project(id=project_id)
        )

        # one vault, three wallets against test assets
        (vault,) = custody.vaults.values()
        assert vault["name"] == f"project:{project_id}"
        assert vault["customerRefId"] == user_id
        assert [asset for _, asset in custody.wallets] == [
            "SOL_TEST", "MATIC_POLYGON_MUMBAI", "ETH_TEST"
        ]

        events = producer.events(TreasuryEventKind.ProjectWalletCreated)
        assert len(events) == 3
        for _, key in events:
            assert key.id == str(treasury.id)
            assert key.user_id == user_id
            assert key.project_id == project_id
        assert {e.payload.blockchain.value for e, _ in events} == {"SOLANA", "POLYGON", "ETHEREUM"}

        async with db() as session:
            stored = (await session.execute(select(Treasury))).scalar_one()
            link = (await session.execute(select(ProjectTreasury))).scalar_one()
            wallets = (await session.execute(select(Wallet))).scalars().all()

        assert stored.vault_id == vault["id"]
        assert link.project_id == uuid.UUID(project_id)
        assert {w.asset_id for w in wallets} == {
            AssetType.SolanaTest, AssetType.MaticTest, AssetType.EthTest
        }
        for wallet in wallets:
            assert wallet.created_by == uuid.UUID(user_id)
            if wallet.address.startswith("0x"):
                assert wallet.address == wallet.address.lower()

    @pytest.mark.asyncio
    async def test_event_ids_distinct_per_wallet(self, db, fireblocks, emitter, producer):
        from hub_treasuries.schemas.events import OrganizationEventKey, Project
        from hub_treasuries.services.provisioning import Provisioner

        await Provisioner(fireblocks, emitter).create_project_treasury(
            OrganizationEventKey(user_id=str(uuid.uuid4())), Project(id=str(uuid.uuid4()))
        )

        event_ids = [event_id for _, _, event_id in producer.sent]
        assert len(set(event_ids)) == 3

    @pytest.mark.asyncio
    async def test_unknown_asset_id(self, db, fireblocks, custody, emitter):
        """An unsupported configured asset fails before any vault is created."""
        from hub_treasuries.schemas.events import OrganizationEventKey, Project
        from hub_treasuries.services.custody import Assets
        from hub_treasuries.services.errors import InvalidAssetType
        from hub_treasuries.services.provisioning import Provisioner

        fireblocks.assets = Assets(["SOL", "DOGE"])

        with pytest.raises(InvalidAssetType):
            await Provisioner(fireblocks, emitter).create_project_treasury(
                OrganizationEventKey(user_id=str(uuid.uuid4())), Project(id=str(uuid.uuid4()))
            )
        assert custody.vaults == {}

    @pytest.mark.asyncio
    async def test_custody_failure_propagates(self, db, fireblocks, custody, emitter, producer):
        from hub_treasuries.schemas.events import OrganizationEventKey, Project
        from hub_treasuries.services.custody import CustodyTransportError
        from hub_treasuries.services.provisioning import Provisioner

        custody.http_errors["POST /v1/vault/accounts"] = 500

        with pytest.raises(CustodyTransportError):
            await Provisioner(fireblocks, emitter).create_project_treasury(
                OrganizationEventKey(user_id=str(uuid.uuid4())), Project(id=str(uuid.uuid4()))
            )
        assert producer.sent == []


class TestCustomerProvisioning:
    """Customers.Created -> vault, customer treasury, CustomerTreasuryCreated."""

    @pytest.mark.asyncio
    async def test_customer_treasury(self, db, fireblocks, custody, emitter, producer):
        from hub_treasuries.models import CustomerTreasury as CustomerTreasuryRow
        from hub_treasuries.schemas.events import (
            Customer,
            CustomerEventKey,
            TreasuryEventKind,
        )
        from hub_treasuries.services.provisioning import Provisioner

        customer_id, project_id = str(uuid.uuid4()), str(uuid.uuid4())

        treasury = await Provisioner(fireblocks, emitter).create_customer_treasury(
            CustomerEventKey(id=customer_id), Customer(project_id=project_id)
        )

        (vault,) = custody.vaults.values()
        assert vault["name"] == f"customer:{customer_id}"
        assert vault["autoFuel"] is False

        ((event, key),) = producer.events()
        assert event.kind == TreasuryEventKind.CustomerTreasuryCreated
        assert event.payload.customer_id == customer_id
        assert event.payload.project_id == project_id
        assert key.id == str(treasury.id)
        assert key.user_id == customer_id

        async with db() as session:
            link = (await session.execute(select(CustomerTreasuryRow))).scalar_one()
        assert link.customer_id == uuid.UUID(customer_id)
        assert link.project_id == uuid.UUID(project_id)
        assert link.treasury_id == treasury.id

    @pytest.mark.asyncio
    async def test_invalid_customer_id(self, db, fireblocks, custody, emitter):
        from hub_treasuries.schemas.events import Customer, CustomerEventKey
        from hub_treasuries.services.errors import InvalidPayload
        from hub_treasuries.services.provisioning import Provisioner

        with pytest.raises(InvalidPayload):
            await Provisioner(fireblocks, emitter).create_customer_treasury(
                CustomerEventKey(id="not-a-uuid"), Customer(project_id=str(uuid.uuid4()))
            )
        assert custody.vaults == {}
