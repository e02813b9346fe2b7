"""Integration tests for the /webhooks/fireblocks endpoint.

Drives the FastAPI app through ``ASGITransport`` with the webhook processor
overridden to use the test database, a recording producer and a stubbed
Solana RPC endpoint.
"""

import base64
import hashlib
import json
import uuid
from typing import Any, Dict, List

import base58
import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from conftest import solana_pubkey, solana_signature

RPC_URL = "https://rpc.test"
MESSAGE = b"\x01\x00\x03solana-drop-message"


class FakeRpc:
    """Solana JSON-RPC stub recording sent transactions."""

    def __init__(self):
        self.sent: List[bytes] = []
        self.error: Dict[str, Any] = {}

    def handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if self.error:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": self.error})
        wire = base64.b64decode(body["params"][0])
        self.sent.append(wire)
        signature = base58.b58encode(hashlib.sha512(wire).digest()).decode("ascii")
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": signature})


@pytest.fixture
def rpc():
    return FakeRpc()


def _client_factory(db, emitter, rpc, completion_path):
    from hub_treasuries.main import app
    from hub_treasuries.services.solana_rpc import SolanaRpcClient
    from hub_treasuries.services.webhook import WebhookProcessor, get_webhook_processor

    processor = WebhookProcessor(
        emitter,
        SolanaRpcClient(RPC_URL, transport=httpx.MockTransport(rpc.handle)),
        completion_path=completion_path,
    )
    app.dependency_overrides[get_webhook_processor] = lambda: processor
    return app


@pytest.fixture
async def client(db, emitter, rpc):
    app = _client_factory(db, emitter, rpc, "webhook")
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def polling_client(db, emitter, rpc):
    app = _client_factory(db, emitter, rpc, "poll")
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def pending(db):
    """Store a pending mint for a single custody signer."""
    from hub_treasuries.models import PendingSignature, TxType

    async def create(signers: List[str]) -> PendingSignature:
        row = PendingSignature(
            fireblocks_id=uuid.uuid4(),
            kind="DropMinted",
            tx_type=TxType.MintEdition,
            key_id=str(uuid.uuid4()),
            user_id=str(uuid.uuid4()),
            project_id=str(uuid.uuid4()),
            serialized_message=MESSAGE.hex(),
            signatures_or_signers_public_keys=signers,
        )
        async with db() as session:
            session.add(row)
            await session.commit()
        return row

    return create


def _notification(fireblocks_id, status: str = "COMPLETED", asset_id: str = "SOL_TEST", full_sig: str = None):
    data = {
        "id": str(fireblocks_id),
        "assetId": asset_id,
        "status": status,
        "operation": "RAW",
        "signedMessages": [],
    }
    if status == "COMPLETED":
        data["signedMessages"] = [{
            "content": MESSAGE.hex(),
            "algorithm": "MPC_EDDSA_ED25519",
            "derivationPath": [44, 501, 0, 0, 0],
            "signature": {"fullSig": full_sig or hashlib.sha512(MESSAGE).hexdigest()},
            "publicKey": "00" * 32,
        }]
    return {"type": "TRANSACTION_STATUS_UPDATED", "tenantId": "tenant", "timestamp": 0, "data": data}


class TestWebhookCompletion:
    """Terminal callbacks for pending Solana signatures."""

    @pytest.mark.asyncio
    async def test_completed_broadcasts_and_emits(self, client, pending, rpc, producer, db):
        from hub_treasuries.models import PendingSignature, Transaction, TxType
        from hub_treasuries.schemas.events import TreasuryEventKind
        from hub_treasuries.schemas.fireblocks import TransactionStatus

        upstream = solana_signature()
        row = await pending([upstream, solana_pubkey()])

        response = await client.post("/api/v1/webhooks/fireblocks", json=_notification(row.fireblocks_id))

        assert response.status_code == 200
        assert response.json() == {"outcome": "completed"}

        # wire: count, upstream signature, custody signature, message
        (wire,) = rpc.sent
        custody_signature = hashlib.sha512(MESSAGE).digest()
        assert wire == b"\x02" + base58.b58decode(upstream) + custody_signature + MESSAGE

        ((event, key),) = producer.events()
        assert event.kind == TreasuryEventKind.DropMinted
        assert event.payload.status == TransactionStatus.COMPLETED
        assert event.payload.tx_signature == base58.b58encode(hashlib.sha512(wire).digest()).decode()
        assert event.payload.fireblocks_id == str(row.fireblocks_id)
        assert event.payload.project_id == row.project_id
        assert key.id == row.key_id

        async with db() as session:
            assert (await session.execute(select(PendingSignature))).scalars().all() == []
            (journaled,) = (await session.execute(select(Transaction))).scalars().all()
        assert journaled.fireblocks_id == row.fireblocks_id
        assert journaled.signature == event.payload.tx_signature
        assert journaled.tx_type == TxType.MintEdition

    @pytest.mark.asyncio
    async def test_failed_custody_status(self, client, pending, rpc, producer, db):
        from hub_treasuries.models import PendingSignature
        from hub_treasuries.schemas.fireblocks import TransactionStatus

        row = await pending([solana_pubkey()])

        response = await client.post(
            "/api/v1/webhooks/fireblocks", json=_notification(row.fireblocks_id, status="REJECTED")
        )

        assert response.json() == {"outcome": "failed"}
        assert rpc.sent == []
        ((event, _),) = producer.events()
        assert event.payload.status == TransactionStatus.FAILED
        assert event.payload.tx_signature == ""

        async with db() as session:
            assert (await session.execute(select(PendingSignature))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_rpc_error_emits_failed(self, client, pending, rpc, producer):
        from hub_treasuries.schemas.fireblocks import TransactionStatus

        rpc.error = {"code": -32002, "message": "Transaction simulation failed"}
        row = await pending([solana_pubkey()])

        response = await client.post("/api/v1/webhooks/fireblocks", json=_notification(row.fireblocks_id))

        assert response.json() == {"outcome": "failed"}
        ((event, _),) = producer.events()
        assert event.payload.status == TransactionStatus.FAILED

    @pytest.mark.asyncio
    async def test_malformed_signature_emits_failed(self, client, pending, rpc, producer):
        row = await pending([solana_pubkey()])

        response = await client.post(
            "/api/v1/webhooks/fireblocks",
            json=_notification(row.fireblocks_id, full_sig="abcd"),
        )

        assert response.json() == {"outcome": "failed"}
        assert rpc.sent == []

    @pytest.mark.asyncio
    async def test_non_terminal_status(self, client, pending, rpc, producer, db):
        from hub_treasuries.models import PendingSignature

        row = await pending([solana_pubkey()])

        response = await client.post(
            "/api/v1/webhooks/fireblocks",
            json=_notification(row.fireblocks_id, status="PENDING_SIGNATURE"),
        )

        assert response.json() == {"outcome": "pending"}
        assert producer.sent == []
        async with db() as session:
            assert len((await session.execute(select(PendingSignature))).scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_other_notification_types_ignored(self, client, producer):
        response = await client.post(
            "/api/v1/webhooks/fireblocks",
            json={"type": "VAULT_ACCOUNT_ADDED", "data": {}},
        )

        assert response.status_code == 200
        assert response.json() == {"outcome": "ignored"}


class TestWebhookRejections:
    """Requests that cannot complete a signature."""

    @pytest.mark.asyncio
    async def test_non_solana_asset(self, client, pending, producer):
        row = await pending([solana_pubkey()])

        response = await client.post(
            "/api/v1/webhooks/fireblocks",
            json=_notification(row.fireblocks_id, asset_id="MATIC"),
        )

        assert response.status_code == 400
        assert producer.sent == []

    @pytest.mark.asyncio
    async def test_unknown_transaction(self, client, producer):
        response = await client.post("/api/v1/webhooks/fireblocks", json=_notification(uuid.uuid4()))

        assert response.status_code == 404
        assert producer.sent == []

    @pytest.mark.asyncio
    async def test_unknown_transaction_when_polling(self, polling_client, producer):
        """Polling deployments own completion; stray callbacks are ignored."""
        response = await polling_client.post(
            "/api/v1/webhooks/fireblocks", json=_notification(uuid.uuid4())
        )

        assert response.status_code == 200
        assert response.json() == {"outcome": "ignored"}

    @pytest.mark.asyncio
    async def test_invalid_details(self, client):
        response = await client.post(
            "/api/v1/webhooks/fireblocks",
            json={"type": "TRANSACTION_STATUS_UPDATED", "data": {"assetId": "SOL"}},
        )

        assert response.status_code == 400
