"""Pytest configuration and fixtures for hub-treasuries tests."""

import hashlib
import json
import os
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

import base58
import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set required env vars for tests before importing app modules
# DATABASE_URL points to test DB so imports never boot prod engine during collection
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("FIREBLOCKS_ENDPOINT", "https://custody.test")
os.environ.setdefault("FIREBLOCKS_API_KEY", "test-api-key")
os.environ.setdefault("FIREBLOCKS_SECRET_PATH", "/nonexistent/fireblocks_secret.key")
os.environ.setdefault("FIREBLOCKS_TREASURY_VAULT", "treasury-vault")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("ENABLE_CONSUMER", "false")

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
CUSTODY_URL = "https://custody.test"
TREASURY_VAULT = "treasury-vault"


def solana_pubkey() -> str:
    """Random base58 Ed25519 public key."""
    return base58.b58encode(os.urandom(32)).decode("ascii")


def solana_signature() -> str:
    """Random base58 64-byte signature, as supplied by an upstream co-signer."""
    return base58.b58encode(os.urandom(64)).decode("ascii")


# ==================== Keys ====================


@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key) -> bytes:
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


@pytest.fixture(scope="session")
def public_key_pem(rsa_private_key) -> bytes:
    return rsa_private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


# ==================== Database ====================


@pytest.fixture
async def db():
    """In-memory SQLite installed as the application's session factory."""
    from hub_treasuries.core.database import Base, reset_engine, set_session_factory
    import hub_treasuries.models  # noqa: F401

    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    set_session_factory(factory)

    yield factory

    reset_engine()
    await engine.dispose()


@pytest.fixture
def seed_vault(db):
    """Insert a treasury for ``vault_id`` with the given ``(AssetType, address)`` wallets."""
    from hub_treasuries.services import registry

    async def seed(
        vault_id: str,
        wallets: List[Tuple[Any, Optional[str]]] = (),
        project_id: Optional[uuid.UUID] = None,
    ):
        async with db() as session:
            treasury = await registry.create_treasury(session, vault_id)
            if project_id is not None:
                await registry.create_project_treasury(session, project_id, treasury.id)
            for asset_type, address in wallets:
                await registry.create_wallet(
                    session, treasury.id, asset_type, address, created_by=uuid.uuid4()
                )
            await session.commit()
        return treasury

    return seed


# ==================== Metrics ====================


@pytest.fixture(autouse=True)
def fresh_metrics(monkeypatch):
    """Each test gets its own metrics collector."""
    from hub_treasuries.core import metrics

    monkeypatch.setattr(metrics, "_metrics_collector", None)
    return metrics.get_metrics()


# ==================== Event bus ====================


class RecordingProducer:
    """Producer stand-in that keeps what was sent."""

    def __init__(self, topic: str = "hub-treasuries"):
        self.topic = topic
        self.sent: List[Tuple[Any, Any, Optional[str]]] = []

    async def send(self, event, key, event_id: Optional[str] = None) -> str:
        self.sent.append((event, key, event_id))
        return f"{len(self.sent)}-0"

    def events(self, kind=None) -> List[Tuple[Any, Any]]:
        return [
            (event, key)
            for event, key, _ in self.sent
            if kind is None or event.kind == kind
        ]


@pytest.fixture
def producer() -> RecordingProducer:
    return RecordingProducer()


@pytest.fixture
def emitter(producer):
    from hub_treasuries.services.emitter import Emitter

    return Emitter(producer)


# ==================== Custody provider ====================


class FakeCustody:
    """In-process Fireblocks served through ``httpx.MockTransport``.

    Transactions report PENDING_SIGNATURE on the first poll and settle on the
    second. ``fail_when(body)`` may return a failure status for a submitted
    transaction; ``signature_overrides`` patches the returned signature.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.vaults: Dict[str, Dict[str, Any]] = {}
        self.wallets: List[Tuple[str, str]] = []
        self.transactions: Dict[str, Dict[str, Any]] = {}
        self.polls: Dict[str, int] = {}
        self.fail_when: Callable[[Dict[str, Any]], Optional[str]] = lambda body: None
        self.signature_overrides: Dict[str, Any] = {}
        self.polls_before_terminal = 1
        self.http_errors: Dict[str, int] = {}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def created(self, operation: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            tx["body"]
            for tx in self.transactions.values()
            if operation is None or tx["body"]["operation"] == operation
        ]

    @staticmethod
    def ed25519_signature(vault_id: str, content: str) -> str:
        return hashlib.sha512(f"{vault_id}:{content}".encode()).hexdigest()

    def _address(self, asset_id: str) -> str:
        if asset_id.startswith("SOL"):
            return solana_pubkey()
        return "0x" + os.urandom(20).hex().upper()

    def _signed_messages(self, body: Dict[str, Any]) -> List[Dict[str, Any]]:
        vault_id = body["source"]["id"]
        messages = body.get("extraParameters", {}).get("rawMessageData", {}).get("messages", [])
        signed = []
        for message in messages:
            if body["assetId"].startswith("SOL"):
                signature = {"fullSig": self.ed25519_signature(vault_id, message["content"])}
            else:
                r = hashlib.sha256(b"r" + message["content"].encode()).hexdigest()
                s = hashlib.sha256(b"s" + message["content"].encode()).hexdigest()
                signature = {"fullSig": r + s, "r": r, "s": s, "v": 1}
            signature.update(self.signature_overrides)
            signed.append({
                "content": message["content"],
                "algorithm": "MPC_EDDSA_ED25519" if body["assetId"].startswith("SOL") else "MPC_ECDSA_SECP256K1",
                "derivationPath": [44, 501, 0, 0, 0],
                "signature": signature,
                "publicKey": "00" * 32,
            })
        return signed

    def _details(self, transaction_id: str) -> Dict[str, Any]:
        tx = self.transactions[transaction_id]
        polls = self.polls.get(transaction_id, 0)
        self.polls[transaction_id] = polls + 1

        if polls < self.polls_before_terminal:
            status = "PENDING_SIGNATURE"
        else:
            status = tx["final_status"]

        details = {
            "id": transaction_id,
            "assetId": tx["body"]["assetId"],
            "status": status,
            "operation": tx["body"]["operation"],
            "note": tx["body"].get("note"),
            "signedMessages": [],
        }
        if status == "COMPLETED":
            details["signedMessages"] = self._signed_messages(tx["body"])
            if tx["body"]["operation"] == "CONTRACT_CALL":
                details["txHash"] = "0x" + hashlib.sha256(transaction_id.encode()).hexdigest()
        return details

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        method = request.method
        body = json.loads(request.content) if request.content else None

        status_code = self.http_errors.get(f"{method} {path}")
        if status_code:
            return httpx.Response(status_code, json={"message": "boom", "code": status_code})

        parts = path.strip("/").split("/")

        if method == "POST" and path == "/v1/vault/accounts":
            vault_id = str(len(self.vaults) + 1)
            vault = {
                "id": vault_id,
                "name": body["name"],
                "hiddenOnUI": body.get("hiddenOnUI", False),
                "customerRefId": body.get("customerRefId"),
                "autoFuel": body.get("autoFuel", False),
                "assets": [],
            }
            self.vaults[vault_id] = vault
            return httpx.Response(200, json=vault)

        if method == "GET" and path == "/v1/vault/accounts_paged":
            prefix = request.url.params.get("namePrefix", "")
            accounts = [v for v in self.vaults.values() if v["name"].startswith(prefix)]
            return httpx.Response(200, json={"accounts": accounts, "paging": {}})

        if method == "GET" and path == "/v1/vault/assets":
            return httpx.Response(200, json=[{"id": "SOL_TEST", "total": "0", "available": "0"}])

        if len(parts) == 4 and parts[:3] == ["v1", "vault", "accounts"] and method == "GET":
            vault = self.vaults.get(parts[3])
            if vault is None:
                return httpx.Response(404, json={"message": "not found"})
            return httpx.Response(200, json=vault)

        if len(parts) == 5 and parts[:3] == ["v1", "vault", "accounts"] and method == "POST":
            vault_id, asset_id = parts[3], parts[4]
            self.wallets.append((vault_id, asset_id))
            return httpx.Response(200, json={"id": asset_id, "address": self._address(asset_id)})

        if method == "POST" and path == "/v1/transactions":
            transaction_id = str(uuid.uuid4())
            self.transactions[transaction_id] = {
                "body": body,
                "final_status": self.fail_when(body) or "COMPLETED",
            }
            return httpx.Response(200, json={"id": transaction_id, "status": "SUBMITTED"})

        if method == "GET" and path == "/v1/transactions":
            return httpx.Response(200, json=[self._details(t) for t in self.transactions])

        if len(parts) == 3 and parts[:2] == ["v1", "transactions"] and method == "GET":
            if parts[2] not in self.transactions:
                return httpx.Response(404, json={"message": "not found"})
            return httpx.Response(200, json=self._details(parts[2]))

        return httpx.Response(404, json={"message": f"unhandled {method} {path}"})


@pytest.fixture
def custody() -> FakeCustody:
    return FakeCustody()


@pytest.fixture
def assets():
    from hub_treasuries.services.custody import Assets

    return Assets(["SOL", "MATIC", "ETH"], test_mode=False)


@pytest.fixture
async def fireblocks(custody, private_key_pem, assets):
    from hub_treasuries.services.custody import FireblocksClient, RequestSigner

    client = FireblocksClient(
        base_url=CUSTODY_URL,
        signer=RequestSigner(private_key_pem, "test-api-key"),
        assets=assets,
        treasury_vault=TREASURY_VAULT,
        poll_interval=0,
        wait_deadline=5,
        transport=custody.transport,
    )
    yield client
    await client.aclose()
