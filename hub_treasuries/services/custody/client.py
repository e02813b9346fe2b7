"""Fireblocks custody API client.

API Reference: https://docs.fireblocks.com/api/
Auth: ``X-API-KEY`` header plus a per-request RS256 bearer token (see signer.py)

- One shared ``httpx.AsyncClient`` per process
- Request bodies are serialized once; the signed bytes are the sent bytes
- Every call is recorded in the metrics collector
- ``wait_for_terminal`` polls a transaction until the provider settles it
"""

import asyncio
import json
import time
from typing import Any, Dict, List, Optional, Type, TypeVar
from urllib.parse import urlencode

import httpx
import structlog
from pydantic import TypeAdapter

from hub_treasuries.core.config import Settings, get_settings
from hub_treasuries.core.metrics import get_metrics
from hub_treasuries.schemas.fireblocks import (
    CreateTransaction,
    CreateTransactionResponse,
    CreateVault,
    CreateVaultAssetResponse,
    CreateVaultWallet,
    DestinationTransferPeerPath,
    ExtraParameters,
    FireblocksModel,
    OneTimeAddress,
    QueryVaultAccounts,
    RawMessageData,
    TransactionDetails,
    TransactionOperation,
    TransactionStatus,
    TransferPeerPath,
    UnsignedMessage,
    VaultAccount,
    VaultAccountsPagedResponse,
    VaultAsset,
)
from hub_treasuries.services.custody.assets import Assets
from hub_treasuries.services.custody.signer import RequestSigner

logger = structlog.get_logger()

T = TypeVar("T")


class CustodyError(Exception):
    """Custody provider error."""
    pass


class CustodyTransportError(CustodyError):
    """HTTP, transport or response decoding failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CustodyTransactionFailed(CustodyError):
    """A transaction ended in a failure status."""

    def __init__(
        self,
        status: TransactionStatus,
        transaction_id: Optional[str] = None,
        message: Optional[str] = None,
    ):
        super().__init__(message or f"transaction {transaction_id} ended with status {status.value}")
        self.status = status
        self.transaction_id = transaction_id


class CustodyDeadlineExceeded(CustodyTransactionFailed):
    """A transaction did not settle before the wait deadline."""

    def __init__(self, transaction_id: str, last_status: TransactionStatus, waited_seconds: float):
        super().__init__(
            last_status,
            transaction_id,
            f"transaction {transaction_id} still {last_status.value} after {waited_seconds:.1f}s",
        )
        self.waited_seconds = waited_seconds


def encode_body(body: Optional[FireblocksModel]) -> bytes:
    """Compact JSON of the request body; empty for bodiless requests."""
    if body is None:
        return b""
    return json.dumps(body.to_wire(), separators=(",", ":")).encode("utf-8")


class FireblocksClient:
    """Async client for the Fireblocks REST API."""

    def __init__(
        self,
        base_url: str,
        signer: RequestSigner,
        assets: Assets,
        treasury_vault: str,
        timeout: float = 30.0,
        poll_interval: float = 0.25,
        wait_deadline: float = 600.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.signer = signer
        self.assets = assets
        self.treasury_vault = treasury_vault
        self.poll_interval = poll_interval
        self.wait_deadline = wait_deadline
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "FireblocksClient":
        settings = settings or get_settings()
        return cls(
            base_url=settings.fireblocks_endpoint,
            signer=RequestSigner.from_file(
                settings.fireblocks_secret_path, settings.fireblocks_api_key
            ),
            assets=Assets.from_settings(settings),
            treasury_vault=settings.fireblocks_treasury_vault,
            timeout=settings.fireblocks_timeout_seconds,
            poll_interval=settings.poll_interval_seconds,
            wait_deadline=settings.fireblocks_wait_deadline_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        endpoint: str,
        body: Optional[FireblocksModel] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Send a signed request and return the decoded JSON.

        Args:
            method: HTTP method
            path: Request path, starting at ``/v1``
            endpoint: Metrics label (path template, no ids)
            body: Request body, or None for GET
            params: Query parameters, signed as part of the uri

        Raises:
            CustodyTransportError: On transport errors, non-2xx responses or
                undecodable bodies
        """
        content = encode_body(body)
        uri = f"{path}?{urlencode(params)}" if params else path
        token = self.signer.sign(uri, content)

        headers = {
            "X-API-KEY": self.signer.api_key,
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        if body is not None:
            headers["Content-Type"] = "application/json"

        metrics = get_metrics()
        start_time = time.monotonic()

        try:
            response = await self._http.request(
                method, uri, content=content if body is not None else None, headers=headers
            )
        except httpx.HTTPError as e:
            latency_ms = (time.monotonic() - start_time) * 1000
            await metrics.record_api_call(
                endpoint=endpoint, latency_ms=latency_ms, success=False, error_message=str(e)
            )
            raise CustodyTransportError(f"{method} {path} failed: {e}") from e

        latency_ms = (time.monotonic() - start_time) * 1000

        if response.status_code >= 400:
            message = f"{method} {path} returned {response.status_code}: {response.text[:200]}"
            await metrics.record_api_call(
                endpoint=endpoint,
                latency_ms=latency_ms,
                success=False,
                status_code=response.status_code,
                error_message=message,
            )
            raise CustodyTransportError(message, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            await metrics.record_api_call(
                endpoint=endpoint,
                latency_ms=latency_ms,
                success=False,
                status_code=response.status_code,
                error_message="invalid JSON",
            )
            raise CustodyTransportError(
                f"{method} {path} returned invalid JSON", status_code=response.status_code
            ) from e

        await metrics.record_api_call(
            endpoint=endpoint,
            latency_ms=latency_ms,
            success=True,
            status_code=response.status_code,
        )
        return data

    @staticmethod
    def _parse(model: Type[T], data: Any, endpoint: str) -> T:
        # pydantic's ValidationError is a ValueError
        try:
            return TypeAdapter(model).validate_python(data)
        except ValueError as e:
            raise CustodyTransportError(f"unexpected response from {endpoint}: {e}") from e

    # ==================== Vaults ====================

    async def create_vault(
        self,
        name: str,
        customer_ref_id: Optional[str] = None,
        auto_fuel: Optional[bool] = None,
        hidden_on_ui: Optional[bool] = None,
    ) -> VaultAccount:
        endpoint = "POST /v1/vault/accounts"
        body = CreateVault(
            name=name,
            customer_ref_id=customer_ref_id,
            auto_fuel=auto_fuel,
            hidden_on_ui=hidden_on_ui,
        )
        data = await self._request("POST", "/v1/vault/accounts", endpoint, body=body)
        vault = self._parse(VaultAccount, data, endpoint)
        logger.info("Vault created", vault_id=vault.id, name=name)
        return vault

    async def create_wallet(
        self,
        vault_id: str,
        asset_id: str,
        eos_account_name: Optional[str] = None,
    ) -> CreateVaultAssetResponse:
        endpoint = "POST /v1/vault/accounts/{vault}/{asset}"
        data = await self._request(
            "POST",
            f"/v1/vault/accounts/{vault_id}/{asset_id}",
            endpoint,
            body=CreateVaultWallet(eos_account_name=eos_account_name),
        )
        wallet = self._parse(CreateVaultAssetResponse, data, endpoint)
        logger.info("Vault wallet created", vault_id=vault_id, asset_id=asset_id, address=wallet.address)
        return wallet

    async def get_vault(self, vault_id: str) -> VaultAccount:
        endpoint = "GET /v1/vault/accounts/{vault}"
        data = await self._request("GET", f"/v1/vault/accounts/{vault_id}", endpoint)
        return self._parse(VaultAccount, data, endpoint)

    async def list_vaults(
        self, filters: Optional[QueryVaultAccounts] = None
    ) -> VaultAccountsPagedResponse:
        endpoint = "GET /v1/vault/accounts_paged"
        filters = filters or QueryVaultAccounts()
        data = await self._request(
            "GET", "/v1/vault/accounts_paged", endpoint, params=filters.to_params()
        )
        return self._parse(VaultAccountsPagedResponse, data, endpoint)

    async def list_vault_assets(self) -> List[VaultAsset]:
        endpoint = "GET /v1/vault/assets"
        data = await self._request("GET", "/v1/vault/assets", endpoint)
        return self._parse(List[VaultAsset], data, endpoint)

    # ==================== Transactions ====================

    async def create_transaction(self, tx: CreateTransaction) -> CreateTransactionResponse:
        endpoint = "POST /v1/transactions"
        data = await self._request("POST", "/v1/transactions", endpoint, body=tx)
        created = self._parse(CreateTransactionResponse, data, endpoint)
        logger.info(
            "Custody transaction created",
            fireblocks_id=created.id,
            status=created.status.value,
            operation=tx.operation.value,
            asset_id=tx.asset_id,
            vault_id=tx.source.id,
        )
        return created

    async def list_transactions(
        self, params: Optional[Dict[str, str]] = None
    ) -> List[TransactionDetails]:
        endpoint = "GET /v1/transactions"
        data = await self._request("GET", "/v1/transactions", endpoint, params=params)
        return self._parse(List[TransactionDetails], data, endpoint)

    async def get_transaction(self, transaction_id: str) -> TransactionDetails:
        endpoint = "GET /v1/transactions/{id}"
        data = await self._request("GET", f"/v1/transactions/{transaction_id}", endpoint)
        return self._parse(TransactionDetails, data, endpoint)

    async def raw_transaction(
        self, asset_id: str, vault_id: str, message: bytes, note: str
    ) -> CreateTransactionResponse:
        """Ask the vault to sign ``message`` without broadcasting anything."""
        tx = CreateTransaction(
            asset_id=asset_id,
            operation=TransactionOperation.RAW,
            source=TransferPeerPath(id=vault_id),
            amount="0",
            note=note,
            extra_parameters=ExtraParameters(
                raw_message_data=RawMessageData(
                    messages=[UnsignedMessage(content=message.hex())]
                )
            ),
        )
        return await self.create_transaction(tx)

    async def contract_call(
        self,
        data: str,
        asset_id: str,
        vault_id: str,
        contract_address: str,
        note: str,
    ) -> CreateTransactionResponse:
        """Sign and submit an EVM contract invocation from ``vault_id``."""
        tx = CreateTransaction(
            asset_id=asset_id,
            operation=TransactionOperation.CONTRACT_CALL,
            source=TransferPeerPath(id=vault_id),
            destination=DestinationTransferPeerPath(
                peer_type="ONE_TIME_ADDRESS",
                one_time_address=OneTimeAddress(address=contract_address),
            ),
            amount="0",
            note=note,
            extra_parameters=ExtraParameters(contract_call_data=data),
        )
        return await self.create_transaction(tx)

    async def wait_for_terminal(self, transaction_id: str) -> TransactionDetails:
        """Poll until the transaction reaches a terminal status.

        Returns the details on COMPLETED.

        Raises:
            CustodyTransactionFailed: FAILED, CANCELLED, REJECTED or BLOCKED
            CustodyDeadlineExceeded: still pending after ``wait_deadline``
                seconds (0 waits forever)
            CustodyTransportError: a poll request failed
        """
        start_time = time.monotonic()

        while True:
            details = await self.get_transaction(transaction_id)

            if details.status == TransactionStatus.COMPLETED:
                return details

            if details.status.is_failure:
                logger.warning(
                    "Custody transaction failed",
                    fireblocks_id=transaction_id,
                    status=details.status.value,
                    sub_status=details.sub_status,
                )
                raise CustodyTransactionFailed(details.status, transaction_id)

            waited = time.monotonic() - start_time
            if self.wait_deadline and waited >= self.wait_deadline:
                logger.error(
                    "Custody transaction deadline exceeded",
                    fireblocks_id=transaction_id,
                    status=details.status.value,
                    waited_seconds=round(waited, 1),
                )
                raise CustodyDeadlineExceeded(transaction_id, details.status, waited)

            await asyncio.sleep(self.poll_interval)


# Lazy singleton client instance
_fireblocks_client: Optional[FireblocksClient] = None


def get_fireblocks_client() -> FireblocksClient:
    """Get or create the custody client singleton.

    Client is created on first access, not at import time.
    """
    global _fireblocks_client
    if _fireblocks_client is None:
        _fireblocks_client = FireblocksClient.from_settings()
    return _fireblocks_client


async def close_fireblocks_client() -> None:
    global _fireblocks_client
    if _fireblocks_client is not None:
        await _fireblocks_client.aclose()
        _fireblocks_client = None
