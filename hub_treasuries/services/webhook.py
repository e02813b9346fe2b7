"""Custody webhook completion of Solana signing requests.

Requests submitted by ``SolanaSigner.submit_for_webhook`` leave a
``PendingSignature`` row. When custody reports the transaction terminal, the
signature is placed into the signer list, the transaction is broadcast through
Solana RPC and the terminal event is emitted. The row is deleted afterwards.
"""

from enum import Enum
from typing import List, Optional

import structlog
from sqlalchemy import delete, select

from hub_treasuries.core.bus import Producer
from hub_treasuries.core.config import get_settings
from hub_treasuries.core.database import get_db_context
from hub_treasuries.models import AssetType, PendingSignature
from hub_treasuries.schemas.events import (
    SolanaCompletedTransaction,
    TreasuryEventKey,
    TreasuryEventKind,
)
from hub_treasuries.schemas.fireblocks import (
    TRANSACTION_STATUS_UPDATED,
    TransactionDetails,
    TransactionStatus,
    WebhookNotification,
)
from hub_treasuries.services import journal, registry
from hub_treasuries.services.emitter import Emitter
from hub_treasuries.services.errors import InvalidPayload, ProcessorError
from hub_treasuries.services.signing.signatures import (
    assemble_transaction,
    ed25519_signature_to_base58,
    first_signed_message,
    is_public_key,
    message_from_content,
)
from hub_treasuries.services.solana_rpc import SolanaRpcClient, SolanaRpcError, get_solana_rpc

logger = structlog.get_logger()

SUPPORTED_ASSETS = {AssetType.Solana.value, AssetType.SolanaTest.value}


class WebhookOutcome(str, Enum):
    IGNORED = "ignored"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class WebhookError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnsupportedAsset(WebhookError):
    status_code = 400


class UnknownTransaction(WebhookError):
    status_code = 404


def place_signature(entries: List[str], signature: str) -> List[str]:
    """Replace the public-key slot of ``entries`` with ``signature``."""
    signatures = list(entries)
    for index, entry in enumerate(signatures):
        if is_public_key(entry):
            signatures[index] = signature
            return signatures
    raise InvalidPayload("Pending signer list has no public key")


class WebhookProcessor:
    def __init__(
        self,
        emitter: Emitter,
        rpc: SolanaRpcClient,
        completion_path: str = "poll",
    ):
        self.emitter = emitter
        self.rpc = rpc
        self.completion_path = completion_path

    async def handle(self, notification: WebhookNotification) -> WebhookOutcome:
        """Process one callback.

        Raises:
            UnsupportedAsset: the transaction is not a Solana asset
            UnknownTransaction: no pending row, webhook completion enabled
        """
        if notification.type != TRANSACTION_STATUS_UPDATED:
            logger.debug("Ignoring webhook", type=notification.type)
            return WebhookOutcome.IGNORED

        try:
            details = TransactionDetails.model_validate(notification.data)
        except ValueError as e:
            raise WebhookError(f"Invalid transaction details: {e}") from e

        if details.asset_id not in SUPPORTED_ASSETS:
            raise UnsupportedAsset(f"Unsupported asset {details.asset_id!r}")

        log = logger.bind(fireblocks_id=details.id, status=details.status.value)

        if not details.status.is_terminal:
            log.debug("Webhook for non-terminal transaction")
            return WebhookOutcome.PENDING

        pending = await self._load_pending(details.id)
        if pending is None:
            if self.completion_path == "webhook":
                raise UnknownTransaction(f"No pending signature for transaction {details.id}")
            log.debug("No pending signature, completion owned by polling")
            return WebhookOutcome.IGNORED

        if details.status == TransactionStatus.COMPLETED:
            tx_signature = await self._broadcast(pending, details)
        else:
            log.warning("Custody transaction failed")
            tx_signature = None

        status = TransactionStatus.COMPLETED if tx_signature else TransactionStatus.FAILED
        await self.emitter.emit(
            TreasuryEventKind(pending.kind),
            SolanaCompletedTransaction(
                project_id=pending.project_id,
                status=status,
                tx_signature=tx_signature or "",
                fireblocks_id=details.id,
            ),
            TreasuryEventKey(
                id=pending.key_id, user_id=pending.user_id, project_id=pending.project_id
            ),
            correlation_ids=[details.id],
        )

        async with get_db_context() as session:
            await session.execute(
                delete(PendingSignature).where(
                    PendingSignature.fireblocks_id == pending.fireblocks_id
                )
            )

        log.info("Webhook signing completed", kind=pending.kind, outcome=status.value)
        return WebhookOutcome.COMPLETED if tx_signature else WebhookOutcome.FAILED

    async def _load_pending(self, fireblocks_id: str) -> Optional[PendingSignature]:
        try:
            key = registry.parse_uuid(fireblocks_id, "fireblocks_id")
        except InvalidPayload:
            return None
        async with get_db_context() as session:
            stmt = select(PendingSignature).where(PendingSignature.fireblocks_id == key)
            return (await session.execute(stmt)).scalar_one_or_none()

    async def _broadcast(
        self, pending: PendingSignature, details: TransactionDetails
    ) -> Optional[str]:
        """Send the completed transaction; None when it could not be sent."""
        log = logger.bind(fireblocks_id=details.id)

        async with get_db_context() as session:
            existing = await journal.get_transaction(session, details.id)
        if existing is not None:
            # redelivered callback; already on chain
            return existing.signature

        try:
            signed = first_signed_message(details)
            signature = ed25519_signature_to_base58(signed.signature.full_sig)
            signatures = place_signature(pending.signatures_or_signers_public_keys, signature)
            wire = assemble_transaction(signatures, message_from_content(signed.content))
        except ProcessorError as e:
            log.error("Cannot assemble signed transaction", error=str(e))
            return None

        try:
            tx_signature = await self.rpc.send_transaction(wire)
        except SolanaRpcError as e:
            log.error("Solana RPC rejected transaction", error=str(e))
            return None

        async with get_db_context() as session:
            await journal.record_transaction(session, details.id, tx_signature, pending.tx_type)

        return tx_signature



# Lazy singleton processor instance
_webhook_processor: Optional[WebhookProcessor] = None


def get_webhook_processor() -> WebhookProcessor:
    """FastAPI dependency; built on first request."""
    global _webhook_processor
    if _webhook_processor is None:
        settings = get_settings()
        _webhook_processor = WebhookProcessor(
            Emitter(Producer()),
            get_solana_rpc(),
            completion_path=settings.signing_completion_path,
        )
    return _webhook_processor
