"""Solana signing pipeline.

A signing request carries a serialized message and a list whose entries are
either signer public keys or signatures produced upstream. Every public key
is resolved to the vault holding that wallet, the vault signs the message
through a custody RAW transaction, and the base58 signature replaces the
public key at the same position. Pre-supplied signatures pass through.

All custody transactions of one request run concurrently. If any of them
fails the request emits ``status=FAILED`` with no message and no signatures.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import structlog

from hub_treasuries.core.database import get_db_context
from hub_treasuries.models import Blockchain, PendingSignature, TxType
from hub_treasuries.schemas.events import (
    SolanaCompletedTransaction,
    SolanaNftEventKey,
    SolanaNftEventKind,
    SolanaPendingTransaction,
    SolanaTransactionResult,
    TreasuryEventKey,
    TreasuryEventKind,
)
from hub_treasuries.schemas.fireblocks import TransactionStatus
from hub_treasuries.services import journal, registry
from hub_treasuries.services.custody import CustodyTransactionFailed, FireblocksClient
from hub_treasuries.services.emitter import Emitter
from hub_treasuries.services.errors import ProcessorError
from hub_treasuries.services.signing.base import SigningPipeline, transaction_note
from hub_treasuries.services.signing.signatures import (
    ed25519_signature_to_base58,
    first_signed_message,
    is_public_key,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class SolanaOperation:
    tx_type: TxType
    signed_kind: TreasuryEventKind
    # Terminal event when completion arrives by webhook; None means poll only
    webhook_kind: Optional[TreasuryEventKind] = None


K = SolanaNftEventKind
E = TreasuryEventKind

SOLANA_OPERATIONS: Dict[SolanaNftEventKind, SolanaOperation] = {
    K.CreateDropSigningRequested: SolanaOperation(
        TxType.CreateDrop, E.SolanaCreateDropSigned, E.DropCreated
    ),
    K.RetryCreateDropSigningRequested: SolanaOperation(
        TxType.CreateDrop, E.SolanaRetryCreateDropSigned, E.DropRetried
    ),
    K.UpdateDropSigningRequested: SolanaOperation(
        TxType.UpdateMetadata, E.SolanaUpdateDropSigned, E.DropUpdated
    ),
    K.MintDropSigningRequested: SolanaOperation(
        TxType.MintEdition, E.SolanaMintDropSigned, E.DropMinted
    ),
    K.RetryMintDropSigningRequested: SolanaOperation(
        TxType.MintEdition, E.SolanaRetryMintDropSigned, E.MintRetried
    ),
    K.TransferAssetSigningRequested: SolanaOperation(
        TxType.TransferMint, E.SolanaTransferAssetSigned, E.MintTransferred
    ),
    K.CreateCollectionSigningRequested: SolanaOperation(
        TxType.CreateCollection, E.SolanaCreateCollectionSigned
    ),
    K.RetryCreateCollectionSigningRequested: SolanaOperation(
        TxType.CreateCollection, E.SolanaRetryCreateCollectionSigned
    ),
    K.UpdateCollectionSigningRequested: SolanaOperation(
        TxType.UpdateMetadata, E.SolanaUpdateCollectionSigned
    ),
    K.UpdateCollectionMintSigningRequested: SolanaOperation(
        TxType.UpdateCollectionMint, E.SolanaUpdateCollectionMintSigned
    ),
    K.RetryUpdateCollectionMintSigningRequested: SolanaOperation(
        TxType.UpdateCollectionMint, E.SolanaRetryUpdateCollectionMintSigned
    ),
    K.MintToCollectionSigningRequested: SolanaOperation(
        TxType.MintToCollection, E.SolanaMintToCollectionSigned
    ),
    K.RetryMintToCollectionSigningRequested: SolanaOperation(
        TxType.MintToCollection, E.SolanaRetryMintToCollectionSigned
    ),
    K.SwitchCollectionSigningRequested: SolanaOperation(
        TxType.SwitchCollection, E.SolanaSwitchCollectionSigned
    ),
}

del K, E


@dataclass
class SignerSlot:
    """A public-key entry of the signer list resolved to its vault."""
    index: int
    public_key: str
    vault_id: str
    asset_id: str


class SolanaSigner(SigningPipeline):
    blockchain = Blockchain.Solana

    def __init__(
        self,
        fireblocks: FireblocksClient,
        emitter: Emitter,
        completion_path: str = "poll",
        **kwargs,
    ):
        super().__init__(fireblocks, emitter, **kwargs)
        self.completion_path = completion_path

    async def process(
        self,
        kind: SolanaNftEventKind,
        key: SolanaNftEventKey,
        payload: SolanaPendingTransaction,
    ) -> None:
        operation = SOLANA_OPERATIONS[kind]

        if self._completes_by_webhook(operation, payload):
            await self.submit_for_webhook(operation, key, payload)
            return

        result = await self.sign(operation.tx_type, key, payload)
        await self.emitter.emit(
            operation.signed_kind,
            result,
            TreasuryEventKey.from_nft_key(key),
            correlation_ids=result.fireblocks_ids,
        )

    def _completes_by_webhook(
        self, operation: SolanaOperation, payload: SolanaPendingTransaction
    ) -> bool:
        if self.completion_path != "webhook" or operation.webhook_kind is None:
            return False
        public_keys = [s for s in payload.signatures_or_signers_public_keys if is_public_key(s)]
        return len(public_keys) == 1

    async def resolve_signers(self, entries: List[str]) -> List[SignerSlot]:
        """Vault and asset id for every public-key entry, in list order.

        Raises:
            NotFound: a public key has no wallet, or its vault has no Solana wallet
        """
        slots = []
        async with get_db_context() as session:
            for index, entry in enumerate(entries):
                if not is_public_key(entry):
                    continue
                vault_id = await registry.find_vault_id_by_wallet_address(session, entry)
                wallet = await registry.find_wallet_by_blockchain(
                    session, vault_id, self.blockchain
                )
                slots.append(SignerSlot(index, entry, vault_id, wallet.asset_id.value))
        return slots

    async def _sign_slot(
        self, slot: SignerSlot, message: bytes, note: str, submitted: List[str]
    ) -> Tuple[str, str]:
        async def create():
            created = await self.fireblocks.raw_transaction(
                slot.asset_id, slot.vault_id, message, note
            )
            submitted.append(created.id)
            return created

        details = await self.submit_and_wait(create)
        full_sig = first_signed_message(details).signature.full_sig
        return details.id, ed25519_signature_to_base58(full_sig)

    async def sign(
        self,
        tx_type: TxType,
        key: SolanaNftEventKey,
        payload: SolanaPendingTransaction,
    ) -> SolanaTransactionResult:
        """Produce the signed result for one request.

        Custody and decoding failures become a FAILED result. Transport
        errors propagate once every completed signature has been journaled.
        """
        log = logger.bind(key_id=key.id, tx_type=tx_type.value)
        note = transaction_note(tx_type, key.user_id, key.project_id)
        entries = list(payload.signatures_or_signers_public_keys)

        try:
            slots = await self.resolve_signers(entries)
        except ProcessorError as e:
            log.error("Signer resolution failed", error=str(e))
            return self._failed([])

        submitted: List[str] = []
        outcomes = await asyncio.gather(
            *(self._sign_slot(slot, payload.serialized_message, note, submitted) for slot in slots),
            return_exceptions=True,
        )

        completed = [o for o in outcomes if not isinstance(o, BaseException)]
        if completed:
            async with get_db_context() as session:
                for fireblocks_id, signature in completed:
                    await journal.record_transaction(session, fireblocks_id, signature, tx_type)

        failures = [o for o in outcomes if isinstance(o, BaseException)]
        for failure in failures:
            if not isinstance(failure, (CustodyTransactionFailed, ProcessorError)):
                # CustodyTransportError, database errors
                raise failure

        if failures:
            for failure in failures:
                log.warning("Solana signature failed", error=str(failure))
            return self._failed(submitted)

        signatures = list(entries)
        for slot, (_, signature) in zip(slots, outcomes):
            signatures[slot.index] = signature

        log.info("Solana message signed", signers=len(slots), fireblocks_ids=submitted)
        return SolanaTransactionResult(
            serialized_message=payload.serialized_message,
            signed_message_signatures=signatures,
            status=TransactionStatus.COMPLETED,
            fireblocks_ids=[fireblocks_id for fireblocks_id, _ in outcomes],
        )

    @staticmethod
    def _failed(fireblocks_ids: List[str]) -> SolanaTransactionResult:
        return SolanaTransactionResult(
            serialized_message=None,
            signed_message_signatures=[],
            status=TransactionStatus.FAILED,
            fireblocks_ids=sorted(fireblocks_ids),
        )

    async def submit_for_webhook(
        self,
        operation: SolanaOperation,
        key: SolanaNftEventKey,
        payload: SolanaPendingTransaction,
    ) -> None:
        """Submit the single custody signature and leave completion to the webhook."""
        log = logger.bind(key_id=key.id, tx_type=operation.tx_type.value)
        note = transaction_note(operation.tx_type, key.user_id, key.project_id)

        try:
            (slot,) = await self.resolve_signers(payload.signatures_or_signers_public_keys)
        except ProcessorError as e:
            log.error("Signer resolution failed", error=str(e))
            await self.emitter.emit(
                operation.webhook_kind,
                SolanaCompletedTransaction(
                    project_id=key.project_id, status=TransactionStatus.FAILED
                ),
                TreasuryEventKey.from_nft_key(key),
            )
            return

        created = await self.fireblocks.raw_transaction(
            slot.asset_id, slot.vault_id, payload.serialized_message, note
        )

        async with get_db_context() as session:
            session.add(
                PendingSignature(
                    fireblocks_id=registry.parse_uuid(created.id, "fireblocks_id"),
                    kind=operation.webhook_kind.value,
                    tx_type=operation.tx_type,
                    key_id=key.id,
                    user_id=key.user_id,
                    project_id=key.project_id,
                    serialized_message=payload.serialized_message.hex(),
                    signatures_or_signers_public_keys=list(
                        payload.signatures_or_signers_public_keys
                    ),
                )
            )

        log.info("Solana signature awaiting webhook", fireblocks_id=created.id)
