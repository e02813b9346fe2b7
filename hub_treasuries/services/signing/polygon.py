"""Polygon signing pipeline.

Contract calls are signed and submitted by the deployment's treasury vault.
Permit hashes are RAW-signed by the vault owning the permit's ``owner``
wallet and returned as a recoverable ECDSA signature.
"""

from typing import Dict, Tuple

import structlog

from hub_treasuries.core.database import get_db_context
from hub_treasuries.models import Blockchain, TxType
from hub_treasuries.schemas.events import (
    PermitArgsHash,
    PolygonNftEventKey,
    PolygonNftEventKind,
    PolygonPermitHashSignature,
    PolygonTokenTransferTxns,
    PolygonTransaction,
    PolygonTransactionResult,
    TreasuryEventKey,
    TreasuryEventKind,
)
from hub_treasuries.schemas.fireblocks import TransactionStatus
from hub_treasuries.services import registry
from hub_treasuries.services.custody import CustodyTransactionFailed
from hub_treasuries.services.errors import (
    MissingPermitTokenTransferTxn,
    MissingSafeTransferFromTxn,
    ProcessorError,
)
from hub_treasuries.services.signing.base import SigningPipeline, transaction_note
from hub_treasuries.services.signing.signatures import decode_ecdsa_signature, first_signed_message

logger = structlog.get_logger()

MATIC = "MATIC"

CONTRACT_CALLS: Dict[PolygonNftEventKind, Tuple[TxType, TreasuryEventKind]] = {
    PolygonNftEventKind.SubmitCreateDropTxn: (
        TxType.CreateDrop, TreasuryEventKind.PolygonCreateDropTxnSubmitted
    ),
    PolygonNftEventKind.SubmitRetryCreateDropTxn: (
        TxType.CreateDrop, TreasuryEventKind.PolygonRetryCreateDropSubmitted
    ),
    PolygonNftEventKind.SubmitMintDropTxn: (
        TxType.MintEdition, TreasuryEventKind.PolygonMintDropSubmitted
    ),
    PolygonNftEventKind.SubmitUpdateDropTxn: (
        TxType.UpdateMetadata, TreasuryEventKind.PolygonUpdateDropSubmitted
    ),
    PolygonNftEventKind.SubmitRetryMintDropTxn: (
        TxType.MintEdition, TreasuryEventKind.PolygonRetryMintDropSubmitted
    ),
}


def _correlation(fireblocks_id) -> Tuple[str, ...]:
    return (fireblocks_id,) if fireblocks_id else ()


class PolygonSigner(SigningPipeline):
    blockchain = Blockchain.Polygon

    async def process(self, kind: PolygonNftEventKind, key: PolygonNftEventKey, payload) -> None:
        if kind == PolygonNftEventKind.SignPermitTokenTransferHash:
            await self.sign_permit_hash(key, payload)
        elif kind == PolygonNftEventKind.SubmitTransferAssetTxns:
            await self.transfer_asset(key, payload)
        else:
            tx_type, submitted_kind = CONTRACT_CALLS[kind]
            result = await self.submit(tx_type, key, payload)
            await self.emitter.emit(
                submitted_kind,
                result,
                TreasuryEventKey.from_nft_key(key),
                correlation_ids=_correlation(result.fireblocks_id),
            )

    async def submit(
        self, tx_type: TxType, key: PolygonNftEventKey, txn: PolygonTransaction
    ) -> PolygonTransactionResult:
        """Contract call from the treasury vault, waited to a terminal status.

        A custody failure yields ``hash=None, status=FAILED``.
        """
        note = transaction_note(tx_type, key.user_id, key.project_id)
        asset_id = self.fireblocks.assets.id(MATIC)
        vault_id = self.fireblocks.treasury_vault

        logger.debug("Submitting Polygon transaction", note=note, contract=txn.contract_address)

        try:
            details = await self.submit_and_wait(
                lambda: self.fireblocks.contract_call(
                    "0x" + txn.data.hex(), asset_id, vault_id, txn.contract_address, note
                )
            )
        except CustodyTransactionFailed as e:
            logger.warning(
                "Polygon transaction failed",
                fireblocks_id=e.transaction_id,
                status=e.status.value,
                key_id=key.id,
            )
            return PolygonTransactionResult(
                hash=None,
                status=TransactionStatus.FAILED,
                contract_address=txn.contract_address,
                edition_id=txn.edition_id,
                fireblocks_id=e.transaction_id,
            )

        logger.info(
            "Polygon transaction submitted",
            fireblocks_id=details.id,
            tx_hash=details.tx_hash,
            key_id=key.id,
        )
        return PolygonTransactionResult(
            hash=details.tx_hash,
            status=details.status,
            contract_address=txn.contract_address,
            edition_id=txn.edition_id,
            fireblocks_id=details.id,
        )

    async def sign_permit_hash(self, key: PolygonNftEventKey, args: PermitArgsHash) -> None:
        note = transaction_note(TxType.TransferMint, key.user_id, key.project_id)
        asset_id = self.fireblocks.assets.id(MATIC)

        signature = None
        status = TransactionStatus.COMPLETED
        fireblocks_id = None

        try:
            async with get_db_context() as session:
                vault_id = await registry.find_vault_id_by_wallet_address(session, args.owner)

            details = await self.submit_and_wait(
                lambda: self.fireblocks.raw_transaction(asset_id, vault_id, args.data, note)
            )
            fireblocks_id = details.id
            signature = decode_ecdsa_signature(first_signed_message(details).signature)
        except CustodyTransactionFailed as e:
            logger.warning("Permit hash signing failed", fireblocks_id=e.transaction_id, status=e.status.value)
            status = TransactionStatus.FAILED
            fireblocks_id = e.transaction_id
        except ProcessorError as e:
            logger.error("Permit hash signing failed", error=str(e), owner=args.owner)
            signature = None
            status = TransactionStatus.FAILED

        await self.emitter.emit(
            TreasuryEventKind.PolygonPermitTransferTokenHashSigned,
            PolygonPermitHashSignature(
                signature=signature,
                owner=args.owner,
                spender=args.spender,
                recipient=args.recipient,
                edition_id=args.edition_id,
                amount=args.amount,
                status=status,
                fireblocks_id=fireblocks_id,
            ),
            TreasuryEventKey.from_nft_key(key),
            correlation_ids=_correlation(fireblocks_id),
        )

    async def transfer_asset(self, key: PolygonNftEventKey, txns: PolygonTokenTransferTxns) -> None:
        """Permit transfer first, then the safe transfer; only the latter is emitted."""
        permit = txns.permit_token_transfer_txn
        transfer = txns.safe_transfer_from_txn
        if permit is None:
            raise MissingPermitTokenTransferTxn()
        if transfer is None:
            raise MissingSafeTransferFromTxn()

        permit_result = await self.submit(TxType.TransferMint, key, permit)

        if permit_result.status != TransactionStatus.COMPLETED:
            # the safe transfer would revert without the permit
            result = PolygonTransactionResult(
                hash=None,
                status=TransactionStatus.FAILED,
                contract_address=transfer.contract_address,
                edition_id=transfer.edition_id,
                fireblocks_id=permit_result.fireblocks_id,
            )
        else:
            result = await self.submit(TxType.TransferMint, key, transfer)

        await self.emitter.emit(
            TreasuryEventKind.PolygonTransferAssetSubmitted,
            result,
            TreasuryEventKey.from_nft_key(key),
            correlation_ids=_correlation(result.fireblocks_id),
        )

