"""Errors raised while processing bus messages.

A ``permanent`` error cannot be fixed by redelivering the message; the
dispatcher logs it and acknowledges the message. Anything else is left
unacknowledged for redelivery.
"""

from enum import Enum


class EcdsaSignatureScalar(str, Enum):
    R = "r"
    S = "s"
    V = "v"


class ProcessorError(Exception):
    """Base error for message processing."""

    permanent = True

    def __init__(self, message: str):
        super().__init__(message)


class NotFound(ProcessorError):
    """Registry lookup matched no row."""
    pass


class InvalidBlockchain(ProcessorError):
    def __init__(self, blockchain: str):
        super().__init__(f"Invalid blockchain {blockchain!r}")
        self.blockchain = blockchain


class InvalidAssetType(ProcessorError):
    def __init__(self, asset_id: str):
        super().__init__(f"Invalid asset type {asset_id!r}")
        self.asset_id = asset_id


class InvalidPayload(ProcessorError):
    """Key or payload failed validation."""
    pass


class IncompleteEcdsaSignature(ProcessorError):
    def __init__(self, scalar: EcdsaSignatureScalar):
        super().__init__(f"Missing {scalar.value} scalar of ECDSA signature")
        self.scalar = scalar


class InvalidEcdsaPubkeyRecovery(ProcessorError):
    def __init__(self, v: int):
        super().__init__(f"Invalid ECDSA pubkey recovery scalar {v}")
        self.v = v


class InvalidSignature(ProcessorError):
    """Custody returned signature bytes of the wrong shape."""
    pass


class MissingSignedMessage(ProcessorError):
    def __init__(self, transaction_id: str):
        super().__init__(f"Signed message not found in transaction {transaction_id}")
        self.transaction_id = transaction_id


class MissingPermitTokenTransferTxn(ProcessorError):
    def __init__(self):
        super().__init__("Field permit_token_transfer_txn not found in event payload")


class MissingSafeTransferFromTxn(ProcessorError):
    def __init__(self):
        super().__init__("Field safe_transfer_from_txn not found in event payload")
