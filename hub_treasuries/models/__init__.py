"""Database models."""

from hub_treasuries.models.treasury import Treasury, ProjectTreasury, CustomerTreasury
from hub_treasuries.models.wallet import AssetType, Blockchain, Wallet, normalize_address
from hub_treasuries.models.transaction import PendingSignature, Transaction, TxType

__all__ = [
    "Treasury",
    "ProjectTreasury",
    "CustomerTreasury",
    "AssetType",
    "Blockchain",
    "Wallet",
    "normalize_address",
    "PendingSignature",
    "Transaction",
    "TxType",
]
