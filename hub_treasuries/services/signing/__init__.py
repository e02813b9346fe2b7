# Per-chain signing pipelines
from hub_treasuries.services.signing.base import SigningPipeline, transaction_note
from hub_treasuries.services.signing.polygon import PolygonSigner
from hub_treasuries.services.signing.solana import SOLANA_OPERATIONS, SolanaSigner

__all__ = [
    "SigningPipeline",
    "transaction_note",
    "PolygonSigner",
    "SOLANA_OPERATIONS",
    "SolanaSigner",
]
