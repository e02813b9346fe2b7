# Custody provider module
from hub_treasuries.services.custody.assets import Assets
from hub_treasuries.services.custody.client import (
    CustodyDeadlineExceeded,
    CustodyError,
    CustodyTransactionFailed,
    CustodyTransportError,
    FireblocksClient,
    close_fireblocks_client,
    get_fireblocks_client,
)
from hub_treasuries.services.custody.signer import RequestSigner

__all__ = [
    "Assets",
    "CustodyDeadlineExceeded",
    "CustodyError",
    "CustodyTransactionFailed",
    "CustodyTransportError",
    "FireblocksClient",
    "RequestSigner",
    "close_fireblocks_client",
    "get_fireblocks_client",
]
