"""Event bus schemas.

Every topic carries a JSON key and a JSON payload. Payloads are tagged unions
``{"kind": <variant>, "payload": {...}}``; the payload model is selected from
the kind. An unknown kind parses to ``kind=None`` so newer producers never
break this consumer.
"""

import base64
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, List, Optional, Type

from pydantic import BaseModel, BeforeValidator, Field, PlainSerializer, model_validator

from hub_treasuries.models.wallet import Blockchain
from hub_treasuries.schemas.fireblocks import TransactionStatus


def _b64_to_bytes(value: Any) -> Any:
    if isinstance(value, str):
        return base64.b64decode(value, validate=True)
    return value


def _hex_to_bytes(value: Any) -> Any:
    if isinstance(value, str):
        return bytes.fromhex(value[2:] if value[:2] in ("0x", "0X") else value)
    return value


# bytes carried as base64 in JSON
B64Bytes = Annotated[
    bytes,
    BeforeValidator(_b64_to_bytes),
    PlainSerializer(lambda b: base64.b64encode(b).decode("ascii"), return_type=str, when_used="json"),
]

# bytes carried as 0x-prefixed hex in JSON
HexBytes = Annotated[
    bytes,
    BeforeValidator(_hex_to_bytes),
    PlainSerializer(lambda b: "0x" + b.hex(), return_type=str, when_used="json"),
]


class TaggedEvent(BaseModel):
    """Base for ``{kind, payload}`` envelopes."""

    kind_type: ClassVar[Type[Enum]]
    payload_models: ClassVar[Dict[Any, Type[BaseModel]]]

    kind: Optional[Any] = None
    payload: Optional[Any] = None

    @model_validator(mode="before")
    @classmethod
    def select_payload(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        try:
            kind = cls.kind_type(data.get("kind"))
        except ValueError:
            return {"kind": None, "payload": None}

        model = cls.payload_models[kind]
        payload = data.get("payload")
        if not isinstance(payload, model):
            payload = model.model_validate(payload if payload is not None else {})
        return {"kind": kind, "payload": payload}


# ==================== Keys ====================


class CustomerEventKey(BaseModel):
    id: str
    project_id: Optional[str] = None


class OrganizationEventKey(BaseModel):
    user_id: str


class SolanaNftEventKey(BaseModel):
    id: str
    user_id: str
    project_id: str


class PolygonNftEventKey(BaseModel):
    id: str
    user_id: str
    project_id: str


class TreasuryEventKey(BaseModel):
    id: str
    user_id: str
    project_id: Optional[str] = None

    @classmethod
    def from_nft_key(cls, key: BaseModel) -> "TreasuryEventKey":
        return cls(id=key.id, user_id=key.user_id, project_id=key.project_id)


# ==================== Inbound: customers / organizations ====================


class Customer(BaseModel):
    project_id: str


class CustomerEventKind(str, Enum):
    Created = "Created"


class CustomerEvents(TaggedEvent):
    kind_type = CustomerEventKind
    payload_models = {CustomerEventKind.Created: Customer}


class Project(BaseModel):
    id: str
    organization_id: Optional[str] = None


class OrganizationEventKind(str, Enum):
    ProjectCreated = "ProjectCreated"


class OrganizationEvents(TaggedEvent):
    kind_type = OrganizationEventKind
    payload_models = {OrganizationEventKind.ProjectCreated: Project}


# ==================== Inbound: Solana ====================


class SolanaPendingTransaction(BaseModel):
    serialized_message: B64Bytes
    # each entry is a signer public key or a signature supplied upstream
    signatures_or_signers_public_keys: List[str] = Field(default_factory=list)


class SolanaNftEventKind(str, Enum):
    CreateDropSigningRequested = "CreateDropSigningRequested"
    RetryCreateDropSigningRequested = "RetryCreateDropSigningRequested"
    UpdateDropSigningRequested = "UpdateDropSigningRequested"
    MintDropSigningRequested = "MintDropSigningRequested"
    RetryMintDropSigningRequested = "RetryMintDropSigningRequested"
    TransferAssetSigningRequested = "TransferAssetSigningRequested"
    CreateCollectionSigningRequested = "CreateCollectionSigningRequested"
    RetryCreateCollectionSigningRequested = "RetryCreateCollectionSigningRequested"
    UpdateCollectionSigningRequested = "UpdateCollectionSigningRequested"
    UpdateCollectionMintSigningRequested = "UpdateCollectionMintSigningRequested"
    RetryUpdateCollectionMintSigningRequested = "RetryUpdateCollectionMintSigningRequested"
    MintToCollectionSigningRequested = "MintToCollectionSigningRequested"
    RetryMintToCollectionSigningRequested = "RetryMintToCollectionSigningRequested"
    SwitchCollectionSigningRequested = "SwitchCollectionSigningRequested"


class SolanaNftEvents(TaggedEvent):
    kind_type = SolanaNftEventKind
    payload_models = {kind: SolanaPendingTransaction for kind in SolanaNftEventKind}


# ==================== Inbound: Polygon ====================


class PolygonTransaction(BaseModel):
    data: HexBytes
    contract_address: str
    edition_id: int = 0


class PermitArgsHash(BaseModel):
    data: HexBytes
    owner: str
    spender: str
    recipient: str
    edition_id: int
    amount: int


class PolygonTokenTransferTxns(BaseModel):
    permit_token_transfer_txn: Optional[PolygonTransaction] = None
    safe_transfer_from_txn: Optional[PolygonTransaction] = None


class PolygonNftEventKind(str, Enum):
    SubmitCreateDropTxn = "SubmitCreateDropTxn"
    SubmitRetryCreateDropTxn = "SubmitRetryCreateDropTxn"
    SubmitMintDropTxn = "SubmitMintDropTxn"
    SubmitUpdateDropTxn = "SubmitUpdateDropTxn"
    SubmitRetryMintDropTxn = "SubmitRetryMintDropTxn"
    SignPermitTokenTransferHash = "SignPermitTokenTransferHash"
    SubmitTransferAssetTxns = "SubmitTransferAssetTxns"


class PolygonNftEvents(TaggedEvent):
    kind_type = PolygonNftEventKind
    payload_models = {
        PolygonNftEventKind.SubmitCreateDropTxn: PolygonTransaction,
        PolygonNftEventKind.SubmitRetryCreateDropTxn: PolygonTransaction,
        PolygonNftEventKind.SubmitMintDropTxn: PolygonTransaction,
        PolygonNftEventKind.SubmitUpdateDropTxn: PolygonTransaction,
        PolygonNftEventKind.SubmitRetryMintDropTxn: PolygonTransaction,
        PolygonNftEventKind.SignPermitTokenTransferHash: PermitArgsHash,
        PolygonNftEventKind.SubmitTransferAssetTxns: PolygonTokenTransferTxns,
    }


# ==================== Outbound ====================


class SolanaTransactionResult(BaseModel):
    serialized_message: Optional[B64Bytes] = None
    signed_message_signatures: List[str] = Field(default_factory=list)
    status: TransactionStatus
    fireblocks_ids: List[str] = Field(default_factory=list)


class PolygonTransactionResult(BaseModel):
    hash: Optional[str] = None
    status: TransactionStatus
    contract_address: str
    edition_id: int
    fireblocks_id: Optional[str] = None


class EcdsaSignature(BaseModel):
    r: HexBytes
    s: HexBytes
    v: int


class PolygonPermitHashSignature(BaseModel):
    signature: Optional[EcdsaSignature] = None
    owner: str
    spender: str
    recipient: str
    edition_id: int
    amount: int
    status: TransactionStatus
    fireblocks_id: Optional[str] = None


class CustomerTreasury(BaseModel):
    customer_id: str
    project_id: str


class ProjectWallet(BaseModel):
    project_id: str
    wallet_address: Optional[str] = None
    blockchain: Blockchain


class SolanaCompletedTransaction(BaseModel):
    """Terminal outcome of a webhook-completed Solana transaction."""
    project_id: str
    status: TransactionStatus
    tx_signature: str = ""
    fireblocks_id: Optional[str] = None


class TreasuryEventKind(str, Enum):
    CustomerTreasuryCreated = "CustomerTreasuryCreated"
    ProjectWalletCreated = "ProjectWalletCreated"

    SolanaCreateDropSigned = "SolanaCreateDropSigned"
    SolanaRetryCreateDropSigned = "SolanaRetryCreateDropSigned"
    SolanaUpdateDropSigned = "SolanaUpdateDropSigned"
    SolanaMintDropSigned = "SolanaMintDropSigned"
    SolanaRetryMintDropSigned = "SolanaRetryMintDropSigned"
    SolanaTransferAssetSigned = "SolanaTransferAssetSigned"
    SolanaCreateCollectionSigned = "SolanaCreateCollectionSigned"
    SolanaRetryCreateCollectionSigned = "SolanaRetryCreateCollectionSigned"
    SolanaUpdateCollectionSigned = "SolanaUpdateCollectionSigned"
    SolanaUpdateCollectionMintSigned = "SolanaUpdateCollectionMintSigned"
    SolanaRetryUpdateCollectionMintSigned = "SolanaRetryUpdateCollectionMintSigned"
    SolanaMintToCollectionSigned = "SolanaMintToCollectionSigned"
    SolanaRetryMintToCollectionSigned = "SolanaRetryMintToCollectionSigned"
    SolanaSwitchCollectionSigned = "SolanaSwitchCollectionSigned"

    PolygonCreateDropTxnSubmitted = "PolygonCreateDropTxnSubmitted"
    PolygonRetryCreateDropSubmitted = "PolygonRetryCreateDropSubmitted"
    PolygonMintDropSubmitted = "PolygonMintDropSubmitted"
    PolygonUpdateDropSubmitted = "PolygonUpdateDropSubmitted"
    PolygonRetryMintDropSubmitted = "PolygonRetryMintDropSubmitted"
    PolygonTransferAssetSubmitted = "PolygonTransferAssetSubmitted"
    PolygonPermitTransferTokenHashSigned = "PolygonPermitTransferTokenHashSigned"

    # webhook completion path
    DropCreated = "DropCreated"
    DropRetried = "DropRetried"
    DropMinted = "DropMinted"
    MintRetried = "MintRetried"
    DropUpdated = "DropUpdated"
    MintTransferred = "MintTransferred"


def _treasury_payload_models() -> Dict[TreasuryEventKind, Type[BaseModel]]:
    models: Dict[TreasuryEventKind, Type[BaseModel]] = {
        TreasuryEventKind.CustomerTreasuryCreated: CustomerTreasury,
        TreasuryEventKind.ProjectWalletCreated: ProjectWallet,
        TreasuryEventKind.PolygonPermitTransferTokenHashSigned: PolygonPermitHashSignature,
    }
    for kind in TreasuryEventKind:
        if kind.value.startswith("Solana"):
            models[kind] = SolanaTransactionResult
        elif kind.value.startswith("Polygon") and kind not in models:
            models[kind] = PolygonTransactionResult
        elif kind not in models:
            models[kind] = SolanaCompletedTransaction
    return models


class TreasuryEvents(TaggedEvent):
    kind_type = TreasuryEventKind
    payload_models = _treasury_payload_models()
