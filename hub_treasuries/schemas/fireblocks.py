"""Custody provider (Fireblocks) wire objects.

The provider speaks camelCase JSON; models here use snake_case attributes with
camelCase aliases. Serialize with ``by_alias=True, exclude_none=True``.

API Reference: https://docs.fireblocks.com/api/
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class FireblocksModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TransactionOperation(str, Enum):
    TRANSFER = "TRANSFER"
    RAW = "RAW"
    CONTRACT_CALL = "CONTRACT_CALL"
    MINT = "MINT"
    BURN = "BURN"
    SUPPLY_TO_COMPOUND = "SUPPLY_TO_COMPOUND"
    REDEEM_FROM_COMPOUND = "REDEEM_FROM_COMPOUND"


class TransactionStatus(str, Enum):
    UNSPECIFIED = "UNSPECIFIED"
    SUBMITTED = "SUBMITTED"
    QUEUED = "QUEUED"
    PENDING_AUTHORIZATION = "PENDING_AUTHORIZATION"
    PENDING_SIGNATURE = "PENDING_SIGNATURE"
    BROADCASTING = "BROADCASTING"
    PENDING_3RD_PARTY_MANUAL_APPROVAL = "PENDING_3RD_PARTY_MANUAL_APPROVAL"
    PENDING_3RD_PARTY = "PENDING_3RD_PARTY"
    CONFIRMING = "CONFIRMING"
    PARTIALLY_COMPLETED = "PARTIALLY_COMPLETED"
    PENDING_AML_SCREENING = "PENDING_AML_SCREENING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    BLOCKED = "BLOCKED"
    FAILED = "FAILED"
    PENDING = "PENDING"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_failure(self) -> bool:
        return self in FAILED_STATUSES


FAILED_STATUSES = frozenset({
    TransactionStatus.FAILED,
    TransactionStatus.CANCELLED,
    TransactionStatus.REJECTED,
    TransactionStatus.BLOCKED,
})

TERMINAL_STATUSES = FAILED_STATUSES | {TransactionStatus.COMPLETED}


# ==================== Vaults ====================


class CreateVault(FireblocksModel):
    """https://docs.fireblocks.com/api/#create-a-new-vault-account"""
    name: str
    hidden_on_ui: Optional[bool] = Field(default=None, alias="hiddenOnUI")
    customer_ref_id: Optional[str] = None
    auto_fuel: Optional[bool] = None


class CreateVaultWallet(FireblocksModel):
    eos_account_name: Optional[str] = None


class VaultAsset(FireblocksModel):
    id: str
    total: Optional[str] = None
    balance: Optional[str] = None
    available: Optional[str] = None
    pending: Optional[str] = None
    staked: Optional[str] = None
    frozen: Optional[str] = None
    locked_amount: Optional[str] = None
    max_bip44_address_index_used: Optional[int] = Field(
        default=None, alias="maxBip44AddressIndexUsed"
    )
    max_bip44_change_address_index_used: Optional[int] = Field(
        default=None, alias="maxBip44ChangeAddressIndexUsed"
    )
    total_staked_cpu: Optional[str] = None
    total_staked_network: Optional[str] = None
    self_staked_cpu: Optional[str] = None
    self_staked_network: Optional[str] = None
    pending_refund_cpu: Optional[str] = None
    pending_refund_network: Optional[str] = None
    block_height: Optional[str] = None
    block_hash: Optional[str] = None


class VaultAccount(FireblocksModel):
    id: str
    name: str
    hidden_on_ui: bool = Field(default=False, alias="hiddenOnUI")
    customer_ref_id: Optional[str] = None
    auto_fuel: bool = False
    assets: List[VaultAsset] = Field(default_factory=list)


class Paging(FireblocksModel):
    before: Optional[str] = None
    after: Optional[str] = None


class VaultAccountsPagedResponse(FireblocksModel):
    accounts: List[VaultAccount] = Field(default_factory=list)
    paging: Optional[Paging] = None
    previous_url: Optional[str] = None
    next_url: Optional[str] = None


class QueryVaultAccounts(FireblocksModel):
    """Filters for ``GET /v1/vault/accounts_paged``, sent as query parameters."""
    name_prefix: Optional[str] = None
    name_suffix: Optional[str] = None
    min_amount_threshold: Optional[int] = None
    asset_id: Optional[str] = None
    order_by: Literal["ASC", "DESC"] = "DESC"
    limit: int = Field(default=200, ge=1, le=500)
    before: Optional[str] = None
    after: Optional[str] = None

    def to_params(self) -> Dict[str, str]:
        return {k: str(v) for k, v in self.to_wire().items()}


class CreateVaultAssetResponse(FireblocksModel):
    id: str
    address: Optional[str] = None
    legacy_address: Optional[str] = None
    tag: Optional[str] = None
    eos_account_name: Optional[str] = None


# ==================== Transactions ====================


class TransferPeerPath(FireblocksModel):
    peer_type: str = Field(default="VAULT_ACCOUNT", alias="type")
    id: str


class OneTimeAddress(FireblocksModel):
    address: str
    tag: Optional[str] = None


class DestinationTransferPeerPath(FireblocksModel):
    peer_type: str = Field(alias="type")
    id: Optional[str] = None
    one_time_address: Optional[OneTimeAddress] = None


class UnsignedMessage(FireblocksModel):
    content: str


class RawMessageData(FireblocksModel):
    messages: List[UnsignedMessage]


class ExtraParameters(FireblocksModel):
    """Exactly one of the two is set."""
    raw_message_data: Optional[RawMessageData] = None
    contract_call_data: Optional[str] = None


class CreateTransaction(FireblocksModel):
    """https://docs.fireblocks.com/api/#create-a-new-transaction"""
    asset_id: str
    source: TransferPeerPath
    destination: Optional[DestinationTransferPeerPath] = None
    amount: str = "0"
    treat_as_gross_amount: Optional[bool] = None
    fee_level: Optional[str] = None
    note: Optional[str] = None
    operation: TransactionOperation
    customer_ref_id: Optional[str] = None
    extra_parameters: Optional[ExtraParameters] = None


class CreateTransactionResponse(FireblocksModel):
    id: str
    status: TransactionStatus


class SignatureResponse(FireblocksModel):
    full_sig: str
    r: Optional[str] = None
    s: Optional[str] = None
    v: Optional[int] = None


class SignedMessage(FireblocksModel):
    content: str
    algorithm: Optional[str] = None
    derivation_path: List[int] = Field(default_factory=list)
    signature: SignatureResponse
    public_key: Optional[str] = None


class TransactionDetails(FireblocksModel):
    id: str
    asset_id: Optional[str] = None
    tx_hash: Optional[str] = None
    status: TransactionStatus
    sub_status: Optional[str] = None
    operation: Optional[TransactionOperation] = None
    note: Optional[str] = None
    signed_messages: List[SignedMessage] = Field(default_factory=list)


# ==================== Webhooks ====================


TRANSACTION_STATUS_UPDATED = "TRANSACTION_STATUS_UPDATED"


class WebhookNotification(FireblocksModel):
    """Body of a custody webhook callback."""
    type: str
    tenant_id: Optional[str] = None
    timestamp: Optional[int] = None
    data: Dict[str, Any] = Field(default_factory=dict)
