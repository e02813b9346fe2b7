"""Wallet model and the asset/blockchain vocabulary shared with the custody provider."""

import enum
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Index, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from hub_treasuries.core.database import Base


class AssetType(str, enum.Enum):
    """Wallet asset. Values are the custody provider's asset ids."""

    Solana = "SOL"
    SolanaTest = "SOL_TEST"
    Matic = "MATIC"
    MaticTest = "MATIC_POLYGON_MUMBAI"
    Eth = "ETH"
    EthTest = "ETH_TEST"

    @property
    def blockchain(self) -> "Blockchain":
        return ASSET_BLOCKCHAIN[self]


class Blockchain(str, enum.Enum):
    Unspecified = "UNSPECIFIED"
    Solana = "SOLANA"
    Polygon = "POLYGON"
    Ethereum = "ETHEREUM"

    def asset_types(self) -> List[AssetType]:
        """Both production and test assets of the chain.

        Raises KeyError for ``Unspecified``.
        """
        return BLOCKCHAIN_ASSET_TYPES[self]


ASSET_BLOCKCHAIN: Dict[AssetType, Blockchain] = {
    AssetType.Solana: Blockchain.Solana,
    AssetType.SolanaTest: Blockchain.Solana,
    AssetType.Matic: Blockchain.Polygon,
    AssetType.MaticTest: Blockchain.Polygon,
    AssetType.Eth: Blockchain.Ethereum,
    AssetType.EthTest: Blockchain.Ethereum,
}

BLOCKCHAIN_ASSET_TYPES: Dict[Blockchain, List[AssetType]] = {
    Blockchain.Solana: [AssetType.Solana, AssetType.SolanaTest],
    Blockchain.Polygon: [AssetType.Matic, AssetType.MaticTest],
    Blockchain.Ethereum: [AssetType.Eth, AssetType.EthTest],
}


def normalize_address(address: Optional[str]) -> Optional[str]:
    """EVM addresses are stored lowercased; anything else verbatim."""
    if address and address.startswith("0x"):
        return address.lower()
    return address


class Wallet(Base):
    """Per-asset address inside a treasury's vault."""

    __tablename__ = "wallets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    treasury_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("treasuries.id", ondelete="CASCADE"), nullable=False
    )
    # Null until the custody provider assigns one
    address: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    legacy_address: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    tag: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    asset_id: Mapped[AssetType] = mapped_column(
        Enum(
            AssetType,
            name="asset_type",
            native_enum=False,
            length=32,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
    )
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    deduction_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    removed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_wallets_address", "address"),
        Index("ix_wallets_treasury_asset", "treasury_id", "asset_id"),
    )

    def __repr__(self) -> str:
        return f"<Wallet {self.asset_id.value} {self.address}>"
