"""Transaction journal and pending webhook signatures."""

import enum
import uuid
from datetime import datetime
from typing import List

from sqlalchemy import JSON, DateTime, Enum, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from hub_treasuries.core.database import Base


class TxType(str, enum.Enum):
    """Kind of operation a custody transaction performed."""

    CreateDrop = "CreateDrop"
    MintEdition = "MintEdition"
    UpdateMetadata = "UpdateMetadata"
    TransferMint = "TransferMint"
    CreateCollection = "CreateCollection"
    MintToCollection = "MintToCollection"
    UpdateCollectionMint = "UpdateCollectionMint"
    SwitchCollection = "SwitchCollection"


def _tx_type_column() -> Enum:
    return Enum(
        TxType,
        name="tx_type",
        native_enum=False,
        length=32,
        values_callable=lambda e: [m.value for m in e],
    )


class Transaction(Base):
    """Journal entry for a custody transaction this service initiated.

    Insert-only; the primary key on ``fireblocks_id`` rejects a second write
    for the same custody transaction.
    """

    __tablename__ = "transactions"

    fireblocks_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    signature: Mapped[str] = mapped_column(String(128), nullable=False)
    tx_type: Mapped[TxType] = mapped_column(_tx_type_column(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Transaction {self.fireblocks_id} {self.tx_type.value}>"


class PendingSignature(Base):
    """A Solana signing request whose completion arrives by webhook."""

    __tablename__ = "pending_signatures"

    fireblocks_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    kind: Mapped[str] = mapped_column(String(64), nullable=False)
    tx_type: Mapped[TxType] = mapped_column(_tx_type_column(), nullable=False)

    # Inbound key
    key_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False)

    serialized_message: Mapped[str] = mapped_column(Text, nullable=False)  # hex
    signatures_or_signers_public_keys: Mapped[List[str]] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
