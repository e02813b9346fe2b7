"""Treasury models: one row per custody vault, plus project/customer links."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from hub_treasuries.core.database import Base


class Treasury(Base):
    """Internal record of a custody vault."""

    __tablename__ = "treasuries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    vault_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    organization_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Treasury {self.id} vault={self.vault_id}>"


class ProjectTreasury(Base):
    """Project -> treasury link. Created on ProjectCreated."""

    __tablename__ = "project_treasuries"

    project_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    treasury_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("treasuries.id", ondelete="CASCADE"), primary_key=True, unique=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class CustomerTreasury(Base):
    """Customer -> treasury link, scoped to the customer's project."""

    __tablename__ = "customer_treasuries"

    customer_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    treasury_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("treasuries.id", ondelete="CASCADE"), primary_key=True, unique=True
    )
    project_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_customer_treasuries_project_customer", "project_id", "customer_id"),
    )
