"""Create treasury, wallet and transaction tables.

Revision ID: a1f0c2d3e4b5
Revises:
Create Date: 2026-10-17 12:00:00.000000+00:00
"""

from alembic import op
import sqlalchemy as sa

revision = "a1f0c2d3e4b5"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "treasuries",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("vault_id", sa.String(64), nullable=False, unique=True),
        sa.Column("organization_id", sa.Uuid, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_treasuries_organization_id", "treasuries", ["organization_id"])

    op.create_table(
        "project_treasuries",
        sa.Column("project_id", sa.Uuid, primary_key=True),
        sa.Column(
            "treasury_id",
            sa.Uuid,
            sa.ForeignKey("treasuries.id", ondelete="CASCADE"),
            primary_key=True,
            unique=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "customer_treasuries",
        sa.Column("customer_id", sa.Uuid, primary_key=True),
        sa.Column(
            "treasury_id",
            sa.Uuid,
            sa.ForeignKey("treasuries.id", ondelete="CASCADE"),
            primary_key=True,
            unique=True,
        ),
        sa.Column("project_id", sa.Uuid, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        "ix_customer_treasuries_project_customer",
        "customer_treasuries",
        ["project_id", "customer_id"],
    )

    op.create_table(
        "wallets",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "treasury_id",
            sa.Uuid,
            sa.ForeignKey("treasuries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("address", sa.String(128), nullable=True),
        sa.Column("legacy_address", sa.String(128), nullable=True),
        sa.Column("tag", sa.String(128), nullable=True),
        sa.Column("asset_id", sa.String(32), nullable=False),
        sa.Column("created_by", sa.Uuid, nullable=False),
        sa.Column("deduction_id", sa.Uuid, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("removed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_wallets_address", "wallets", ["address"])
    op.create_index("ix_wallets_treasury_asset", "wallets", ["treasury_id", "asset_id"])

    op.create_table(
        "transactions",
        sa.Column("fireblocks_id", sa.Uuid, primary_key=True),
        sa.Column("signature", sa.String(128), nullable=False),
        sa.Column("tx_type", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "pending_signatures",
        sa.Column("fireblocks_id", sa.Uuid, primary_key=True),
        sa.Column("kind", sa.String(64), nullable=False),
        sa.Column("tx_type", sa.String(32), nullable=False),
        sa.Column("key_id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("project_id", sa.String(64), nullable=False),
        sa.Column("serialized_message", sa.Text, nullable=False),
        sa.Column("signatures_or_signers_public_keys", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("pending_signatures")
    op.drop_table("transactions")
    op.drop_index("ix_wallets_treasury_asset", table_name="wallets")
    op.drop_index("ix_wallets_address", table_name="wallets")
    op.drop_table("wallets")
    op.drop_index("ix_customer_treasuries_project_customer", table_name="customer_treasuries")
    op.drop_table("customer_treasuries")
    op.drop_table("project_treasuries")
    op.drop_index("ix_treasuries_organization_id", table_name="treasuries")
    op.drop_table("treasuries")
