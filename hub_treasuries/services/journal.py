"""Transaction journal: one insert per custody transaction, never updated."""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hub_treasuries.models import Transaction, TxType
from hub_treasuries.services.registry import parse_uuid

logger = structlog.get_logger()


async def record_transaction(
    session: AsyncSession, fireblocks_id: str, signature: str, tx_type: TxType
) -> Transaction:
    """Insert the journal row. A duplicate ``fireblocks_id`` fails on flush."""
    row = Transaction(
        fireblocks_id=parse_uuid(fireblocks_id, "fireblocks_id"),
        signature=signature,
        tx_type=tx_type,
    )
    session.add(row)
    await session.flush()
    logger.info(
        "Transaction journaled",
        fireblocks_id=fireblocks_id,
        signature=signature,
        tx_type=tx_type.value,
    )
    return row


async def get_transaction(session: AsyncSession, fireblocks_id: str):
    stmt = select(Transaction).where(
        Transaction.fireblocks_id == parse_uuid(fireblocks_id, "fireblocks_id")
    )
    return (await session.execute(stmt)).scalar_one_or_none()
