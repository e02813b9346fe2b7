"""Shared pieces of the per-chain signing pipelines."""

import time
from typing import Awaitable, Callable, Optional

import structlog

from hub_treasuries.core.metrics import MetricsCollector, get_metrics
from hub_treasuries.models import Blockchain, TxType
from hub_treasuries.schemas.fireblocks import CreateTransactionResponse, TransactionDetails
from hub_treasuries.services.custody import FireblocksClient
from hub_treasuries.services.emitter import Emitter

logger = structlog.get_logger()


def transaction_note(tx_type: TxType, user_id: str, project_id: str) -> str:
    return f"{tx_type.value} by {user_id} for project {project_id}"


class SigningPipeline:
    """Submit to custody, wait for a terminal status, time it.

    Subclasses set ``blockchain`` and implement ``process``. Instances hold
    only shared clients and may be used from many tasks at once.
    """

    blockchain: Blockchain = Blockchain.Unspecified

    def __init__(
        self,
        fireblocks: FireblocksClient,
        emitter: Emitter,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.fireblocks = fireblocks
        self.emitter = emitter
        self.metrics = metrics or get_metrics()

    async def submit_and_wait(
        self,
        create: Callable[[], Awaitable[CreateTransactionResponse]],
    ) -> TransactionDetails:
        """Create a custody transaction and wait until it is COMPLETED.

        Submit-to-terminal wall time is recorded under ``sign.time`` tagged
        with the pipeline's blockchain, failures included.

        Raises:
            CustodyTransactionFailed: terminal failure or deadline
            CustodyTransportError: HTTP failure while creating or polling
        """
        start_time = time.monotonic()
        created = await create()
        try:
            details = await self.fireblocks.wait_for_terminal(created.id)
        finally:
            duration_ms = (time.monotonic() - start_time) * 1000
            await self.metrics.record_sign_duration(self.blockchain.name, duration_ms)

        logger.debug(
            "Custody transaction completed",
            fireblocks_id=created.id,
            blockchain=self.blockchain.name,
            duration_ms=round(duration_ms, 2),
        )
        return details
