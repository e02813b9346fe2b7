"""Background bus consumer.

Builds the message processor from settings and runs the Redis Streams
consumer as an asyncio task for the lifetime of the application.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

import structlog

from hub_treasuries.core.bus import Consumer, Producer
from hub_treasuries.core.config import get_settings

logger = structlog.get_logger()

# Global consumer instance
_consumer: Optional[Consumer] = None
_consumer_task: Optional[asyncio.Task] = None
_started_at: Optional[datetime] = None


def build_processor():
    """Wire the dispatcher to the shared custody client and producer."""
    from hub_treasuries.services.custody import get_fireblocks_client
    from hub_treasuries.services.dispatcher import Processor
    from hub_treasuries.services.emitter import Emitter
    from hub_treasuries.services.provisioning import Provisioner
    from hub_treasuries.services.signing import PolygonSigner, SolanaSigner

    settings = get_settings()
    fireblocks = get_fireblocks_client()
    emitter = Emitter(Producer())

    return Processor(
        provisioner=Provisioner(fireblocks, emitter),
        solana=SolanaSigner(
            fireblocks, emitter, completion_path=settings.signing_completion_path
        ),
        polygon=PolygonSigner(fireblocks, emitter),
    )


async def _run(consumer: Consumer) -> None:
    try:
        await consumer.run()
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error("Consumer crashed", error=str(e), exc_info=True)
        raise


def start_worker() -> None:
    """Start consuming the inbound topics in the background."""
    global _consumer, _consumer_task, _started_at
    settings = get_settings()

    # Don't start twice
    if _consumer_task is not None and not _consumer_task.done():
        logger.warning("Consumer already running")
        return

    processor = build_processor()
    _consumer = Consumer(
        processor.process,
        group=settings.consumer_group,
        name=settings.consumer_name,
        max_in_flight=settings.consumer_max_in_flight,
        block_ms=settings.consumer_block_ms,
        batch_size=settings.consumer_batch_size,
        reclaim_idle_ms=settings.consumer_reclaim_idle_ms,
    )
    _consumer_task = asyncio.create_task(_run(_consumer))
    _started_at = datetime.now(timezone.utc)

    logger.info(
        "Consumer task started",
        group=settings.consumer_group,
        name=settings.consumer_name,
        completion_path=settings.signing_completion_path,
    )


async def stop_worker(timeout: float = 10.0) -> None:
    """Stop reading and wait for in-flight messages up to ``timeout`` seconds."""
    global _consumer, _consumer_task
    if _consumer is None or _consumer_task is None:
        return

    await _consumer.stop()
    try:
        await asyncio.wait_for(_consumer_task, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Consumer did not stop in time, cancelling")
        _consumer_task.cancel()
        await _consumer.cancel()
    except Exception:
        # already logged by _run
        pass

    _consumer = None
    _consumer_task = None
    logger.info("Consumer stopped")


def get_worker_status() -> dict:
    """Get current consumer status for health checks."""
    running = (
        _consumer is not None
        and _consumer.running
        and _consumer_task is not None
        and not _consumer_task.done()
    )
    return {
        "running": running,
        "started_at": _started_at.isoformat() if _started_at and running else None,
    }
