"""Event bus over Redis Streams.

The Redis client is created lazily to avoid import-time side effects.
Each topic is a stream; entries carry a JSON ``key`` and a JSON ``payload``.
Consumers read through a consumer group and acknowledge an entry only after
its handler returned, so failed entries stay pending and are reclaimed.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Set

import redis.asyncio as redis
import structlog
from pydantic import BaseModel
from redis.exceptions import ResponseError

logger = structlog.get_logger()

# Inbound topics
CUSTOMERS_TOPIC = "hub-customers"
ORGANIZATIONS_TOPIC = "hub-orgs"
SOLANA_NFTS_TOPIC = "hub-nfts-solana"
POLYGON_NFTS_TOPIC = "hub-nfts-polygon"

# Outbound topic
TREASURIES_TOPIC = "hub-treasuries"

REQUESTED_TOPICS = (
    CUSTOMERS_TOPIC,
    ORGANIZATIONS_TOPIC,
    SOLANA_NFTS_TOPIC,
    POLYGON_NFTS_TOPIC,
)

# Redis client - initialized lazily
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get Redis client instance.

    Client is created on first access, not at import time.
    """
    global _redis_client
    if _redis_client is None:
        from hub_treasuries.core.config import get_settings
        settings = get_settings()
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_client


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


@dataclass
class BusMessage:
    """One stream entry as delivered to a handler."""
    topic: str
    message_id: str
    key: str
    payload: str


class Producer:
    """Publishes events to a single stream."""

    def __init__(self, topic: str = TREASURIES_TOPIC, client: Optional[redis.Redis] = None):
        self.topic = topic
        self._client = client

    async def _redis(self) -> redis.Redis:
        if self._client is not None:
            return self._client
        return await get_redis()

    async def send(
        self,
        event: BaseModel,
        key: BaseModel,
        event_id: Optional[str] = None,
    ) -> str:
        """XADD the event and return the stream entry id."""
        fields = {
            "key": key.model_dump_json(),
            "payload": event.model_dump_json(exclude_none=True),
        }
        if event_id:
            fields["event_id"] = event_id

        client = await self._redis()
        entry_id = await client.xadd(self.topic, fields)

        logger.debug("Event published", topic=self.topic, entry_id=entry_id, event_id=event_id)
        return entry_id


Handler = Callable[[BusMessage], Awaitable[None]]


class Consumer:
    """Consumer-group reader that runs one task per message.

    A message is acknowledged when its handler returns. A handler that raises
    leaves the entry pending; the reclaim pass hands it out again once it has
    been idle for ``reclaim_idle_ms``.
    """

    def __init__(
        self,
        handler: Handler,
        topics=REQUESTED_TOPICS,
        group: str = "hub-treasuries",
        name: str = "hub-treasuries-1",
        max_in_flight: int = 32,
        block_ms: int = 5000,
        batch_size: int = 16,
        reclaim_idle_ms: int = 900000,
        client: Optional[redis.Redis] = None,
    ):
        self.handler = handler
        self.topics = list(topics)
        self.group = group
        self.name = name
        self.block_ms = block_ms
        self.batch_size = batch_size
        self.reclaim_idle_ms = reclaim_idle_ms
        self._client = client
        self._semaphore = asyncio.Semaphore(max_in_flight)
        self._tasks: Set[asyncio.Task] = set()
        self._in_flight: Set[str] = set()
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return not self._stopping.is_set()

    async def _redis(self) -> redis.Redis:
        if self._client is not None:
            return self._client
        return await get_redis()

    async def ensure_groups(self) -> None:
        client = await self._redis()
        for topic in self.topics:
            try:
                await client.xgroup_create(topic, self.group, id="0", mkstream=True)
                logger.info("Consumer group created", topic=topic, group=self.group)
            except ResponseError as e:
                if "BUSYGROUP" not in str(e):
                    raise

    async def run(self) -> None:
        """Read until ``stop()`` is called."""
        await self.ensure_groups()
        logger.info("Consumer started", topics=self.topics, group=self.group, name=self.name)

        while not self._stopping.is_set():
            await self._reclaim()
            client = await self._redis()
            response = await client.xreadgroup(
                self.group,
                self.name,
                streams={topic: ">" for topic in self.topics},
                count=self.batch_size,
                block=self.block_ms,
            )
            for topic, entries in response or []:
                for message_id, fields in entries:
                    await self._dispatch(topic, message_id, fields)

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Consumer stopped", name=self.name)

    async def stop(self) -> None:
        self._stopping.set()

    async def cancel(self) -> None:
        """Cancel in-flight handlers and wait for them to unwind.

        Their messages stay unacknowledged and are reclaimed later.
        """
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.warning("In-flight messages cancelled", count=len(tasks), name=self.name)

    async def _reclaim(self) -> None:
        client = await self._redis()
        for topic in self.topics:
            result = await client.xautoclaim(
                topic,
                self.group,
                self.name,
                min_idle_time=self.reclaim_idle_ms,
                start_id="0-0",
                count=self.batch_size,
            )
            for message_id, fields in result[1]:
                if message_id in self._in_flight:
                    continue
                if fields is None:
                    # entry trimmed from the stream while pending
                    await client.xack(topic, self.group, message_id)
                    continue
                logger.info("Reclaimed pending message", topic=topic, message_id=message_id)
                await self._dispatch(topic, message_id, fields)

    async def _dispatch(self, topic: str, message_id: str, fields: Dict[str, str]) -> None:
        await self._semaphore.acquire()
        self._in_flight.add(message_id)
        message = BusMessage(
            topic=topic,
            message_id=message_id,
            key=fields.get("key", "{}"),
            payload=fields.get("payload", "{}"),
        )
        task = asyncio.create_task(self._handle(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle(self, message: BusMessage) -> None:
        try:
            await self.handler(message)
        except Exception as e:
            logger.error(
                "Message handling failed, leaving unacknowledged",
                topic=message.topic,
                message_id=message.message_id,
                error=str(e),
                exc_info=True,
            )
            return
        finally:
            self._in_flight.discard(message.message_id)
            self._semaphore.release()

        client = await self._redis()
        await client.xack(message.topic, self.group, message.message_id)
