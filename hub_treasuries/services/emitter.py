"""Outbound treasury events.

Publishing is at-least-once. Each event carries a deterministic ``event_id``
derived from its kind, key and correlation ids (custody transaction ids, or
the provisioned asset) so consumers can drop redeliveries.
"""

import uuid
from typing import Optional, Sequence

import structlog
from pydantic import BaseModel

from hub_treasuries.core.bus import Producer
from hub_treasuries.schemas.events import TreasuryEventKey, TreasuryEventKind, TreasuryEvents

logger = structlog.get_logger()

EVENT_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "hub-treasuries/events")


def event_id_for(
    kind: TreasuryEventKind, key: TreasuryEventKey, correlation_ids: Sequence[str] = ()
) -> str:
    parts = [kind.value, key.id, key.user_id, key.project_id or "", *correlation_ids]
    return str(uuid.uuid5(EVENT_ID_NAMESPACE, "|".join(parts)))


class Emitter:
    """Wraps payloads into ``TreasuryEvents`` and publishes them."""

    def __init__(self, producer: Optional[Producer] = None):
        self.producer = producer or Producer()

    async def emit(
        self,
        kind: TreasuryEventKind,
        payload: BaseModel,
        key: TreasuryEventKey,
        correlation_ids: Sequence[str] = (),
    ) -> TreasuryEvents:
        event = TreasuryEvents(kind=kind, payload=payload)
        event_id = event_id_for(kind, key, correlation_ids)

        await self.producer.send(event, key, event_id=event_id)

        logger.info(
            "Treasury event emitted",
            kind=kind.value,
            key_id=key.id,
            user_id=key.user_id,
            project_id=key.project_id,
            event_id=event_id,
        )
        return event
