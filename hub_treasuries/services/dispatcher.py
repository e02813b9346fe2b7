"""Routes inbound bus messages to provisioning and signing.

Acknowledgement policy, as seen by the consumer:

- handler returns: the message is acknowledged
- permanent ``ProcessorError``: logged here, handler returns, acknowledged
- anything else: re-raised, the message stays pending for redelivery
"""

import json
from typing import Any, Dict, Tuple, Type

import structlog
from pydantic import BaseModel, ValidationError

from hub_treasuries.core.bus import (
    CUSTOMERS_TOPIC,
    ORGANIZATIONS_TOPIC,
    POLYGON_NFTS_TOPIC,
    SOLANA_NFTS_TOPIC,
    BusMessage,
)
from hub_treasuries.schemas.events import (
    CustomerEventKey,
    CustomerEventKind,
    CustomerEvents,
    OrganizationEventKey,
    OrganizationEventKind,
    OrganizationEvents,
    PolygonNftEventKey,
    PolygonNftEvents,
    SolanaNftEventKey,
    SolanaNftEvents,
    TaggedEvent,
)
from hub_treasuries.services.errors import InvalidPayload, ProcessorError
from hub_treasuries.services.provisioning import Provisioner
from hub_treasuries.services.signing.polygon import PolygonSigner
from hub_treasuries.services.signing.solana import SolanaSigner

logger = structlog.get_logger()

# topic -> (key model, event model)
TOPIC_SCHEMAS: Dict[str, Tuple[Type[BaseModel], Type[TaggedEvent]]] = {
    CUSTOMERS_TOPIC: (CustomerEventKey, CustomerEvents),
    ORGANIZATIONS_TOPIC: (OrganizationEventKey, OrganizationEvents),
    SOLANA_NFTS_TOPIC: (SolanaNftEventKey, SolanaNftEvents),
    POLYGON_NFTS_TOPIC: (PolygonNftEventKey, PolygonNftEvents),
}


def parse_message(message: BusMessage) -> Tuple[BaseModel, TaggedEvent]:
    """Validate key and payload of ``message`` against its topic's schemas.

    Raises:
        InvalidPayload: unknown topic, malformed JSON or schema mismatch
    """
    try:
        key_model, event_model = TOPIC_SCHEMAS[message.topic]
    except KeyError as e:
        raise InvalidPayload(f"Unexpected topic {message.topic!r}") from e

    try:
        key = key_model.model_validate(json.loads(message.key))
        event = event_model.model_validate(json.loads(message.payload))
    except (json.JSONDecodeError, ValidationError) as e:
        raise InvalidPayload(f"Invalid message on {message.topic}: {e}") from e

    return key, event


class Processor:
    """Bus message handler; pass ``process`` to the ``Consumer``."""

    def __init__(
        self,
        provisioner: Provisioner,
        solana: SolanaSigner,
        polygon: PolygonSigner,
    ):
        self.provisioner = provisioner
        self.solana = solana
        self.polygon = polygon

    async def process(self, message: BusMessage) -> None:
        structlog.contextvars.bind_contextvars(
            topic=message.topic, message_id=message.message_id
        )
        try:
            key, event = parse_message(message)

            if event.kind is None:
                logger.debug("Ignoring unrecognized event kind")
                return

            structlog.contextvars.bind_contextvars(kind=event.kind.value)
            await self.route(message.topic, key, event)
        except ProcessorError as e:
            if not e.permanent:
                raise
            logger.error(
                "Dropping message",
                error=str(e),
                error_type=type(e).__name__,
            )
        finally:
            structlog.contextvars.unbind_contextvars("topic", "message_id", "kind")

    async def route(self, topic: str, key: Any, event: TaggedEvent) -> None:
        if topic == CUSTOMERS_TOPIC:
            if event.kind == CustomerEventKind.Created:
                await self.provisioner.create_customer_treasury(key, event.payload)
        elif topic == ORGANIZATIONS_TOPIC:
            if event.kind == OrganizationEventKind.ProjectCreated:
                await self.provisioner.create_project_treasury(key, event.payload)
        elif topic == SOLANA_NFTS_TOPIC:
            await self.solana.process(event.kind, key, event.payload)
        elif topic == POLYGON_NFTS_TOPIC:
            await self.polygon.process(event.kind, key, event.payload)
