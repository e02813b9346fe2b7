"""Common schemas used across the API."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ConsumerStatus(BaseModel):
    """Bus consumer status for health check."""
    running: bool
    started_at: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: datetime
    version: str
    database: str
    redis: str
    consumer: Optional[ConsumerStatus] = None


class WebhookResponse(BaseModel):
    """Custody webhook acknowledgement."""
    outcome: str
