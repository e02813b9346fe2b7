# Core module
from hub_treasuries.core.config import get_settings, Settings
from hub_treasuries.core.database import get_db, get_db_context, Base
from hub_treasuries.core.bus import Consumer, Producer, get_redis

__all__ = [
    "get_settings",
    "Settings",
    "get_db",
    "get_db_context",
    "Base",
    "Consumer",
    "Producer",
    "get_redis",
]
