"""Core module for Xuanwu Factory."""
from .config import settings
from .database import Base, get_db, engine
from .runtime import RUNTIME_MODE, RuntimeMode, is_kubernetes
from .events import NotificationHub

__all__ = [
    "settings",
    "Base",
    "get_db",
    "engine",
    "RUNTIME_MODE",
    "RuntimeMode",
    "is_kubernetes",
    "NotificationHub",
]
