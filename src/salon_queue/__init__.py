"""Salon queue: live virtual queues for salons."""

# Public API - Pydantic models
from .schemas import QueueEntryRecord, QueueEntryUpdate, QueueEvent, QueueStatus

# Public API - Service implementations
from .broadcast import QueueBroadcastChannel, Subscription
from .catalog import Catalog, CatalogRepository
from .config import Config
from .database import Database
from .errors import (
    InvalidServiceSelection,
    InvalidTransition,
    NotFound,
    QueueError,
    StorageUnavailable,
    Unauthorized,
)
from .lifecycle import QueueLifecycleManager
from .queue_store import QueueStore

__all__ = [
    # Configuration
    "Config",
    "Database",
    # Services
    "Catalog",
    "CatalogRepository",
    "QueueBroadcastChannel",
    "QueueLifecycleManager",
    "QueueStore",
    "Subscription",
    # Errors
    "InvalidServiceSelection",
    "InvalidTransition",
    "NotFound",
    "QueueError",
    "StorageUnavailable",
    "Unauthorized",
    # Pydantic Models
    "QueueEntryRecord",
    "QueueEntryUpdate",
    "QueueEvent",
    "QueueStatus",
]
