"""
Domain Event Log - append-only audit of entity lifecycle actions.

Records DELETED, RESTORED, FORCE_DELETED and RESTORE_BLOCKED events with
their actor and metadata, and serves them back per entity for history views.
"""

from .log import DomainEventLog
from .models import DomainEvent, DomainEventAction, DomainEventQuery
from .storage import (
    DomainEventRecord,
    DomainEventStorage,
    FileDomainEventStorage,
    SQLDomainEventStorage,
    get_event_storage,
)

__all__ = [
    # Log
    "DomainEventLog",
    # Models
    "DomainEvent",
    "DomainEventAction",
    "DomainEventQuery",
    # Storage
    "DomainEventRecord",
    "DomainEventStorage",
    "SQLDomainEventStorage",
    "FileDomainEventStorage",
    "get_event_storage",
]
