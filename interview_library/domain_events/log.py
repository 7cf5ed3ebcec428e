"""
Domain event log.

Provides the DomainEventLog class, a pure recorder of lifecycle actions. It
never rejects an event on business grounds; the only failures it raises are
persistence failures from the storage backend.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from .models import DomainEvent, DomainEventAction, DomainEventQuery
from .storage import DomainEventStorage

logger = logging.getLogger(__name__)


class DomainEventLog:
    """Append-only log of lifecycle actions on domain entities.

    Example:
        >>> storage = get_event_storage("sql", engine=engine)
        >>> events = DomainEventLog(storage)
        >>> events.append("topic", topic_id, DomainEventAction.DELETED, actor_id)
        >>> events.find_by_entity("topic", topic_id)[0].action
        'deleted'
    """

    def __init__(self, storage: DomainEventStorage):
        self.storage = storage

    def append(
        self,
        entity_type: str,
        entity_id: str,
        action: Union[str, DomainEventAction],
        actor_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        session: Optional[Session] = None,
    ) -> DomainEvent:
        """
        Record a lifecycle action.

        Args:
            entity_type: Type of entity affected
            entity_id: ID of entity affected
            action: Lifecycle action
            actor_id: Actor performing the action, None for system events
            metadata: Opaque structured payload, stored as given
            session: Unit of work whose transaction the event joins

        Returns:
            The stored event, including its checksum
        """
        entry = DomainEvent(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=DomainEventAction(action),
            actor_id=actor_id,
            metadata=metadata,
        ).sealed()

        self.storage.store(entry, session=session)
        logger.debug(entry.to_log_format())
        return entry

    def find_by_entity(self, entity_type: str, entity_id: str) -> List[DomainEvent]:
        """Events recorded for one entity, newest first."""
        return self.storage.find_by_entity(entity_type, str(entity_id))

    def query(self, query: Optional[DomainEventQuery] = None) -> List[DomainEvent]:
        return self.storage.query(query or DomainEventQuery())

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Recompute and compare the checksum of every stored event.

        Returns:
            Dictionary with total_checked, valid, invalid and invalid_entries
        """
        results = self.storage.verify_integrity()
        if results["invalid"]:
            logger.warning(
                f"Domain event integrity check found {results['invalid']} "
                f"invalid event(s) out of {results['total_checked']}"
            )
        return results
