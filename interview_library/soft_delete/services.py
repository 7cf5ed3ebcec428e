"""
Service layer for soft delete operations.

Addresses entities by type label, owns transaction boundaries when the caller
does not supply a unit of work, blocks deletes of rows with live dependants
(or cascades them when forced) and records every lifecycle action in the
domain event log.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..config import LibraryConfig, get_config
from ..domain_events import (
    DomainEvent,
    DomainEventAction,
    DomainEventLog,
    DomainEventQuery,
)
from . import operations
from .descriptors import ChildRef, EntityPolicy
from .exceptions import (
    DeleteBlockedException,
    DomainConflictException,
    EntityNotFoundException,
    RestoreBlockedException,
    SoftDeleteError,
)
from .models import DeletionReport, DeletionResult
from .operations import SoftDeleteRepository, record_event
from .registry import SoftDeleteRegistry

logger = logging.getLogger(__name__)

REPORT_PAGE_SIZE = 1000


def identity(policy: EntityPolicy, entity: Any) -> Dict[str, Any]:
    """Live-unique field values that name the row in event metadata."""
    return {
        field: getattr(entity, field)
        for constraint in policy.unique_constraints
        for field in constraint.fields
    }


class SoftDeleteService:
    """
    Entity-type addressed facade over the soft delete and restore operations.

    Every method taking ``uow`` joins that session when given and only
    flushes; otherwise it opens its own transaction and commits on success.

    Example:
        >>> service = SoftDeleteService(session_factory, event_log=events)
        >>> service.soft_delete("topic", topic_id, admin_id, force=True)
        >>> service.restore("topic", topic_id, admin_id)
    """

    def __init__(
        self,
        session_factory: sessionmaker,  # type: ignore[type-arg]
        registry: Optional[SoftDeleteRegistry] = None,
        event_log: Optional[DomainEventLog] = None,
        config: Optional[LibraryConfig] = None,
    ):
        """
        Initialize the soft delete service.

        Args:
            session_factory: Session factory used when no unit of work is given
            registry: Entity policies, the question-bank defaults when omitted
            event_log: Domain event log; no events are recorded without one
            config: Configuration, the global one when omitted
        """
        if registry is None:
            from ..policies import build_default_registry

            registry = build_default_registry()

        self.session_factory = session_factory
        self.registry = registry
        self.event_log = event_log
        self.config = config or get_config()

    @property
    def audit_log(self) -> Optional[DomainEventLog]:
        """The event log when auditing is enabled."""
        if self.config.audit_enabled:
            return self.event_log
        return None

    @contextmanager
    def _unit_of_work(self, uow: Optional[Session]) -> Iterator[Session]:
        if uow is not None:
            yield uow
            return
        with self.session_factory.begin() as session:
            yield session

    def soft_delete(
        self,
        entity_type: str,
        entity_id: str,
        actor_id: str,
        force: bool = False,
        uow: Optional[Session] = None,
    ) -> DeletionResult:
        """
        Soft delete an entity, cascading to live children when forced.

        Args:
            entity_type: Registered entity type label
            entity_id: ID of entity to delete
            actor_id: Actor performing the deletion
            force: Cascade soft delete to live children
            uow: Unit of work to join

        Returns:
            Deletion outcome including cascade counts

        Raises:
            EntityNotFoundException: No live row with that id
            DeleteBlockedException: Live children exist and the delete is not
                forced, or cascading is disabled
            UnknownEntityTypeError: Entity type is not registered
            ValueError: If actor_id is empty
        """
        policy = self.registry.get(entity_type)
        if not actor_id or not str(actor_id).strip():
            raise ValueError("Actor ID is required for deletion")

        with self._unit_of_work(uow) as session:
            if SoftDeleteRepository(session, policy.model).get(entity_id) is None:
                raise EntityNotFoundException(entity_type, entity_id)

            live_children = self._count_live_children(session, policy, entity_id)
            child_count = sum(count for _, count in live_children)

            cascaded: Dict[str, int] = {}
            if child_count:
                if not force or not self.config.cascade_delete_enabled:
                    reason = "; ".join(
                        f"{count} active {child.label}(s) reference this {entity_type}"
                        for child, count in live_children
                    )
                    if force:
                        reason += " and cascade delete is disabled"
                    logger.warning(
                        f"Delete of {entity_type} {entity_id} blocked: {reason}"
                    )
                    raise DeleteBlockedException(
                        entity_type, entity_id, reason, child_count
                    )
                self._cascade(session, policy, entity_id, actor_id, cascaded)

            operations.soft_delete(
                session, policy.model, entity_id, actor_id, entity_type=entity_type
            )
            entity = operations.find_with_deleted(
                session, policy.model, entity_id, entity_type=entity_type
            )

            forced = bool(force)
            event = None
            if self.audit_log is not None:
                action = (
                    DomainEventAction.FORCE_DELETED
                    if forced
                    else DomainEventAction.DELETED
                )
                event = record_event(
                    session,
                    self.audit_log,
                    entity_type,
                    entity_id,
                    action,
                    actor_id,
                    {"cascaded": cascaded, **identity(policy, entity)}
                    if forced
                    else None,
                )

            return DeletionResult(
                entity_type=entity_type,
                entity_id=entity_id,
                actor_id=entity.deleted_by,
                deleted_at=entity.deleted_at,
                forced=forced,
                cascaded=cascaded,
                event_id=event.id if event is not None else None,
            )

    def _count_live_children(
        self, session: Session, policy: EntityPolicy, entity_id: str
    ) -> List[Tuple[ChildRef, int]]:
        counts = []
        for child in policy.children:
            count = SoftDeleteRepository(session, child.model).count_live(
                child.foreign_key, entity_id
            )
            if count:
                counts.append((child, count))
        return counts

    def _cascade(
        self,
        session: Session,
        policy: EntityPolicy,
        entity_id: str,
        actor_id: str,
        cascaded: Dict[str, int],
    ) -> None:
        """Soft delete live descendants depth-first, deepest rows first."""
        for child in policy.children:
            child_policy = self.registry.for_model(child.model)
            rows = SoftDeleteRepository(session, child.model).list_live(
                child.foreign_key, entity_id
            )
            for row in rows:
                self._cascade(session, child_policy, row.id, actor_id, cascaded)
                operations.soft_delete(
                    session,
                    child.model,
                    row.id,
                    actor_id,
                    entity_type=child_policy.entity_type,
                )
                cascaded[child.label] = cascaded.get(child.label, 0) + 1

                if self.audit_log is not None:
                    record_event(
                        session,
                        self.audit_log,
                        child_policy.entity_type,
                        row.id,
                        DomainEventAction.DELETED,
                        actor_id,
                        {
                            "cascaded_from": {
                                "entity_type": policy.entity_type,
                                "entity_id": entity_id,
                            }
                        },
                    )

    def restore(
        self,
        entity_type: str,
        entity_id: str,
        actor_id: str,
        uow: Optional[Session] = None,
    ) -> Any:
        """
        Restore a soft-deleted entity.

        Args:
            entity_type: Registered entity type label
            entity_id: ID of entity to restore
            actor_id: Actor performing the restoration
            uow: Unit of work to join

        Returns:
            The restored entity as persisted

        Raises:
            EntityNotFoundException: No deleted row with that id
            RestoreBlockedException: A declared parent is absent or deleted
            DomainConflictException: A live row already holds a unique value
            UnknownEntityTypeError: Entity type is not registered
            ValueError: If actor_id is empty
        """
        policy = self.registry.get(entity_type)
        if not actor_id or not str(actor_id).strip():
            raise ValueError("Actor ID is required for restore")

        options = policy.restore_options(actor_id=actor_id, event_log=self.audit_log)
        try:
            with self._unit_of_work(uow) as session:
                return operations.restore(session, policy.model, entity_id, options)
        except (RestoreBlockedException, DomainConflictException) as e:
            logger.warning(f"Restore of {entity_type} {entity_id} refused: {e}")
            self._record_blocked_restore(entity_type, entity_id, actor_id, e, uow)
            raise

    def _record_blocked_restore(
        self,
        entity_type: str,
        entity_id: str,
        actor_id: str,
        error: SoftDeleteError,
        uow: Optional[Session],
    ) -> None:
        event_log = self.audit_log
        if event_log is None or not self.config.record_blocked_restores:
            return

        if isinstance(error, RestoreBlockedException):
            kind = "parent_deleted"
        else:
            kind = "conflict"
        metadata = {"reason": kind, **error.to_dict()}

        if uow is not None:
            record_event(
                uow,
                event_log,
                entity_type,
                entity_id,
                DomainEventAction.RESTORE_BLOCKED,
                actor_id,
                metadata,
            )
            return

        # The failed transaction has rolled back; the event commits on its own
        try:
            event_log.append(
                entity_type,
                entity_id,
                DomainEventAction.RESTORE_BLOCKED,
                actor_id,
                metadata,
            )
        except (SQLAlchemyError, OSError) as e:
            logger.error(
                f"Failed to record restore_blocked event for {entity_type} "
                f"{entity_id}: {e}"
            )

    def find_with_deleted(
        self, entity_type: str, entity_id: str, uow: Optional[Session] = None
    ) -> Any:
        """Fetch an entity whether live or deleted. Admin use only."""
        policy = self.registry.get(entity_type)
        with self._unit_of_work(uow) as session:
            return operations.find_with_deleted(
                session, policy.model, entity_id, entity_type=entity_type
            )

    def list_deleted(
        self,
        entity_type: str,
        deleted_by: Optional[str] = None,
        deleted_after: Optional[datetime] = None,
        deleted_before: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Any]:
        """
        List soft-deleted entities of one type, newest deletion first.

        Args:
            entity_type: Registered entity type label
            deleted_by: Only rows deleted by this actor
            deleted_after: Only rows deleted at or after this time
            deleted_before: Only rows deleted at or before this time
            limit: Maximum records to return, capped by configuration
            offset: Offset for pagination

        Returns:
            List of deleted entities
        """
        model = self.registry.get(entity_type).model

        stmt = model.select_deleted()
        if deleted_by is not None:
            stmt = stmt.where(model.deleted_by == deleted_by)
        if deleted_after is not None:
            stmt = stmt.where(model.deleted_at >= deleted_after)
        if deleted_before is not None:
            stmt = stmt.where(model.deleted_at <= deleted_before)

        limit = max(1, min(limit, self.config.list_page_size_max))
        stmt = stmt.order_by(model.deleted_at.desc()).limit(limit).offset(offset)

        with self.session_factory() as session:
            return list(session.scalars(stmt))

    def history(self, entity_type: str, entity_id: str) -> List[DomainEvent]:
        """Domain events of one entity, newest first."""
        if self.event_log is None:
            return []
        return self.event_log.find_by_entity(entity_type, entity_id)

    def generate_deletion_report(
        self,
        start_date: datetime,
        end_date: datetime,
        entity_types: Optional[List[str]] = None,
    ) -> DeletionReport:
        """
        Summarise deletion and restoration activity in a period.

        Args:
            start_date: Report period start
            end_date: Report period end
            entity_types: Optional list of entity types to include

        Returns:
            Deletion report with statistics

        Raises:
            RuntimeError: If no domain event log is configured
        """
        if self.event_log is None:
            raise RuntimeError("Deletion reports require a domain event log")

        for entity_type in entity_types or []:
            self.registry.get(entity_type)

        report = DeletionReport(start_date=start_date, end_date=end_date)

        offset = 0
        while True:
            query = DomainEventQuery(
                entity_types=entity_types,
                start_date=start_date,
                end_date=end_date,
                limit=REPORT_PAGE_SIZE,
                offset=offset,
                sort_desc=False,
            )
            events = self.event_log.query(query)

            for event in events:
                if event.action == DomainEventAction.DELETED:
                    report.add_deletion(event.entity_type, event.actor_id)
                elif event.action == DomainEventAction.FORCE_DELETED:
                    report.add_deletion(event.entity_type, event.actor_id, forced=True)
                elif event.action == DomainEventAction.RESTORED:
                    report.restorations += 1
                elif event.action == DomainEventAction.RESTORE_BLOCKED:
                    report.blocked_restores += 1

            if len(events) < REPORT_PAGE_SIZE:
                break
            offset += REPORT_PAGE_SIZE

        return report
