"""
Soft delete, restore and include-deleted lookups.

These functions work on any model using SoftDeleteMixin inside a caller's
SQLAlchemy session. They only flush; committing or rolling back belongs to
whoever owns the session (see :class:`.services.SoftDeleteService`).
"""

import logging
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain_events import DomainEvent, DomainEventAction, DomainEventLog
from .descriptors import RestoreOptions, UniqueConstraint
from .exceptions import (
    DomainConflictException,
    EntityNotFoundException,
    RestoreBlockedException,
)
from .mixins import utcnow

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION_SQLSTATE = "23505"


class SoftDeleteRepository:
    """
    Data access for one soft-deletable model within a session.

    The default read path only sees live rows; deleted rows are reachable
    only through ``include_deleted=True`` or :meth:`get_deleted`.
    """

    def __init__(self, session: Session, model: Type[Any]):
        self.session = session
        self.model = model

    def get(
        self, entity_id: str, include_deleted: bool = False, fresh: bool = False
    ) -> Optional[Any]:
        """
        Fetch a row by id.

        Args:
            entity_id: Row identifier
            include_deleted: Also match soft-deleted rows
            fresh: Overwrite identity-map state with the database row

        Returns:
            The entity or None
        """
        if include_deleted:
            stmt = self.model.select_all()
        else:
            stmt = self.model.select_active()
        stmt = stmt.where(self.model.id == entity_id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        return self.session.scalars(stmt).first()

    def get_deleted(self, entity_id: str) -> Optional[Any]:
        stmt = self.model.select_deleted().where(self.model.id == entity_id)
        return self.session.scalars(stmt).first()

    def save(self, entity: Any) -> Any:
        """Persist the full row and flush it."""
        self.session.add(entity)
        self.session.flush()
        return entity

    def find_live_match(
        self, values: Dict[str, Any], exclude_id: Optional[str] = None
    ) -> Optional[Any]:
        """Find a live row whose fields equal ``values``, other than ``exclude_id``."""
        stmt = self.model.select_active()
        if exclude_id is not None:
            stmt = stmt.where(self.model.id != exclude_id)
        for name, value in values.items():
            stmt = stmt.where(getattr(self.model, name) == value)
        return self.session.scalars(stmt.limit(1)).first()

    def count_live(self, foreign_key: str, value: Any) -> int:
        stmt = (
            select(func.count())
            .select_from(self.model)
            .where(
                getattr(self.model, foreign_key) == value,
                self.model.deleted_at.is_(None),
            )
        )
        return self.session.scalar(stmt) or 0

    def list_live(self, foreign_key: str, value: Any) -> List[Any]:
        stmt = self.model.select_active().where(
            getattr(self.model, foreign_key) == value
        )
        return list(self.session.scalars(stmt))


def _entity_label(model: Type[Any], entity_type: Optional[str]) -> str:
    return entity_type or model.__name__


def soft_delete(
    session: Session,
    model: Type[Any],
    entity_id: str,
    actor_id: str,
    entity_type: Optional[str] = None,
) -> None:
    """
    Mark a live row as deleted by ``actor_id``.

    Args:
        session: Unit of work
        model: Soft-deletable model
        entity_id: Row identifier
        actor_id: Actor performing the deletion
        entity_type: Label for error messages

    Raises:
        EntityNotFoundException: No live row with that id (including rows
            that are already deleted)
        ValueError: If actor_id is empty
    """
    label = _entity_label(model, entity_type)
    if not actor_id or not str(actor_id).strip():
        raise ValueError("Actor ID is required for deletion")

    repository = SoftDeleteRepository(session, model)
    entity = repository.get(entity_id)
    if entity is None:
        raise EntityNotFoundException(label, entity_id)

    entity.mark_deleted(actor_id)
    repository.save(entity)
    logger.info(f"Soft-deleted {label} {entity_id} by {actor_id}")


def find_with_deleted(
    session: Session,
    model: Type[Any],
    entity_id: str,
    entity_type: Optional[str] = None,
) -> Any:
    """
    Fetch a row whether live or deleted. Admin and restore paths only.

    Raises:
        EntityNotFoundException: No row with that id
    """
    entity = SoftDeleteRepository(session, model).get(entity_id, include_deleted=True)
    if entity is None:
        raise EntityNotFoundException(_entity_label(model, entity_type), entity_id)
    return entity


def describe_values(values: Dict[str, Any]) -> str:
    """Human-readable form of a unique key, bare for single-field keys."""
    if len(values) == 1:
        return str(next(iter(values.values())))
    return ", ".join(f"{name}={value}" for name, value in values.items())


def _constraint_values(
    entity: Any, constraint: UniqueConstraint
) -> Optional[Dict[str, Any]]:
    values = {name: getattr(entity, name) for name in constraint.fields}
    # NULLs never collide in a unique index
    if any(value is None for value in values.values()):
        return None
    return values


def _check_parents(session: Session, entity: Any, options: RestoreOptions) -> None:
    for parent in options.parents:
        parent_id = getattr(entity, parent.foreign_key)
        if parent_id is None:
            continue

        parent_entity = SoftDeleteRepository(session, parent.model).get(
            parent_id, include_deleted=True
        )
        if parent_entity is None or parent_entity.is_deleted:
            raise RestoreBlockedException(
                options.entity_type, entity.id, parent.label, str(parent_id)
            )


def _check_unique(
    repository: SoftDeleteRepository, entity: Any, options: RestoreOptions
) -> None:
    for constraint in options.unique_constraints:
        values = _constraint_values(entity, constraint)
        if values is None:
            continue
        if repository.find_live_match(values, exclude_id=entity.id) is not None:
            raise DomainConflictException(
                options.entity_type,
                entity.id,
                constraint.label,
                describe_values(values),
            )


def is_unique_violation(exc: IntegrityError) -> bool:
    """Whether an IntegrityError was raised by a unique index or constraint."""
    orig = exc.orig
    for attr in ("pgcode", "sqlstate"):
        if getattr(orig, attr, None) == UNIQUE_VIOLATION_SQLSTATE:
            return True
    message = str(orig).lower()
    return "unique" in message or "duplicate" in message


def _conflict_from_integrity_error(
    exc: IntegrityError,
    entity_id: str,
    options: RestoreOptions,
    candidates: Dict[str, Dict[str, Any]],
) -> DomainConflictException:
    message = str(exc.orig)
    lowered = message.lower()
    for constraint in options.unique_constraints:
        values = candidates.get(constraint.label)
        if values and all(name.lower() in lowered for name in constraint.fields):
            return DomainConflictException(
                options.entity_type,
                entity_id,
                constraint.label,
                describe_values(values),
            )
    return DomainConflictException(options.entity_type, entity_id, "unique", message)


def record_event(
    session: Session,
    event_log: DomainEventLog,
    entity_type: str,
    entity_id: str,
    action: DomainEventAction,
    actor_id: Optional[str],
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[DomainEvent]:
    """
    Append an event inside a SAVEPOINT of ``session`` without failing the caller.

    A storage failure rolls back to the savepoint, is logged at ERROR level and
    leaves the surrounding entity change intact.

    Returns:
        The stored event, or None when the append failed
    """
    action = DomainEventAction(action)
    try:
        with session.begin_nested():
            return event_log.append(
                entity_type, entity_id, action, actor_id, metadata, session=session
            )
    except (SQLAlchemyError, OSError) as e:
        logger.error(
            f"Failed to record {action.value} event for {entity_type} "
            f"{entity_id}: {e}"
        )
        return None


def restore(
    session: Session, model: Type[Any], entity_id: str, options: RestoreOptions
) -> Any:
    """
    Reinstate a soft-deleted row after checking parents and live uniqueness.

    Checks run in order and stop at the first failure: every declared parent
    must exist and be live, then no live row may hold the same values for any
    declared unique constraint. The deletion fields are then cleared in one
    UPDATE, a RESTORED event is appended when an event log is configured, and
    the row is re-read through the live path.

    Args:
        session: Unit of work
        model: Soft-deletable model
        entity_id: Row identifier
        options: Parents, unique constraints, actor and event log

    Returns:
        The restored entity as persisted

    Raises:
        EntityNotFoundException: No deleted row with that id
        RestoreBlockedException: A declared parent is absent or deleted
        DomainConflictException: A live row already holds a unique value
    """
    repository = SoftDeleteRepository(session, model)
    entity = repository.get_deleted(entity_id)
    if entity is None:
        raise EntityNotFoundException(options.entity_type, entity_id, deleted=True)

    _check_parents(session, entity, options)
    _check_unique(repository, entity, options)

    candidates = {}
    for constraint in options.unique_constraints:
        values = _constraint_values(entity, constraint)
        if values is not None:
            candidates[constraint.label] = values

    deleted_at, deleted_by = entity.deleted_at, entity.deleted_by
    entity.clear_deletion()
    try:
        session.flush()
    except IntegrityError as e:
        # The advisory check raced with a concurrent write; the index decides
        if not is_unique_violation(e):
            raise
        raise _conflict_from_integrity_error(e, entity_id, options, candidates) from e

    if options.event_log is not None:
        record_event(
            session,
            options.event_log,
            options.entity_type,
            entity_id,
            DomainEventAction.RESTORED,
            options.actor_id,
            {
                "restored_at": utcnow().isoformat(),
                "deleted_at": deleted_at.isoformat() if deleted_at else None,
                "deleted_by": deleted_by,
            },
        )

    logger.info(f"Restored {options.entity_type} {entity_id} by {options.actor_id}")

    restored = repository.get(entity_id, fresh=True)
    if restored is None:
        raise EntityNotFoundException(options.entity_type, entity_id)
    return restored
