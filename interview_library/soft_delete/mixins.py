"""
SQLAlchemy mixins for soft delete functionality.

Entities mixing in SoftDeleteMixin are never physically removed by the
application: a row is live while ``deleted_at`` is NULL and deleted otherwise.
Uniqueness that must only hold among live rows is declared through partial
indexes built with :func:`live_unique_index`.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence, Tuple

from sqlalchemy import CheckConstraint, DateTime, Index, Select, String, select, text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

LIVE_ROW_CLAUSE = "deleted_at IS NULL"


def new_entity_id() -> str:
    """Generate an opaque identifier for a new entity."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Timezone-aware current time used for deletion stamps."""
    return datetime.now(timezone.utc)


def live_unique_index(name: str, *columns: str) -> Index:
    """
    Build a unique index that only covers live rows.

    Deleted rows keep their values, so the same slug or email may exist any
    number of times among deleted rows but at most once among live ones.

    Args:
        name: Index name
        *columns: Column names covered by the index

    Returns:
        Partial unique index for PostgreSQL and SQLite
    """
    return Index(
        name,
        *columns,
        unique=True,
        postgresql_where=text(LIVE_ROW_CLAUSE),
        sqlite_where=text(LIVE_ROW_CLAUSE),
    )


def deletion_consistency_constraint(table_name: str) -> CheckConstraint:
    """Check constraint keeping deleted_at and deleted_by set or cleared together."""
    return CheckConstraint(
        "(deleted_at IS NULL AND deleted_by IS NULL) OR "
        "(deleted_at IS NOT NULL AND deleted_by IS NOT NULL)",
        name=f"ck_{table_name}_deletion_consistency",
    )


class SoftDeleteMixin:
    """
    Mixin to add soft delete functionality to SQLAlchemy models.

    Provides:
    - Identifier and soft delete fields (id, deleted_at, deleted_by)
    - Schema constraint keeping the deletion fields consistent
    - Partial unique indexes declared through ``__live_unique__``
    - Select helpers for live, deleted and all rows

    Usage:
        class Topic(Base, SoftDeleteMixin):
            __tablename__ = "topics"
            __live_unique__ = (("uq_topics_slug_live", ("slug",)),)

            slug = mapped_column(String(100), nullable=False)
    """

    # (index name, column names) pairs unique among live rows only
    __live_unique__ = ()  # type: Sequence[Tuple[str, Sequence[str]]]

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=new_entity_id
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    deleted_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    @declared_attr
    def __table_args__(cls: Any) -> Any:
        """Add the deletion consistency check and live-only unique indexes."""
        table_name = getattr(cls, "__tablename__", cls.__name__.lower())
        args: list = [deletion_consistency_constraint(table_name)]
        for index_name, columns in cls.__live_unique__:
            args.append(live_unique_index(index_name, *columns))
        return tuple(args)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def mark_deleted(self, actor_id: str, when: Optional[datetime] = None) -> None:
        """
        Stamp this row as deleted by ``actor_id``.

        Both fields are set on the same object so the flush emits a single
        UPDATE.

        Raises:
            ValueError: If actor_id is empty
        """
        if not actor_id or not str(actor_id).strip():
            raise ValueError("Actor ID is required for deletion")

        self.deleted_by = str(actor_id).strip()
        self.deleted_at = when or utcnow()

    def clear_deletion(self) -> None:
        """Reinstate this row as live."""
        self.deleted_by = None
        self.deleted_at = None

    @classmethod
    def select_active(cls) -> Select:
        """Select statement for live (non-deleted) rows only."""
        return select(cls).where(cls.deleted_at.is_(None))

    @classmethod
    def select_deleted(cls) -> Select:
        """Select statement for deleted rows only."""
        return select(cls).where(cls.deleted_at.is_not(None))

    @classmethod
    def select_all(cls) -> Select:
        """Select statement with no soft delete filter."""
        return select(cls)

    def to_dict(self, include_deleted_fields: bool = True) -> Dict[str, Any]:
        """
        Convert model to dictionary representation.

        Args:
            include_deleted_fields: Whether to include soft delete fields

        Returns:
            Dictionary representation of the model
        """
        result: Dict[str, Any] = {}

        table = getattr(self, "__table__", None)
        if table is None:
            return result

        for column in table.columns:
            value = getattr(self, column.key, None)
            if isinstance(value, datetime):
                value = value.isoformat()
            result[column.key] = value

        if not include_deleted_fields:
            result.pop("deleted_at", None)
            result.pop("deleted_by", None)

        return result
