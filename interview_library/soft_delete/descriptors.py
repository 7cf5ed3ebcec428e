"""
Declarations interpreted by the restore and delete algorithms.

Each entity type describes its integrity rules as data: which parents must be
live before it can be restored, which field sets must be unique among live
rows, and which children block a plain delete. One generic algorithm in
:mod:`.operations` interprets them for every entity type.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, List, Optional, Sequence, Tuple, Type

if TYPE_CHECKING:
    from ..domain_events import DomainEventLog


@dataclass(frozen=True)
class ParentRef:
    """Foreign key whose target must be live before the child is restored."""

    model: Type[Any]
    foreign_key: str
    label: str


@dataclass(frozen=True)
class UniqueConstraint:
    """Fields that must be unique among live rows only."""

    fields: Tuple[str, ...]
    label: str

    def __post_init__(self) -> None:
        if isinstance(self.fields, str):
            object.__setattr__(self, "fields", (self.fields,))
        else:
            object.__setattr__(self, "fields", tuple(self.fields))
        if not self.fields:
            raise ValueError(
                f"Unique constraint '{self.label}' needs at least one field"
            )


@dataclass(frozen=True)
class ChildRef:
    """Dependent rows that block deleting their parent while they are live."""

    model: Type[Any]
    foreign_key: str
    label: str


@dataclass
class RestoreOptions:
    """Everything the restore algorithm needs besides the row itself."""

    entity_type: str
    parents: Sequence[ParentRef] = field(default_factory=list)
    unique_constraints: Sequence[UniqueConstraint] = field(default_factory=list)
    actor_id: Optional[str] = None
    event_log: Optional["DomainEventLog"] = None


@dataclass(frozen=True)
class EntityPolicy:
    """Soft delete rules registered for one entity type."""

    entity_type: str
    model: Type[Any]
    parents: Tuple[ParentRef, ...] = ()
    unique_constraints: Tuple[UniqueConstraint, ...] = ()
    children: Tuple[ChildRef, ...] = ()

    def restore_options(
        self,
        actor_id: Optional[str] = None,
        event_log: Optional["DomainEventLog"] = None,
    ) -> RestoreOptions:
        return RestoreOptions(
            entity_type=self.entity_type,
            parents=list(self.parents),
            unique_constraints=list(self.unique_constraints),
            actor_id=actor_id,
            event_log=event_log,
        )

    def child_labels(self) -> List[str]:
        return [child.label for child in self.children]
