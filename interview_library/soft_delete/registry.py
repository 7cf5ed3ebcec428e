"""Registry mapping entity-type labels to their soft delete policies."""

from typing import Any, Dict, Iterator, List, Optional, Sequence, Type

from .descriptors import ChildRef, EntityPolicy, ParentRef, UniqueConstraint
from .exceptions import UnknownEntityTypeError
from .mixins import SoftDeleteMixin


class SoftDeleteRegistry:
    """Lookup of :class:`EntityPolicy` by entity type label."""

    def __init__(self) -> None:
        self._policies: Dict[str, EntityPolicy] = {}

    def register(
        self,
        entity_type: str,
        model: Type[Any],
        parents: Optional[Sequence[ParentRef]] = None,
        unique_constraints: Optional[Sequence[UniqueConstraint]] = None,
        children: Optional[Sequence[ChildRef]] = None,
    ) -> EntityPolicy:
        """
        Register the soft delete rules for an entity type.

        Args:
            entity_type: Label used in errors, events and lookups
            model: SQLAlchemy model using SoftDeleteMixin
            parents: Parents that must be live for a restore
            unique_constraints: Field sets unique among live rows
            children: Dependants that block a plain delete

        Returns:
            The registered policy

        Raises:
            TypeError: If model does not use SoftDeleteMixin
            ValueError: If entity_type is already registered
        """
        if not (isinstance(model, type) and issubclass(model, SoftDeleteMixin)):
            raise TypeError(f"{model!r} does not use SoftDeleteMixin")
        if entity_type in self._policies:
            raise ValueError(f"Entity type '{entity_type}' is already registered")

        policy = EntityPolicy(
            entity_type=entity_type,
            model=model,
            parents=tuple(parents or ()),
            unique_constraints=tuple(unique_constraints or ()),
            children=tuple(children or ()),
        )
        self._policies[entity_type] = policy
        return policy

    def get(self, entity_type: str) -> EntityPolicy:
        try:
            return self._policies[entity_type]
        except KeyError:
            raise UnknownEntityTypeError(entity_type) from None

    def for_model(self, model: Type[Any]) -> EntityPolicy:
        """Find the policy registered for a model class."""
        for policy in self._policies.values():
            if policy.model is model:
                return policy
        raise UnknownEntityTypeError(model.__name__)

    def entity_types(self) -> List[str]:
        return sorted(self._policies)

    def __contains__(self, entity_type: object) -> bool:
        return entity_type in self._policies

    def __iter__(self) -> Iterator[EntityPolicy]:
        return iter(self._policies.values())

    def __len__(self) -> int:
        return len(self._policies)
