"""Exceptions for soft delete and restore operations."""

from typing import Any, Dict, Optional


class SoftDeleteError(Exception):
    """Base exception for soft delete operations."""

    def __init__(self, message: str, entity_id: Optional[str] = None):
        self.entity_id = entity_id
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Structured payload for API and CLI error responses."""
        return {"error": self.__class__.__name__, "message": str(self)}


class UnknownEntityTypeError(SoftDeleteError):
    """Raised when no soft delete policy is registered for an entity type."""

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(f"No soft delete policy registered for '{entity_type}'")


class EntityNotFoundException(SoftDeleteError):
    """Raised when the target row is not addressable.

    For soft delete the row must be live; for restore it must be deleted.
    """

    def __init__(self, entity_type: str, entity_id: str, deleted: bool = False):
        self.entity_type = entity_type
        self.deleted = deleted
        if deleted:
            message = f"Deleted {entity_type} with ID {entity_id} not found"
        else:
            message = f"{entity_type} with ID {entity_id} not found"
        super().__init__(message, entity_id=entity_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "Not Found",
            "message": str(self),
            "entityType": self.entity_type,
            "entityId": self.entity_id,
        }


class RestoreBlockedException(SoftDeleteError):
    """Raised when a declared parent of the entity is absent or soft-deleted."""

    def __init__(
        self, entity_type: str, entity_id: str, parent_type: str, parent_id: str
    ):
        self.entity_type = entity_type
        self.parent_type = parent_type
        self.parent_id = parent_id
        super().__init__(
            f"Cannot restore {entity_type} ({entity_id}): parent {parent_type} "
            f"({parent_id}) is missing or soft-deleted. Restore the parent first.",
            entity_id=entity_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "Restore Blocked",
            "message": str(self),
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "parentType": self.parent_type,
            "parentId": self.parent_id,
        }


class DomainConflictException(SoftDeleteError):
    """Raised when restoring would collide with a live row on a unique key."""

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        conflict_field: str,
        conflict_value: str,
    ):
        self.entity_type = entity_type
        self.conflict_field = conflict_field
        self.conflict_value = conflict_value
        super().__init__(
            f"Cannot restore {entity_type} ({entity_id}): an active {entity_type} "
            f'already exists with {conflict_field} = "{conflict_value}"',
            entity_id=entity_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "Domain Conflict",
            "message": str(self),
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "conflictField": self.conflict_field,
            "conflictValue": self.conflict_value,
        }


class DeleteBlockedException(SoftDeleteError):
    """Raised when live child rows still reference the entity being deleted."""

    def __init__(
        self, entity_type: str, entity_id: str, reason: str, child_count: int
    ):
        self.entity_type = entity_type
        self.reason = reason
        self.child_count = child_count
        super().__init__(
            f"Cannot delete {entity_type} ({entity_id}): {reason}. Use force=true "
            f"to cascade soft-delete {child_count} child record(s).",
            entity_id=entity_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "Delete Blocked",
            "message": str(self),
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "childCount": self.child_count,
        }
