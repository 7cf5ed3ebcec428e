"""
Soft Delete Module - recoverable deletion with integrity-checked restore.

Provides the mixin, the soft delete / restore operations with their parent
liveness and live-uniqueness checks, declarative per-entity policies and the
service layer that records every lifecycle action.
"""

from .descriptors import (
    ChildRef,
    EntityPolicy,
    ParentRef,
    RestoreOptions,
    UniqueConstraint,
)
from .exceptions import (
    DeleteBlockedException,
    DomainConflictException,
    EntityNotFoundException,
    RestoreBlockedException,
    SoftDeleteError,
    UnknownEntityTypeError,
)
from .mixins import SoftDeleteMixin, live_unique_index
from .models import DeletionReport, DeletionRequest, DeletionResult, RestoreRequest
from .operations import SoftDeleteRepository, find_with_deleted, restore, soft_delete
from .registry import SoftDeleteRegistry
from .services import SoftDeleteService

__all__ = [
    # Mixins
    "SoftDeleteMixin",
    "live_unique_index",
    # Operations
    "soft_delete",
    "restore",
    "find_with_deleted",
    "SoftDeleteRepository",
    # Policies
    "ParentRef",
    "ChildRef",
    "UniqueConstraint",
    "RestoreOptions",
    "EntityPolicy",
    "SoftDeleteRegistry",
    # Services
    "SoftDeleteService",
    # Models
    "DeletionRequest",
    "RestoreRequest",
    "DeletionResult",
    "DeletionReport",
    # Exceptions
    "SoftDeleteError",
    "UnknownEntityTypeError",
    "EntityNotFoundException",
    "RestoreBlockedException",
    "DomainConflictException",
    "DeleteBlockedException",
]
