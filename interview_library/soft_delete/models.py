"""
Data models for soft delete operations.

These models describe requests coming from the admin surfaces, the outcome of
a service-level deletion and the deletion activity report built from the
domain event log.
"""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


def _strip_required(v: str, what: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError(f"{what} must not be blank")
    return v


class DeletionRequest(BaseModel):
    """Request to soft delete one entity, optionally cascading to its children."""

    entity_type: str = Field(
        ..., description="Type of entity to delete", min_length=1, max_length=50
    )
    entity_id: str = Field(
        ..., description="ID of entity to delete", min_length=1, max_length=100
    )
    actor_id: str = Field(
        ...,
        description="ID of actor performing the deletion",
        min_length=1,
        max_length=36,
    )
    force: bool = Field(False, description="Cascade soft delete to live child records")

    @field_validator("entity_type", "entity_id", "actor_id")
    @classmethod
    def validate_not_blank(cls, v: str, info: ValidationInfo) -> str:
        return _strip_required(v, info.field_name or "value")


class RestoreRequest(BaseModel):
    """Request to restore one soft-deleted entity."""

    entity_type: str = Field(
        ..., description="Type of entity to restore", min_length=1, max_length=50
    )
    entity_id: str = Field(
        ..., description="ID of entity to restore", min_length=1, max_length=100
    )
    actor_id: str = Field(
        ...,
        description="ID of actor performing the restoration",
        min_length=1,
        max_length=36,
    )

    @field_validator("entity_type", "entity_id", "actor_id")
    @classmethod
    def validate_not_blank(cls, v: str, info: ValidationInfo) -> str:
        return _strip_required(v, info.field_name or "value")


class DeletionResult(BaseModel):
    """Outcome of a service-level soft delete."""

    model_config = ConfigDict(frozen=True)

    entity_type: str = Field(..., description="Type of entity deleted")
    entity_id: str = Field(..., description="ID of entity deleted")
    actor_id: str = Field(..., description="Actor who performed the deletion")
    deleted_at: datetime = Field(..., description="Deletion timestamp")
    forced: bool = Field(
        False, description="Whether the delete was forced"
    )
    cascaded: Dict[str, int] = Field(
        default_factory=dict, description="Cascade-deleted children by label"
    )
    event_id: Optional[str] = Field(
        None, description="ID of the recorded domain event, if any"
    )

    @property
    def cascade_count(self) -> int:
        return sum(self.cascaded.values())


class DeletionReport(BaseModel):
    """Deletion and restoration activity over a period."""

    start_date: datetime = Field(..., description="Report period start")
    end_date: datetime = Field(..., description="Report period end")
    total_deletions: int = Field(0, description="Records deleted, cascades included")
    forced_deletions: int = Field(0, description="Forced deletions")
    by_type: Dict[str, int] = Field(
        default_factory=dict, description="Deletions by entity type"
    )
    by_user: Dict[str, int] = Field(
        default_factory=dict, description="Deletions by actor"
    )
    restorations: int = Field(0, description="Number of restorations in period")
    blocked_restores: int = Field(
        0, description="Restorations refused by a parent or conflict check"
    )

    def add_deletion(
        self, entity_type: str, actor_id: Optional[str], forced: bool = False
    ) -> None:
        """Add a deletion to the report statistics."""
        self.total_deletions += 1
        if forced:
            self.forced_deletions += 1

        if entity_type not in self.by_type:
            self.by_type[entity_type] = 0
        self.by_type[entity_type] += 1

        actor = actor_id or "system"
        if actor not in self.by_user:
            self.by_user[actor] = 0
        self.by_user[actor] += 1
