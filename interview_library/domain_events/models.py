"""
Data models for the domain event log.

A domain event is an immutable record of a lifecycle action taken on an
entity. Events reference their entity by type and id only, so history
survives whatever later happens to the entity or to the actor.
"""

import hashlib
import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo; they were stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DomainEventAction(str, Enum):
    """Lifecycle actions recorded in the domain event log."""

    DELETED = "deleted"
    RESTORED = "restored"
    FORCE_DELETED = "force_deleted"
    RESTORE_BLOCKED = "restore_blocked"


class DomainEvent(BaseModel):
    """Immutable audit record of one lifecycle action on one entity."""

    model_config = ConfigDict(use_enum_values=True, frozen=True)

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique identifier for the event",
    )
    entity_type: str = Field(
        ..., description="Type of entity affected", min_length=1, max_length=50
    )
    entity_id: str = Field(
        ..., description="ID of entity affected", min_length=1, max_length=100
    )
    action: DomainEventAction = Field(..., description="Lifecycle action")
    actor_id: Optional[str] = Field(
        None, description="Actor who performed the action, None for system events"
    )
    metadata: Optional[Dict[str, Any]] = Field(
        None, description="Opaque structured payload"
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC timestamp of the action",
    )
    checksum: Optional[str] = Field(
        None, description="Checksum of the event for integrity verification"
    )

    @field_validator("created_at")
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return _as_utc(v)

    def calculate_checksum(self, algorithm: str = "sha256") -> str:
        """
        Calculate checksum for the event.

        Args:
            algorithm: Hash algorithm to use

        Returns:
            Hex digest of the checksum
        """
        data = {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor_id": self.actor_id,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }
        json_str = json.dumps(data, sort_keys=True, default=str)

        if algorithm == "sha256":
            return hashlib.sha256(json_str.encode()).hexdigest()
        elif algorithm == "sha512":
            return hashlib.sha512(json_str.encode()).hexdigest()
        else:
            raise ValueError(f"Unsupported algorithm: {algorithm}")

    def verify_checksum(
        self, expected_checksum: Optional[str] = None, algorithm: str = "sha256"
    ) -> bool:
        """Verify the event against ``expected_checksum`` or its own checksum."""
        expected = expected_checksum or self.checksum
        if not expected:
            return False
        return self.calculate_checksum(algorithm) == expected

    def sealed(self) -> "DomainEvent":
        """Return a copy of this event carrying its checksum."""
        return self.model_copy(update={"checksum": self.calculate_checksum()})

    def to_log_format(self) -> str:
        parts = [
            f"[{self.created_at.isoformat()}]",
            f"ACTION={self.action}",
            f"ENTITY={self.entity_type}:{self.entity_id}",
            f"ACTOR={self.actor_id or 'system'}",
        ]
        return " ".join(parts)


class DomainEventQuery(BaseModel):
    """Query parameters for searching the domain event log."""

    entity_types: Optional[List[str]] = Field(
        None, description="Filter by entity types"
    )
    entity_ids: Optional[List[str]] = Field(None, description="Filter by entity IDs")
    actions: Optional[List[DomainEventAction]] = Field(
        None, description="Filter by action types"
    )
    actor_ids: Optional[List[str]] = Field(None, description="Filter by actor IDs")

    start_date: Optional[datetime] = Field(None, description="Start of time range")
    end_date: Optional[datetime] = Field(None, description="End of time range")

    limit: int = Field(100, description="Maximum results to return", gt=0, le=1000)
    offset: int = Field(0, description="Result offset for pagination", ge=0)
    sort_desc: bool = Field(True, description="Newest first")

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v) if v is not None else v

    @field_validator("end_date")
    @classmethod
    def validate_date_range(
        cls, v: Optional[datetime], info: ValidationInfo
    ) -> Optional[datetime]:
        """Ensure end date is after start date."""
        if v and "start_date" in info.data and info.data["start_date"]:
            if v < info.data["start_date"]:
                raise ValueError("End date must be after start date")
        return v

    def matches(self, event: DomainEvent) -> bool:
        """Apply the filters to a single event (used by file storage)."""
        if self.entity_types and event.entity_type not in self.entity_types:
            return False
        if self.entity_ids and event.entity_id not in self.entity_ids:
            return False
        if self.actions and event.action not in self.actions:
            return False
        if self.actor_ids and event.actor_id not in self.actor_ids:
            return False
        if self.start_date and event.created_at < self.start_date:
            return False
        if self.end_date and event.created_at > self.end_date:
            return False
        return True
