"""
Storage backends for the domain event log.

Provides an abstract interface and two append-only implementations: a SQL
table that can join the caller's transaction, and a JSON-lines file.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    asc,
    create_engine,
    desc,
    event,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .models import DomainEvent, DomainEventQuery

logger = logging.getLogger(__name__)

Base = declarative_base()


class DomainEventRecord(Base):  # type: ignore[valid-type,misc]
    """SQLAlchemy model for domain events."""

    __tablename__ = "domain_events"

    # Insertion order, used to break timestamp ties
    sequence = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), nullable=False, unique=True)

    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(100), nullable=False)
    action = Column(String(32), nullable=False, index=True)
    actor_id = Column(String(36), nullable=True)
    event_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    checksum = Column(String(128), nullable=False)

    __table_args__ = (
        Index("idx_domain_events_entity", entity_type, entity_id),
        Index("idx_domain_events_actor", actor_id),
        Index("idx_domain_events_created_at", created_at),
    )


@event.listens_for(DomainEventRecord, "before_update")
def prevent_event_update(mapper: Any, connection: Any, target: Any) -> None:
    """Domain events are append-only."""
    raise RuntimeError(
        f"Update attempted on domain event {target.id}. Domain events are immutable."
    )


@event.listens_for(DomainEventRecord, "before_delete")
def prevent_event_delete(mapper: Any, connection: Any, target: Any) -> None:
    """Domain events are append-only."""
    raise RuntimeError(
        f"Delete attempted on domain event {target.id}. Domain events are immutable."
    )


def integrity_summary(events: Iterator[DomainEvent]) -> Dict[str, Any]:
    """Recompute checksums and summarise the result."""
    results: Dict[str, Any] = {
        "total_checked": 0,
        "valid": 0,
        "invalid": 0,
        "invalid_entries": [],
    }
    for entry in events:
        results["total_checked"] += 1
        if entry.verify_checksum():
            results["valid"] += 1
        else:
            results["invalid"] += 1
            results["invalid_entries"].append(
                {
                    "id": entry.id,
                    "created_at": entry.created_at.isoformat(),
                    "stored_checksum": entry.checksum,
                    "calculated_checksum": entry.calculate_checksum(),
                }
            )
    return results


class DomainEventStorage(ABC):
    """Abstract base class for domain event storage backends."""

    @abstractmethod
    def initialize(self) -> None:
        """Initialize the storage backend."""

    @abstractmethod
    def store(self, entry: DomainEvent, session: Optional[Session] = None) -> None:
        """
        Append an event.

        Args:
            entry: Sealed domain event
            session: Unit of work to join, where the backend supports it and
                the session is bound to the backend's database
        """

    @abstractmethod
    def find_by_entity(self, entity_type: str, entity_id: str) -> List[DomainEvent]:
        """Events for one entity, newest first."""

    @abstractmethod
    def query(self, query: DomainEventQuery) -> List[DomainEvent]:
        """Events matching the query parameters."""

    @abstractmethod
    def iter_all(self) -> Iterator[DomainEvent]:
        """Every stored event, oldest first."""

    def verify_integrity(self) -> Dict[str, Any]:
        """Verify checksums of all stored events."""
        return integrity_summary(self.iter_all())


class SQLDomainEventStorage(DomainEventStorage):
    """SQL database storage backend for domain events."""

    def __init__(
        self,
        connection_string: Optional[str] = None,
        engine: Optional[Engine] = None,
    ):
        """
        Initialize SQL event storage.

        Args:
            connection_string: Database connection string
            engine: Existing engine to share with the entity tables
        """
        if connection_string is None and engine is None:
            raise ValueError("connection_string or engine is required")
        self.connection_string = connection_string
        self.engine: Optional[Engine] = engine
        self.SessionLocal: Optional[sessionmaker] = None  # type: ignore[type-arg]

    def initialize(self) -> None:
        """Initialize the database."""
        if self.engine is None:
            assert self.connection_string is not None  # nosec B101
            if self.connection_string.startswith("sqlite"):
                # SQLite doesn't support pool_size and max_overflow
                self.engine = create_engine(self.connection_string, pool_pre_ping=True)
            else:
                self.engine = create_engine(
                    self.connection_string,
                    pool_pre_ping=True,
                    pool_size=10,
                    max_overflow=20,
                )

        Base.metadata.create_all(bind=self.engine)

        self.SessionLocal = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )

    def _sessions(self) -> sessionmaker:  # type: ignore[type-arg]
        if self.SessionLocal is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self.SessionLocal

    def _event_to_db(self, entry: DomainEvent) -> DomainEventRecord:
        return DomainEventRecord(
            id=entry.id,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            action=entry.action,
            actor_id=entry.actor_id,
            event_metadata=entry.metadata,
            created_at=entry.created_at,
            checksum=entry.checksum or entry.calculate_checksum(),
        )

    def _db_to_event(self, record: DomainEventRecord) -> DomainEvent:
        return DomainEvent(
            id=record.id,
            entity_type=record.entity_type,
            entity_id=record.entity_id,
            action=record.action,
            actor_id=record.actor_id,
            metadata=record.event_metadata,
            created_at=record.created_at,
            checksum=record.checksum,
        )

    def joins(self, session: Session) -> bool:
        """Whether ``session`` writes to the database holding the event table."""
        bind = session.get_bind()
        return getattr(bind, "engine", bind) is self.engine

    def store(self, entry: DomainEvent, session: Optional[Session] = None) -> None:
        record = self._event_to_db(entry)

        if session is not None and self.joins(session):
            session.add(record)
            session.flush()
            return

        # A session on another database cannot carry the event; commit it here
        with self._sessions().begin() as own_session:
            own_session.add(record)

    def find_by_entity(self, entity_type: str, entity_id: str) -> List[DomainEvent]:
        stmt = (
            select(DomainEventRecord)
            .where(
                DomainEventRecord.entity_type == entity_type,
                DomainEventRecord.entity_id == entity_id,
            )
            .order_by(
                desc(DomainEventRecord.created_at), desc(DomainEventRecord.sequence)
            )
        )
        with self._sessions()() as session:
            return [self._db_to_event(r) for r in session.scalars(stmt)]

    def query(self, query: DomainEventQuery) -> List[DomainEvent]:
        stmt = select(DomainEventRecord)

        if query.entity_types:
            stmt = stmt.where(DomainEventRecord.entity_type.in_(query.entity_types))
        if query.entity_ids:
            stmt = stmt.where(DomainEventRecord.entity_id.in_(query.entity_ids))
        if query.actions:
            stmt = stmt.where(
                DomainEventRecord.action.in_([a.value for a in query.actions])
            )
        if query.actor_ids:
            stmt = stmt.where(DomainEventRecord.actor_id.in_(query.actor_ids))
        if query.start_date:
            stmt = stmt.where(DomainEventRecord.created_at >= query.start_date)
        if query.end_date:
            stmt = stmt.where(DomainEventRecord.created_at <= query.end_date)

        order = desc if query.sort_desc else asc
        stmt = stmt.order_by(
            order(DomainEventRecord.created_at), order(DomainEventRecord.sequence)
        )
        stmt = stmt.limit(query.limit).offset(query.offset)

        with self._sessions()() as session:
            return [self._db_to_event(r) for r in session.scalars(stmt)]

    def iter_all(self) -> Iterator[DomainEvent]:
        stmt = select(DomainEventRecord).order_by(asc(DomainEventRecord.sequence))
        with self._sessions()() as session:
            for record in session.scalars(stmt):
                yield self._db_to_event(record)


class FileDomainEventStorage(DomainEventStorage):
    """Append-only JSON-lines storage backend for domain events."""

    FILE_NAME = "domain_events.jsonl"

    def __init__(self, storage_path: str):
        """
        Initialize file-based event storage.

        Args:
            storage_path: Directory holding the event file
        """
        self.storage_path = Path(storage_path)
        self.file_path = self.storage_path / self.FILE_NAME
        self.file_lock = threading.Lock()

    def initialize(self) -> None:
        self.storage_path.mkdir(parents=True, exist_ok=True)
        self.file_path.touch(exist_ok=True)

    def store(self, entry: DomainEvent, session: Optional[Session] = None) -> None:
        # A file cannot take part in a database transaction; session is ignored
        if not entry.checksum:
            entry = entry.sealed()

        line = json.dumps(entry.model_dump(mode="json"), sort_keys=True)
        with self.file_lock:
            with open(self.file_path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def iter_all(self) -> Iterator[DomainEvent]:
        if not self.file_path.exists():
            return
        with open(self.file_path, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    yield DomainEvent(**json.loads(line))

    def find_by_entity(self, entity_type: str, entity_id: str) -> List[DomainEvent]:
        events = [
            e
            for e in self.iter_all()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        # File order is insertion order, so reversing keeps ties stable
        events.reverse()
        return sorted(events, key=lambda e: e.created_at, reverse=True)

    def query(self, query: DomainEventQuery) -> List[DomainEvent]:
        events = [e for e in self.iter_all() if query.matches(e)]
        if query.sort_desc:
            events.reverse()
        events = sorted(events, key=lambda e: e.created_at, reverse=query.sort_desc)
        return events[query.offset : query.offset + query.limit]


# Storage factory
_storage_instances: Dict[str, DomainEventStorage] = {}


def get_event_storage(backend: str = "sql", **kwargs: Any) -> DomainEventStorage:
    """
    Get or create a domain event storage instance.

    Args:
        backend: Storage backend type ("sql" or "file")
        **kwargs: Backend-specific parameters

    Returns:
        Initialized storage instance
    """
    # Engines are not identified by value, so shared-engine storages are not cached
    cache_key: Optional[str] = None
    if kwargs.get("engine") is None:
        cache_key = f"{backend}:{json.dumps(kwargs, sort_keys=True, default=str)}"

    if cache_key is None or cache_key not in _storage_instances:
        if backend == "sql":
            connection_string = kwargs.get("connection_string")
            engine = kwargs.get("engine")
            if not connection_string and engine is None:
                raise ValueError(
                    "connection_string or engine is required for sql backend"
                )
            storage: DomainEventStorage = SQLDomainEventStorage(
                connection_string=connection_string, engine=engine
            )
        elif backend == "file":
            storage_path = kwargs.get("storage_path")
            if not storage_path:
                raise ValueError("storage_path is required for file backend")
            storage = FileDomainEventStorage(storage_path)
        else:
            raise ValueError(f"Unknown storage backend: {backend}")

        storage.initialize()
        logger.debug(f"Initialized {backend} domain event storage")
        if cache_key is None:
            return storage
        _storage_instances[cache_key] = storage

    return _storage_instances[cache_key]
