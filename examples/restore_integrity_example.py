#!/usr/bin/env python3
"""
Restore Integrity Example - Interview Library

This is a demonstration file prioritizing readability over production
readiness. It uses an in-memory database and prints to stdout.

Demonstrates the soft delete / restore rules of the question bank:
- Deleting a topic with live questions is blocked unless forced
- A question cannot be restored while its topic is deleted
- A topic cannot be restored while another live topic uses its slug
- Every lifecycle action lands in the domain event log
"""

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from interview_library import LibraryConfig, SoftDeleteService
from interview_library.database import create_session_factory, init_db
from interview_library.domain_events import DomainEventLog, get_event_storage
from interview_library.entities import Question, Topic
from interview_library.soft_delete import (
    DeleteBlockedException,
    DomainConflictException,
    RestoreBlockedException,
)


def demonstrate_restore_integrity() -> None:
    """Walk through delete, blocked restore, conflict and history."""
    print("🗑️  Restore Integrity Example\n")

    # One shared connection so every session sees the same in-memory database
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    init_db(engine)
    session_factory = create_session_factory(engine)

    events = DomainEventLog(get_event_storage("sql", engine=engine))
    service = SoftDeleteService(
        session_factory,
        event_log=events,
        config=LibraryConfig(environment="development"),
    )

    # 1. Create test data
    print("1️⃣ Creating Test Data:")
    with session_factory.begin() as session:
        react = Topic(name="React", slug="react")
        session.add(react)
        session.flush()
        hooks = Question(
            title="What does useEffect do?",
            content="Explain the effect lifecycle.",
            topic_id=react.id,
        )
        session.add(hooks)
    print(f"  ✓ Created topic '{react.slug}' with one question\n")

    # 2. Plain delete of a topic with live questions is refused
    print("2️⃣ Deleting a Topic With Live Questions:")
    try:
        service.soft_delete("topic", react.id, "admin-1")
    except DeleteBlockedException as e:
        print(f"  ✗ {e}")

    result = service.soft_delete("topic", react.id, "admin-1", force=True)
    print(f"  ✓ Forced delete cascaded to {result.cascaded}\n")

    # 3. Parent liveness
    print("3️⃣ Restoring the Question First:")
    try:
        service.restore("question", hooks.id, "admin-2")
    except RestoreBlockedException as e:
        print(f"  ✗ {e}")

    service.restore("topic", react.id, "admin-2")
    service.restore("question", hooks.id, "admin-2")
    print("  ✓ Restored topic, then question\n")

    # 4. Live uniqueness
    print("4️⃣ Restoring Into a Taken Slug:")
    service.soft_delete("topic", react.id, "admin-1", force=True)
    with session_factory.begin() as session:
        session.add(Topic(name="React (new)", slug="react"))
    try:
        service.restore("topic", react.id, "admin-2")
    except DomainConflictException as e:
        print(f"  ✗ {e}\n")

    # 5. History
    print("5️⃣ Domain Event History of the Original Topic:")
    for event in service.history("topic", react.id):
        print(f"  {event.created_at:%H:%M:%S}  {event.action:<16} {event.actor_id}")

    print("\n✅ Restore integrity example completed!")


if __name__ == "__main__":
    demonstrate_restore_integrity()
