"""
Interview Library - soft delete and restore integrity engine.

Rows of the question bank (users, topics, questions, question revisions and
user-question links) are never physically removed. They are soft-deleted and
may be restored later, but only when doing so keeps the data consistent:

* **Parent liveness**: a row cannot come back while a parent it references is
  deleted
* **Live uniqueness**: a row cannot come back while a live row holds its slug,
  email or other unique key
* **Domain events**: every delete, restore and refused restore is recorded in
  an append-only log

Quick Start
-----------
>>> from interview_library import SoftDeleteService, DomainEventLog
>>> from interview_library.database import create_db_engine, create_session_factory
>>> from interview_library.domain_events import get_event_storage
>>>
>>> engine = create_db_engine()
>>> events = DomainEventLog(get_event_storage("sql", engine=engine))
>>> service = SoftDeleteService(create_session_factory(engine), event_log=events)
>>> service.soft_delete("topic", topic_id, admin_id, force=True)
>>> service.restore("topic", topic_id, admin_id)
"""

__version__ = "1.0.0"

from .config import LibraryConfig
from .domain_events import DomainEventAction, DomainEventLog
from .soft_delete import (
    DomainConflictException,
    RestoreBlockedException,
    SoftDeleteMixin,
    SoftDeleteService,
)

__all__ = [
    # Soft Delete
    "SoftDeleteMixin",
    "SoftDeleteService",
    "RestoreBlockedException",
    "DomainConflictException",
    # Domain Events
    "DomainEventLog",
    "DomainEventAction",
    # Configuration
    "LibraryConfig",
]
