"""Shared fixtures for Interview Library tests."""

import itertools

import pytest
from sqlalchemy import create_engine

from interview_library.config import LibraryConfig, set_config
from interview_library.database import create_session_factory, init_db
from interview_library.domain_events import DomainEventLog, get_event_storage
from interview_library.entities import (
    Question,
    QuestionRevision,
    Topic,
    User,
    UserQuestion,
)
from interview_library.policies import build_default_registry
from interview_library.soft_delete import SoftDeleteService


class EntityFactory:
    """Creates and commits question-bank rows."""

    def __init__(self, session):
        self.session = session
        self.counter = itertools.count(1)

    def _save(self, entity):
        self.session.add(entity)
        self.session.commit()
        return entity

    def user(self, email=None, provider_id=None, **kwargs):
        n = next(self.counter)
        return self._save(
            User(
                email=email or f"user{n}@example.com",
                name=kwargs.pop("name", f"User {n}"),
                provider_id=provider_id,
                **kwargs,
            )
        )

    def topic(self, slug=None, **kwargs):
        n = next(self.counter)
        slug = slug or f"topic-{n}"
        name = kwargs.pop("name", slug.title())
        return self._save(Topic(name=name, slug=slug, **kwargs))

    def question(self, topic, **kwargs):
        n = next(self.counter)
        return self._save(
            Question(
                title=kwargs.pop("title", f"Question {n}"),
                content=kwargs.pop("content", "What is a closure?"),
                topic_id=topic.id,
                **kwargs,
            )
        )

    def revision(self, question=None, topic=None, **kwargs):
        return self._save(
            QuestionRevision(
                question_id=question.id if question is not None else None,
                topic_id=topic.id if topic is not None else None,
                title=kwargs.pop("title", "Proposed edit"),
                content=kwargs.pop("content", "Updated content"),
                **kwargs,
            )
        )

    def user_question(self, user, question, **kwargs):
        return self._save(
            UserQuestion(user_id=user.id, question_id=question.id, **kwargs)
        )


@pytest.fixture
def config():
    """Test configuration installed as the global configuration."""
    config = LibraryConfig(environment="test")
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def engine(tmp_path):
    """SQLite database file with all tables created."""
    engine = create_engine(f"sqlite:///{tmp_path / 'library.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    """Create a database session for testing."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def factory(db_session):
    return EntityFactory(db_session)


@pytest.fixture
def event_log(engine):
    """Domain event log sharing the entity database."""
    return DomainEventLog(get_event_storage("sql", engine=engine))


@pytest.fixture
def registry():
    return build_default_registry()


@pytest.fixture
def service(session_factory, registry, event_log, config):
    """Create a soft delete service instance."""
    return SoftDeleteService(
        session_factory, registry=registry, event_log=event_log, config=config
    )


@pytest.fixture
def reload(session_factory):
    """Read a row, live or deleted, in a fresh session."""

    def _reload(model, entity_id):
        with session_factory() as session:
            return session.get(model, entity_id)

    return _reload
