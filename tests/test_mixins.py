"""
Tests for the soft delete mixin and the live-only unique indexes.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from interview_library.entities import Base, Topic, User, UserQuestion
from interview_library.soft_delete.mixins import LIVE_ROW_CLAUSE, new_entity_id


@pytest.fixture
def memory_session():
    """Create an in-memory SQLite database session for testing."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    Session = sessionmaker(bind=engine, expire_on_commit=False)
    session = Session()

    yield session

    session.close()
    engine.dispose()


class TestSoftDeleteMixin:
    """Test the SoftDeleteMixin functionality."""

    def test_new_entity_is_live(self, memory_session):
        """A freshly inserted row is live with no deletion stamp."""
        topic = Topic(name="React", slug="react")
        memory_session.add(topic)
        memory_session.commit()

        assert topic.id is not None
        assert topic.is_deleted is False
        assert topic.deleted_at is None
        assert topic.deleted_by is None

    def test_mark_deleted_sets_both_fields(self):
        """Marking deleted stamps the actor and a timezone-aware time."""
        topic = Topic(name="React", slug="react")
        topic.mark_deleted("admin-1")

        assert topic.is_deleted is True
        assert topic.deleted_by == "admin-1"
        assert topic.deleted_at.tzinfo is not None
        assert topic.deleted_at <= datetime.now(timezone.utc)

    def test_mark_deleted_with_explicit_time(self):
        """An explicit deletion time is kept as given."""
        when = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        topic = Topic(name="React", slug="react")
        topic.mark_deleted("admin-1", when=when)

        assert topic.deleted_at == when

    @pytest.mark.parametrize("actor", ["", "   ", None])
    def test_mark_deleted_requires_actor(self, actor):
        """A deletion without an actor is rejected and leaves the row untouched."""
        topic = Topic(name="React", slug="react")

        with pytest.raises(ValueError, match="Actor ID is required"):
            topic.mark_deleted(actor)

        assert topic.deleted_at is None
        assert topic.deleted_by is None

    def test_clear_deletion(self):
        """Clearing the deletion resets both fields."""
        topic = Topic(name="React", slug="react")
        topic.mark_deleted("admin-1")
        topic.clear_deletion()

        assert topic.is_deleted is False
        assert topic.deleted_by is None

    def test_select_helpers(self, memory_session):
        """Live, deleted and unfiltered selects partition the rows."""
        live = Topic(name="Python", slug="python")
        gone = Topic(name="Perl", slug="perl")
        gone.mark_deleted("admin-1")
        memory_session.add_all([live, gone])
        memory_session.commit()

        active = memory_session.scalars(Topic.select_active()).all()
        deleted = memory_session.scalars(Topic.select_deleted()).all()
        everything = memory_session.scalars(Topic.select_all()).all()

        assert [t.slug for t in active] == ["python"]
        assert [t.slug for t in deleted] == ["perl"]
        assert len(everything) == 2

    def test_to_dict(self):
        """Dictionary form optionally hides the deletion fields."""
        topic = Topic(id=new_entity_id(), name="React", slug="react")
        topic.mark_deleted("admin-1")

        full = topic.to_dict()
        assert full["slug"] == "react"
        assert full["deleted_by"] == "admin-1"
        assert isinstance(full["deleted_at"], str)

        trimmed = topic.to_dict(include_deleted_fields=False)
        assert "deleted_at" not in trimmed
        assert "deleted_by" not in trimmed


class TestSchemaConstraints:
    """Test the constraints the mixin adds to every table."""

    def test_deletion_consistency_check_constraint(self, memory_session):
        """The schema refuses a deletion time without a deleter."""
        topic = Topic(name="React", slug="react")
        topic.deleted_at = datetime.now(timezone.utc)
        memory_session.add(topic)

        with pytest.raises(IntegrityError):
            memory_session.commit()

    def test_check_constraint_is_named_per_table(self):
        """Each table carries its own deletion consistency constraint."""
        names = {c.name for c in Topic.__table__.constraints}
        assert "ck_topics_deletion_consistency" in names

    def test_live_unique_indexes_are_partial(self):
        """Declared live-unique indexes only cover live rows."""
        indexes = {index.name: index for index in User.__table__.indexes}

        for name in ("uq_users_email_live", "uq_users_provider_id_live"):
            index = indexes[name]
            assert index.unique is True
            assert str(index.dialect_options["sqlite"]["where"]) == LIVE_ROW_CLAUSE
            assert str(index.dialect_options["postgresql"]["where"]) == LIVE_ROW_CLAUSE

    def test_composite_live_unique_index(self):
        """The user-question link is unique per user and question among live rows."""
        index = next(
            i
            for i in UserQuestion.__table__.indexes
            if i.name == "uq_user_questions_user_question_live"
        )
        assert [c.name for c in index.columns] == ["user_id", "question_id"]

    def test_deleted_rows_may_share_unique_values(self, memory_session):
        """Any number of deleted rows may keep the same slug."""
        for _ in range(3):
            topic = Topic(name="React", slug="react")
            topic.mark_deleted("admin-1")
            memory_session.add(topic)
        memory_session.add(Topic(name="React", slug="react"))

        memory_session.commit()

        assert len(memory_session.scalars(Topic.select_all()).all()) == 4

    def test_two_live_rows_may_not_share_unique_values(self, memory_session):
        """The partial index rejects a second live row with the same slug."""
        memory_session.add(Topic(name="React", slug="react"))
        memory_session.commit()

        memory_session.add(Topic(name="React again", slug="react"))
        with pytest.raises(IntegrityError):
            memory_session.commit()
