"""
Tests for the restore operation: parent liveness, live-only uniqueness,
storage-level conflicts, best-effort auditing and the fresh re-read.
"""

import logging
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from interview_library.domain_events import DomainEventAction, DomainEventLog
from interview_library.entities import Question, QuestionRevision, Topic, User
from interview_library.entities import UserQuestion
from interview_library.soft_delete import (
    DomainConflictException,
    EntityNotFoundException,
    RestoreBlockedException,
    RestoreOptions,
    restore,
    soft_delete,
)
from interview_library.soft_delete import operations

pytestmark = pytest.mark.integrity


def delete(session, model, entity):
    soft_delete(session, model, entity.id, "admin-1")
    session.commit()


def options_for(registry, entity_type, **kwargs):
    return registry.get(entity_type).restore_options(actor_id="admin-2", **kwargs)


class TestRestorePreconditions:
    """Test which rows can be restored at all."""

    def test_restore_live_row_is_not_found(self, db_session, factory, registry):
        """A live row is not a restore target."""
        topic = factory.topic()

        with pytest.raises(EntityNotFoundException) as exc_info:
            restore(db_session, Topic, topic.id, options_for(registry, "topic"))

        assert str(exc_info.value) == f"Deleted topic with ID {topic.id} not found"
        assert exc_info.value.deleted is True

    def test_restore_missing_row(self, db_session, registry):
        with pytest.raises(EntityNotFoundException):
            restore(db_session, Topic, "missing", options_for(registry, "topic"))

    def test_round_trip_restores_original_state(self, db_session, factory, registry):
        """Delete then restore yields the row as it was before deletion."""
        topic = factory.topic(slug="react", description="Hooks and components")
        before = topic.to_dict(include_deleted_fields=False)
        before.pop("updated_at")

        delete(db_session, Topic, topic)
        restored = restore(db_session, Topic, topic.id, options_for(registry, "topic"))
        db_session.commit()

        after = restored.to_dict(include_deleted_fields=False)
        after.pop("updated_at")
        assert restored.deleted_at is None
        assert restored.deleted_by is None
        assert after["slug"] == before["slug"]
        assert after["description"] == before["description"]
        assert after["name"] == before["name"]

    def test_restored_row_is_visible_on_live_path(
        self, db_session, factory, registry, reload
    ):
        topic = factory.topic()
        delete(db_session, Topic, topic)

        restore(db_session, Topic, topic.id, options_for(registry, "topic"))
        db_session.commit()

        assert reload(Topic, topic.id).deleted_at is None


class TestParentLiveness:
    """Test that a row cannot come back while a parent is deleted."""

    def test_question_blocked_by_deleted_topic(
        self, db_session, factory, registry, reload
    ):
        """Restoring a question under a deleted topic is blocked until the
        topic is restored."""
        topic = factory.topic()
        question = factory.question(topic)
        delete(db_session, Question, question)
        delete(db_session, Topic, topic)

        with pytest.raises(RestoreBlockedException) as exc_info:
            restore(
                db_session, Question, question.id, options_for(registry, "question")
            )
        db_session.rollback()

        error = exc_info.value
        assert error.parent_type == "topic"
        assert error.parent_id == topic.id
        assert "Restore the parent first" in str(error)
        assert reload(Question, question.id).deleted_at is not None

        restore(db_session, Topic, topic.id, options_for(registry, "topic"))
        restored = restore(
            db_session, Question, question.id, options_for(registry, "question")
        )
        db_session.commit()

        assert restored.deleted_at is None

    def test_every_parent_is_checked(self, db_session, factory, registry):
        """A user-question link needs both its user and its question live."""
        user = factory.user()
        question = factory.question(factory.topic())
        link = factory.user_question(user, question)
        delete(db_session, UserQuestion, link)
        delete(db_session, User, user)

        with pytest.raises(RestoreBlockedException) as exc_info:
            restore(
                db_session,
                UserQuestion,
                link.id,
                options_for(registry, "user_question"),
            )

        assert exc_info.value.parent_type == "user"
        assert exc_info.value.parent_id == user.id

    def test_missing_parent_blocks_restore(self, db_session, factory, registry):
        """A parent that no longer exists at all also blocks the restore."""
        topic = factory.topic()
        question = factory.question(topic)
        question.topic_id = "ghost-topic"
        db_session.commit()
        delete(db_session, Question, question)

        with pytest.raises(RestoreBlockedException) as exc_info:
            restore(
                db_session, Question, question.id, options_for(registry, "question")
            )

        assert exc_info.value.parent_id == "ghost-topic"
        assert "parent topic (ghost-topic) is missing" in str(exc_info.value)

    def test_null_optional_parent_is_skipped(self, db_session, factory, registry):
        """A revision without a topic only needs its question live."""
        question = factory.question(factory.topic())
        revision = factory.revision(question=question, topic=None)
        delete(db_session, QuestionRevision, revision)

        restored = restore(
            db_session,
            QuestionRevision,
            revision.id,
            options_for(registry, "question_revision"),
        )

        assert restored.deleted_at is None

    def test_optional_parent_is_checked_when_set(self, db_session, factory, registry):
        """A revision with a deleted topic is blocked even if its question is live."""
        topic = factory.topic()
        question = factory.question(factory.topic())
        revision = factory.revision(question=question, topic=topic)
        delete(db_session, QuestionRevision, revision)
        delete(db_session, Topic, topic)

        with pytest.raises(RestoreBlockedException) as exc_info:
            restore(
                db_session,
                QuestionRevision,
                revision.id,
                options_for(registry, "question_revision"),
            )

        assert exc_info.value.parent_type == "topic"

    def test_parent_check_precedes_uniqueness_check(
        self, db_session, factory, registry
    ):
        """With a deleted parent and a live duplicate, the parent error wins."""
        user = factory.user()
        question = factory.question(factory.topic())
        old_link = factory.user_question(user, question)
        delete(db_session, UserQuestion, old_link)
        factory.user_question(user, question)
        delete(db_session, Question, question)

        with pytest.raises(RestoreBlockedException):
            restore(
                db_session,
                UserQuestion,
                old_link.id,
                options_for(registry, "user_question"),
            )


class TestLiveUniqueness:
    """Test that a row cannot come back while a live row holds its unique key."""

    def test_topic_slug_conflict(self, db_session, factory, registry, reload):
        """A deleted topic cannot return while another live topic uses its slug."""
        original = factory.topic(slug="react")
        delete(db_session, Topic, original)
        factory.topic(slug="react")

        with pytest.raises(DomainConflictException) as exc_info:
            restore(db_session, Topic, original.id, options_for(registry, "topic"))
        db_session.rollback()

        error = exc_info.value
        assert error.conflict_field == "slug"
        assert error.conflict_value == "react"
        assert 'already exists with slug = "react"' in str(error)
        assert reload(Topic, original.id).deleted_at is not None

    def test_user_email_conflict(self, db_session, factory, registry):
        """A deleted user cannot return while a live user owns the email."""
        original = factory.user(email="alice@example.com")
        delete(db_session, User, original)
        factory.user(email="alice@example.com")

        with pytest.raises(DomainConflictException) as exc_info:
            restore(db_session, User, original.id, options_for(registry, "user"))

        assert exc_info.value.conflict_field == "email"
        assert exc_info.value.conflict_value == "alice@example.com"
        assert exc_info.value.to_dict()["conflictField"] == "email"

    def test_provider_id_conflict(self, db_session, factory, registry):
        original = factory.user(provider_id="google-42")
        delete(db_session, User, original)
        factory.user(provider_id="google-42")

        with pytest.raises(DomainConflictException) as exc_info:
            restore(db_session, User, original.id, options_for(registry, "user"))

        assert exc_info.value.conflict_field == "provider_id"

    def test_null_values_never_conflict(self, db_session, factory, registry):
        """Users without a provider id do not collide on it."""
        original = factory.user(provider_id=None)
        delete(db_session, User, original)
        factory.user(provider_id=None)

        restored = restore(db_session, User, original.id, options_for(registry, "user"))

        assert restored.deleted_at is None

    def test_deleted_rows_never_conflict(self, db_session, factory, registry):
        """Only live rows count: the first of two deleted twins comes back."""
        first = factory.topic(slug="react")
        delete(db_session, Topic, first)
        second = factory.topic(slug="react")
        delete(db_session, Topic, second)

        restore(db_session, Topic, first.id, options_for(registry, "topic"))
        db_session.commit()

        with pytest.raises(DomainConflictException):
            restore(db_session, Topic, second.id, options_for(registry, "topic"))

    def test_composite_conflict_describes_all_fields(
        self, db_session, factory, registry
    ):
        user = factory.user()
        question = factory.question(factory.topic())
        old_link = factory.user_question(user, question)
        delete(db_session, UserQuestion, old_link)
        factory.user_question(user, question)

        with pytest.raises(DomainConflictException) as exc_info:
            restore(
                db_session,
                UserQuestion,
                old_link.id,
                options_for(registry, "user_question"),
            )

        assert exc_info.value.conflict_field == "user_question"
        assert exc_info.value.conflict_value == (
            f"user_id={user.id}, question_id={question.id}"
        )


class TestStorageLevelConflicts:
    """Test the mapping of unique index violations raised at commit time."""

    def test_undeclared_unique_index_maps_to_conflict(self, db_session, factory):
        """Without declared constraints the index still refuses the restore."""
        original = factory.topic(slug="react")
        delete(db_session, Topic, original)
        factory.topic(slug="react")

        with pytest.raises(DomainConflictException) as exc_info:
            restore(db_session, Topic, original.id, RestoreOptions(entity_type="topic"))
        db_session.rollback()

        error = exc_info.value
        assert error.conflict_field == "unique"
        assert "topics.slug" in error.conflict_value
        assert isinstance(error.__cause__, IntegrityError)

    def test_race_past_advisory_check_maps_to_declared_constraint(
        self, db_session, factory, registry, monkeypatch
    ):
        """A conflict the advisory check missed is reported by its label."""
        original = factory.topic(slug="react")
        delete(db_session, Topic, original)
        factory.topic(slug="react")
        monkeypatch.setattr(operations, "_check_unique", lambda *args: None)

        with pytest.raises(DomainConflictException) as exc_info:
            restore(db_session, Topic, original.id, options_for(registry, "topic"))
        db_session.rollback()

        assert exc_info.value.conflict_field == "slug"
        assert exc_info.value.conflict_value == "react"

    def test_other_integrity_errors_propagate(
        self, db_session, factory, registry, monkeypatch
    ):
        """Only unique violations are translated."""
        topic = factory.topic()
        delete(db_session, Topic, topic)

        def clear_half(self):
            self.deleted_at = None

        monkeypatch.setattr(Topic, "clear_deletion", clear_half)

        with pytest.raises(IntegrityError):
            restore(db_session, Topic, topic.id, options_for(registry, "topic"))
        db_session.rollback()


class TestRestoreAudit:
    """Test the RESTORED event appended by a successful restore."""

    def test_restore_appends_restored_event(
        self, db_session, factory, registry, event_log
    ):
        topic = factory.topic()
        delete(db_session, Topic, topic)

        restore(
            db_session,
            Topic,
            topic.id,
            options_for(registry, "topic", event_log=event_log),
        )
        db_session.commit()

        events = event_log.find_by_entity("topic", topic.id)
        assert len(events) == 1
        event = events[0]
        assert event.action == DomainEventAction.RESTORED.value
        assert event.actor_id == "admin-2"
        assert event.metadata["deleted_by"] == "admin-1"
        assert event.metadata["deleted_at"] is not None
        assert event.metadata["restored_at"] is not None
        assert event.verify_checksum()

    def test_blocked_restore_appends_nothing(
        self, db_session, factory, registry, event_log
    ):
        """The low-level operation only records successful restores."""
        topic = factory.topic()
        question = factory.question(topic)
        delete(db_session, Question, question)
        delete(db_session, Topic, topic)

        with pytest.raises(RestoreBlockedException):
            restore(
                db_session,
                Question,
                question.id,
                options_for(registry, "question", event_log=event_log),
            )
        db_session.rollback()

        assert event_log.find_by_entity("question", question.id) == []

    @pytest.mark.parametrize(
        "failure", [SQLAlchemyError("audit table unavailable"), OSError("disk full")]
    )
    def test_audit_failure_keeps_restore(
        self, db_session, factory, registry, reload, caplog, failure
    ):
        """A failed audit write is logged and the restore still commits."""
        topic = factory.topic()
        delete(db_session, Topic, topic)
        failing_log = Mock(spec=DomainEventLog)
        failing_log.append.side_effect = failure

        with caplog.at_level(logging.ERROR):
            restored = restore(
                db_session,
                Topic,
                topic.id,
                options_for(registry, "topic", event_log=failing_log),
            )
        db_session.commit()

        assert restored.deleted_at is None
        assert reload(Topic, topic.id).deleted_at is None
        failing_log.append.assert_called_once()
        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert any("restored event" in r.getMessage() for r in errors)
