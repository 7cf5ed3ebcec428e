"""
Entity model of the question bank.

Every entity is soft-deletable. Fields that must be unique only among live
rows are declared through ``__live_unique__`` and become partial unique
indexes; the matching restore-time checks live in :mod:`.policies`.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

from .soft_delete.mixins import SoftDeleteMixin, utcnow

Base = declarative_base()


class TimestampMixin:
    """Creation and last-update timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class User(Base, SoftDeleteMixin, TimestampMixin):  # type: ignore[valid-type,misc]
    __tablename__ = "users"
    __live_unique__ = (
        ("uq_users_email_live", ("email",)),
        ("uq_users_provider_id_live", ("provider_id",)),
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    provider: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    provider_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"


class Topic(Base, SoftDeleteMixin, TimestampMixin):  # type: ignore[valid-type,misc]
    __tablename__ = "topics"
    __live_unique__ = (("uq_topics_slug_live", ("slug",)),)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    icon: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<Topic(id={self.id}, slug={self.slug})>"


class Question(Base, SoftDeleteMixin, TimestampMixin):  # type: ignore[misc]
    __tablename__ = "questions"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="approved"
    )
    topic_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("topics.id"), nullable=False, index=True
    )
    # Author; authorship does not gate restore
    user_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Question(id={self.id}, title={self.title})>"


class QuestionRevision(Base, SoftDeleteMixin, TimestampMixin):  # type: ignore[misc]
    """Proposed edit of a question, or a new question when question_id is null."""

    __tablename__ = "question_revisions"

    question_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("questions.id"), nullable=True, index=True
    )
    topic_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("topics.id"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    submitted_by: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=True
    )


class UserQuestion(Base, SoftDeleteMixin, TimestampMixin):  # type: ignore[misc]
    """A user's study record for one question."""

    __tablename__ = "user_questions"
    __live_unique__ = (
        ("uq_user_questions_user_question_live", ("user_id", "question_id")),
    )

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )
    question_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("questions.id"), nullable=False, index=True
    )
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_favorite: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Spaced repetition state
    ease_factor: Mapped[float] = mapped_column(Float, nullable=False, default=2.5)
    interval_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    repetitions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_review_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
