"""Soft delete policies of the question-bank entities."""

from .entities import Question, QuestionRevision, Topic, User, UserQuestion
from .soft_delete.descriptors import ChildRef, ParentRef, UniqueConstraint
from .soft_delete.registry import SoftDeleteRegistry

USER = "user"
TOPIC = "topic"
QUESTION = "question"
QUESTION_REVISION = "question_revision"
USER_QUESTION = "user_question"


def build_default_registry() -> SoftDeleteRegistry:
    """
    Register every entity of the question bank.

    Unique constraints mirror the partial unique indexes declared on the
    models, so the restore-time check and the schema agree.

    Returns:
        Registry keyed by entity type label
    """
    registry = SoftDeleteRegistry()

    registry.register(
        USER,
        User,
        unique_constraints=[
            UniqueConstraint(("email",), "email"),
            UniqueConstraint(("provider_id",), "provider_id"),
        ],
    )
    registry.register(
        TOPIC,
        Topic,
        unique_constraints=[UniqueConstraint(("slug",), "slug")],
        children=[ChildRef(Question, "topic_id", QUESTION)],
    )
    registry.register(
        QUESTION,
        Question,
        parents=[ParentRef(Topic, "topic_id", TOPIC)],
        children=[ChildRef(UserQuestion, "question_id", USER_QUESTION)],
    )
    registry.register(
        QUESTION_REVISION,
        QuestionRevision,
        parents=[
            ParentRef(Question, "question_id", QUESTION),
            ParentRef(Topic, "topic_id", TOPIC),
        ],
    )
    registry.register(
        USER_QUESTION,
        UserQuestion,
        parents=[
            ParentRef(User, "user_id", USER),
            ParentRef(Question, "question_id", QUESTION),
        ],
        unique_constraints=[
            UniqueConstraint(("user_id", "question_id"), USER_QUESTION)
        ],
    )

    return registry
