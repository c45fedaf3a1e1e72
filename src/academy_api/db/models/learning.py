"""
academy_api.db.models.learning

Learner-side schema: enrollments and everything recorded against them.

Responsibilities:
- Enrollment: a user's registration in a course.
- ActivityCompletion: per-activity progress within an enrollment.
- QuizSubmission/QuizResponse: attempts at quiz activities.
- FeedbackSubmission/FeedbackAnswer: draft-then-submit feedback forms.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Enum,
    Float,
    ForeignKey,
    Index,
    Text,
    UniqueConstraint,
    Uuid as SAUuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from academy_api.db.base import Base, utcnow


class EnrollmentStatus(enum.StrEnum):
    active = "active"
    completed = "completed"
    expired = "expired"
    cancelled = "cancelled"


class CompletionStatus(enum.StrEnum):
    started = "started"
    in_progress = "in_progress"
    completed = "completed"
    failed = "failed"


class FeedbackSubmissionStatus(enum.StrEnum):
    draft = "draft"
    submitted = "submitted"


class Enrollment(Base):
    __tablename__ = "enrollments"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    course_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("courses.id"), nullable=False, index=True
    )
    environment_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("environments.id"), nullable=False, index=True
    )
    status: Mapped[EnrollmentStatus] = mapped_column(
        Enum(EnrollmentStatus), nullable=False, default=EnrollmentStatus.active, index=True
    )
    progress_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    enrolled_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_activity_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (UniqueConstraint("user_id", "course_id", name="uq_enrollment_user_course"),)


class ActivityCompletion(Base):
    __tablename__ = "activity_completions"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    enrollment_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("enrollments.id"), nullable=False, index=True
    )
    activity_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("activities.id"), nullable=False, index=True
    )
    status: Mapped[CompletionStatus] = mapped_column(Enum(CompletionStatus), nullable=False)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)
    time_spent: Mapped[int] = mapped_column(nullable=False, default=0)
    attempts: Mapped[int] = mapped_column(nullable=False, default=0)

    started_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("enrollment_id", "activity_id", name="uq_completion_enrollment_activity"),
    )


class QuizSubmission(Base):
    __tablename__ = "quiz_submissions"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    enrollment_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("enrollments.id"), nullable=False, index=True
    )
    activity_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("activities.id"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    attempt_number: Mapped[int] = mapped_column(nullable=False, default=1)
    score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    max_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    submitted_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    responses: Mapped[list[QuizResponse]] = relationship(
        back_populates="submission", cascade="all, delete-orphan", lazy="selectin"
    )

    __table_args__ = (Index("ix_quiz_submissions_enrollment_activity", "enrollment_id", "activity_id"),)


class QuizResponse(Base):
    __tablename__ = "quiz_responses"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    quiz_submission_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("quiz_submissions.id"), nullable=False, index=True
    )
    quiz_question_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("quiz_questions.id"), nullable=False
    )
    user_response: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    points_earned: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    max_points: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    submission: Mapped[QuizSubmission] = relationship(back_populates="responses")


class FeedbackSubmission(Base):
    __tablename__ = "feedback_submissions"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    feedback_content_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("feedback_contents.id"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    status: Mapped[FeedbackSubmissionStatus] = mapped_column(
        Enum(FeedbackSubmissionStatus), nullable=False, default=FeedbackSubmissionStatus.draft
    )
    submission_date: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)

    answers: Mapped[list[FeedbackAnswer]] = relationship(
        back_populates="submission", cascade="all, delete-orphan", lazy="selectin"
    )


class FeedbackAnswer(Base):
    __tablename__ = "feedback_answers"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    feedback_submission_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("feedback_submissions.id"), nullable=False, index=True
    )
    feedback_question_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("feedback_questions.id"), nullable=False
    )
    answer_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    answer_value: Mapped[Any | None] = mapped_column(JSON, nullable=True)

    submission: Mapped[FeedbackSubmission] = relationship(back_populates="answers")
