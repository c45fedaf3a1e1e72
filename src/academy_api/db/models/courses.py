"""
academy_api.db.models.courses

Course authoring schema.

Responsibilities:
- Template -> Block -> Activity hierarchy used to build courses.
- Typed activity content for quizzes and feedback forms.
- Courses published inside an environment, optionally built on a template.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Enum, ForeignKey, Index, String, Text, Uuid as SAUuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from academy_api.db.base import Base, utcnow


class CourseStatus(enum.StrEnum):
    draft = "draft"
    published = "published"
    archived = "archived"


class ActivityType(enum.StrEnum):
    video = "video"
    text = "text"
    quiz = "quiz"
    feedback = "feedback"
    certificate = "certificate"
    assignment = "assignment"


class FeedbackQuestionType(enum.StrEnum):
    text = "text"
    rating = "rating"
    multiple_choice = "multiple_choice"
    checkbox = "checkbox"
    dropdown = "dropdown"
    questionnaire = "questionnaire"


class Template(Base):
    __tablename__ = "templates"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    environment_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("environments.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("users.id"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    blocks: Mapped[list[Block]] = relationship(
        back_populates="template", cascade="all, delete-orphan", order_by="Block.position"
    )


class Block(Base):
    __tablename__ = "blocks"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    template_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("templates.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[int] = mapped_column(nullable=False, default=0)

    template: Mapped[Template] = relationship(back_populates="blocks")
    activities: Mapped[list[Activity]] = relationship(
        back_populates="block", cascade="all, delete-orphan", order_by="Activity.position"
    )


class Activity(Base):
    __tablename__ = "activities"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    block_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("blocks.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    activity_type: Mapped[ActivityType] = mapped_column(Enum(ActivityType), nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    points: Mapped[int] = mapped_column(nullable=False, default=0)
    position: Mapped[int] = mapped_column(nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    block: Mapped[Block] = relationship(back_populates="activities")


class Course(Base):
    __tablename__ = "courses"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    environment_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("environments.id"), nullable=False, index=True
    )
    template_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("templates.id"), nullable=True, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[CourseStatus] = mapped_column(
        Enum(CourseStatus), nullable=False, default=CourseStatus.draft, index=True
    )
    # None means unlimited seats.
    enrollment_limit: Mapped[int | None] = mapped_column(nullable=True)
    created_by: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("users.id"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def is_published(self) -> bool:
        return self.status == CourseStatus.published


class QuizQuestion(Base):
    __tablename__ = "quiz_questions"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    activity_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("activities.id"), nullable=False, index=True
    )
    question: Mapped[str] = mapped_column(Text, nullable=False)
    question_type: Mapped[str] = mapped_column(String(32), nullable=False, default="multiple_choice")
    options: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    correct_answer: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    points: Mapped[int] = mapped_column(nullable=False, default=1)


class FeedbackContent(Base):
    __tablename__ = "feedback_contents"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    activity_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("activities.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("users.id"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    questions: Mapped[list[FeedbackQuestion]] = relationship(
        back_populates="feedback_content",
        cascade="all, delete-orphan",
        order_by="FeedbackQuestion.position",
    )


class FeedbackQuestion(Base):
    __tablename__ = "feedback_questions"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    feedback_content_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("feedback_contents.id"), nullable=False, index=True
    )
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    question_type: Mapped[FeedbackQuestionType] = mapped_column(
        Enum(FeedbackQuestionType), nullable=False
    )
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    options: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    position: Mapped[int] = mapped_column(nullable=False, default=0)

    feedback_content: Mapped[FeedbackContent] = relationship(back_populates="questions")

    __table_args__ = (Index("ix_feedback_questions_content_pos", "feedback_content_id", "position"),)
