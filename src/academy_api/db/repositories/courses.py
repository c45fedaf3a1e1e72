"""
academy_api.db.repositories.courses

Repositories for courses and the template/block/activity authoring tree.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from academy_api.db.models import (
    Activity,
    ActivityType,
    Block,
    Course,
    CourseStatus,
    FeedbackContent,
    FeedbackQuestion,
    QuizQuestion,
    Template,
)


class CourseRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        environment_id: uuid.UUID,
        created_by: uuid.UUID,
        title: str,
        description: str | None = None,
        status: CourseStatus = CourseStatus.draft,
        enrollment_limit: int | None = None,
        template_id: uuid.UUID | None = None,
    ) -> Course:
        course = Course(
            environment_id=environment_id,
            created_by=created_by,
            title=title,
            description=description,
            status=status,
            enrollment_limit=enrollment_limit,
            template_id=template_id,
        )
        self._session.add(course)
        await self._session.flush()
        return course

    async def get(self, course_id: uuid.UUID) -> Course | None:
        return await self._session.get(Course, course_id)

    async def list_for_environment(
        self, environment_id: uuid.UUID, *, status: CourseStatus | None = None
    ) -> list[Course]:
        stmt = select(Course).where(Course.environment_id == environment_id)
        if status is not None:
            stmt = stmt.where(Course.status == status)
        stmt = stmt.order_by(desc(Course.created_at))
        return list((await self._session.execute(stmt)).scalars().all())

    async def for_template(self, template_id: uuid.UUID) -> list[Course]:
        stmt = select(Course).where(Course.template_id == template_id)
        return list((await self._session.execute(stmt)).scalars().all())


class TemplateRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        environment_id: uuid.UUID,
        created_by: uuid.UUID,
        title: str,
        description: str | None = None,
    ) -> Template:
        template = Template(
            environment_id=environment_id,
            created_by=created_by,
            title=title,
            description=description,
        )
        self._session.add(template)
        await self._session.flush()
        return template

    async def get(self, template_id: uuid.UUID) -> Template | None:
        return await self._session.get(Template, template_id)

    async def get_tree(self, template_id: uuid.UUID) -> Template | None:
        stmt = (
            select(Template)
            .where(Template.id == template_id)
            .options(selectinload(Template.blocks).selectinload(Block.activities))
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def add_block(self, *, template_id: uuid.UUID, title: str, position: int) -> Block:
        block = Block(template_id=template_id, title=title, position=position)
        self._session.add(block)
        await self._session.flush()
        return block

    async def get_block(self, block_id: uuid.UUID) -> Block | None:
        return await self._session.get(Block, block_id)

    async def add_activity(
        self,
        *,
        block_id: uuid.UUID,
        title: str,
        activity_type: ActivityType,
        is_required: bool,
        points: int,
        position: int,
    ) -> Activity:
        activity = Activity(
            block_id=block_id,
            title=title,
            activity_type=activity_type,
            is_required=is_required,
            points=points,
            position=position,
        )
        self._session.add(activity)
        await self._session.flush()
        return activity

    async def get_activity(self, activity_id: uuid.UUID) -> Activity | None:
        return await self._session.get(Activity, activity_id)

    async def template_for_activity(self, activity_id: uuid.UUID) -> Template | None:
        stmt = (
            select(Template)
            .join(Block, Block.template_id == Template.id)
            .join(Activity, Activity.block_id == Block.id)
            .where(Activity.id == activity_id)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def activities_for_template(self, template_id: uuid.UUID) -> list[Activity]:
        stmt = (
            select(Activity)
            .join(Block, Block.id == Activity.block_id)
            .where(Block.template_id == template_id)
            .order_by(Block.position, Activity.position)
        )
        return list((await self._session.execute(stmt)).scalars().all())


class ActivityContentRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add_quiz_question(
        self,
        *,
        activity_id: uuid.UUID,
        question: str,
        question_type: str,
        options: list[Any],
        correct_answer: Any,
        points: int,
    ) -> QuizQuestion:
        row = QuizQuestion(
            activity_id=activity_id,
            question=question,
            question_type=question_type,
            options=options,
            correct_answer=correct_answer,
            points=points,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def create_feedback_content(
        self,
        *,
        activity_id: uuid.UUID,
        created_by: uuid.UUID,
        title: str,
        description: str | None,
        questions: list[dict[str, Any]],
    ) -> FeedbackContent:
        content = FeedbackContent(
            activity_id=activity_id,
            created_by=created_by,
            title=title,
            description=description,
            questions=[FeedbackQuestion(**q) for q in questions],
        )
        self._session.add(content)
        await self._session.flush()
        return content

    async def get_feedback_content(self, content_id: uuid.UUID) -> FeedbackContent | None:
        stmt = (
            select(FeedbackContent)
            .where(FeedbackContent.id == content_id)
            .options(selectinload(FeedbackContent.questions))
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()
