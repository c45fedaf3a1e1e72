"""
academy_api.api.routers.courses

Courses and the course-authoring hierarchy.

Responsibilities:
- Environment-scoped course CRUD.
- Templates, blocks and activities (template owner only for writes).
- Typed activity content: quiz questions and feedback forms.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED, HTTP_403_FORBIDDEN, HTTP_404_NOT_FOUND

from academy_api.api.deps import current_environment, db_session
from academy_api.api.responses import ApiError, success
from academy_api.api.serializers import (
    activity_out,
    block_out,
    course_out,
    feedback_content_out,
    quiz_question_out,
    template_out,
)
from academy_api.auth.deps import get_current_user
from academy_api.db.models import (
    ActivityType,
    Course,
    CourseStatus,
    Environment,
    FeedbackQuestionType,
    Template,
    User,
)
from academy_api.db.repositories.courses import ActivityContentRepo, CourseRepo, TemplateRepo

router = APIRouter(tags=["courses"])


class CourseCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    status: CourseStatus = CourseStatus.draft
    enrollment_limit: int | None = Field(default=None, ge=1)
    template_id: uuid.UUID | None = None


class CourseUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    status: CourseStatus | None = None
    enrollment_limit: int | None = Field(default=None, ge=1)
    template_id: uuid.UUID | None = None


class TemplateCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None


class BlockCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    order: int = Field(default=0, ge=0)


class ActivityCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    activity_type: ActivityType
    is_required: bool = True
    points: int = Field(default=0, ge=0)
    order: int = Field(default=0, ge=0)


class QuizQuestionCreate(BaseModel):
    question: str = Field(min_length=1)
    question_type: str = Field(default="multiple_choice", max_length=32)
    options: list[Any] = Field(default_factory=list)
    correct_answer: Any = None
    points: int = Field(default=1, ge=0)


class FeedbackQuestionIn(BaseModel):
    question_text: str = Field(min_length=1)
    question_type: FeedbackQuestionType
    is_required: bool = False
    options: list[Any] = Field(default_factory=list)
    order: int = Field(default=0, ge=0)


class FeedbackContentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    questions: list[FeedbackQuestionIn] = Field(default_factory=list)


async def _course_in_environment(session: AsyncSession, course_id: uuid.UUID, environment: Environment) -> Course:
    course = await CourseRepo(session).get(course_id)
    if course is None or course.environment_id != environment.id:
        raise ApiError(HTTP_404_NOT_FOUND, "Course not found")
    return course


def _require_template_owner(template: Template | None, user: User) -> Template:
    if template is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Template not found")
    if template.created_by != user.id and not user.is_admin:
        raise ApiError(HTTP_403_FORBIDDEN, "Only the template owner can modify this template")
    return template


@router.post("/courses")
async def create_course(
    body: CourseCreate,
    environment: Environment = Depends(current_environment),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    course = await CourseRepo(session).create(
        environment_id=environment.id, created_by=user.id, **body.model_dump()
    )
    await session.commit()
    return success(course_out(course), message="Course created successfully", status_code=HTTP_201_CREATED)


@router.get("/courses")
async def list_courses(
    status: CourseStatus | None = Query(default=None),
    environment: Environment = Depends(current_environment),
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    courses = await CourseRepo(session).list_for_environment(environment.id, status=status)
    return success([course_out(c) for c in courses])


@router.get("/courses/{course_id}")
async def get_course(
    course_id: uuid.UUID,
    environment: Environment = Depends(current_environment),
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    return success(course_out(await _course_in_environment(session, course_id, environment)))


@router.put("/courses/{course_id}")
async def update_course(
    course_id: uuid.UUID,
    body: CourseUpdate,
    environment: Environment = Depends(current_environment),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    course = await _course_in_environment(session, course_id, environment)
    if course.created_by != user.id and not user.is_admin:
        raise ApiError(HTTP_403_FORBIDDEN, "You are not allowed to update this course")
    for field, value in body.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(course, field, value)
    await session.commit()
    return success(course_out(course), message="Course updated successfully")


@router.post("/templates")
async def create_template(
    body: TemplateCreate,
    environment: Environment = Depends(current_environment),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    template = await TemplateRepo(session).create(
        environment_id=environment.id, created_by=user.id, title=body.title, description=body.description
    )
    await session.commit()
    return success(template_out(template), message="Template created successfully", status_code=HTTP_201_CREATED)


@router.get("/templates/{template_id}")
async def get_template(
    template_id: uuid.UUID,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    template = await TemplateRepo(session).get_tree(template_id)
    if template is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Template not found")
    return success(template_out(template, with_blocks=True))


@router.post("/templates/{template_id}/blocks")
async def create_block(
    template_id: uuid.UUID,
    body: BlockCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    templates = TemplateRepo(session)
    _require_template_owner(await templates.get(template_id), user)
    block = await templates.add_block(template_id=template_id, title=body.title, position=body.order)
    await session.commit()
    return success(block_out(block), message="Block created successfully", status_code=HTTP_201_CREATED)


@router.post("/blocks/{block_id}/activities")
async def create_activity(
    block_id: uuid.UUID,
    body: ActivityCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    templates = TemplateRepo(session)
    block = await templates.get_block(block_id)
    if block is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Block not found")
    _require_template_owner(await templates.get(block.template_id), user)
    activity = await templates.add_activity(
        block_id=block.id,
        title=body.title,
        activity_type=body.activity_type,
        is_required=body.is_required,
        points=body.points,
        position=body.order,
    )
    await session.commit()
    return success(activity_out(activity), message="Activity created successfully", status_code=HTTP_201_CREATED)


@router.post("/activities/{activity_id}/quiz-questions")
async def create_quiz_question(
    activity_id: uuid.UUID,
    body: QuizQuestionCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    templates = TemplateRepo(session)
    if await templates.get_activity(activity_id) is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Activity not found")
    _require_template_owner(await templates.template_for_activity(activity_id), user)
    question = await ActivityContentRepo(session).add_quiz_question(activity_id=activity_id, **body.model_dump())
    await session.commit()
    return success(quiz_question_out(question), message="Question created successfully", status_code=HTTP_201_CREATED)


@router.post("/activities/{activity_id}/feedback-content")
async def create_feedback_content(
    activity_id: uuid.UUID,
    body: FeedbackContentCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    templates = TemplateRepo(session)
    if await templates.get_activity(activity_id) is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Activity not found")
    _require_template_owner(await templates.template_for_activity(activity_id), user)

    questions = [
        {
            "question_text": q.question_text,
            "question_type": q.question_type,
            "is_required": q.is_required,
            "options": q.options,
            "position": q.order,
        }
        for q in body.questions
    ]
    content = await ActivityContentRepo(session).create_feedback_content(
        activity_id=activity_id,
        created_by=user.id,
        title=body.title,
        description=body.description,
        questions=questions,
    )
    await session.commit()
    return success(
        feedback_content_out(content),
        message="Feedback content created successfully",
        status_code=HTTP_201_CREATED,
    )
