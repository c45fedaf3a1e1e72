"""
academy_api.api.routers.chat

Course chat messages.

Responsibilities:
- Post and page through a course's discussion messages.
- Provide the course access checks shared by the chat search, archival and
  analytics routers.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import (
    HTTP_201_CREATED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_422_UNPROCESSABLE_ENTITY,
)

from academy_api.api.deps import db_session
from academy_api.api.responses import ApiError, success
from academy_api.api.serializers import chat_message_out
from academy_api.auth.deps import get_current_user
from academy_api.db.base import as_naive_utc
from academy_api.db.models import Course, User
from academy_api.db.repositories.chat import ChatMessageRepo
from academy_api.db.repositories.courses import CourseRepo
from academy_api.db.repositories.enrollments import EnrollmentRepo
from academy_api.observability.logging import get_logger

log = get_logger(__name__)

router = APIRouter(tags=["chat"])


class ChatMessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=5000)
    parent_message_id: uuid.UUID | None = None


async def load_course(session: AsyncSession, course_id: uuid.UUID) -> Course:
    course = await CourseRepo(session).get(course_id)
    if course is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Course not found")
    return course


async def course_for_participant(session: AsyncSession, course_id: uuid.UUID, user: User) -> Course:
    course = await load_course(session, course_id)
    if course.created_by == user.id or user.is_admin:
        return course
    if await EnrollmentRepo(session).find(user_id=user.id, course_id=course_id) is None:
        raise ApiError(HTTP_403_FORBIDDEN, "You are not enrolled in this course")
    return course


async def course_for_instructor(session: AsyncSession, course_id: uuid.UUID, user: User) -> Course:
    course = await load_course(session, course_id)
    if course.created_by != user.id and not user.is_admin:
        raise ApiError(HTTP_403_FORBIDDEN, "Only course instructors can access this resource")
    return course


@router.post("/courses/{course_id}/chat/messages")
async def post_message(
    course_id: uuid.UUID,
    body: ChatMessageCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    course = await course_for_participant(session, course_id, user)
    messages = ChatMessageRepo(session)
    if body.parent_message_id is not None:
        parent = await messages.get(body.parent_message_id)
        if parent is None or parent.course_id != course.id:
            raise ApiError(
                HTTP_422_UNPROCESSABLE_ENTITY,
                "Validation failed",
                errors={"parent_message_id": ["The selected parent message is invalid."]},
            )
    message = await messages.create(
        course_id=course.id,
        environment_id=course.environment_id,
        user_id=user.id,
        content=body.content,
        parent_message_id=body.parent_message_id,
    )
    await session.commit()
    log.info("chat_message_posted", course_id=str(course.id), message_id=str(message.id))
    return success(chat_message_out(message), status_code=HTTP_201_CREATED)


@router.get("/courses/{course_id}/chat/messages")
async def list_messages(
    course_id: uuid.UUID,
    limit: int = Query(default=50, ge=1, le=100),
    before: datetime | None = Query(default=None),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    course = await course_for_participant(session, course_id, user)
    messages = await ChatMessageRepo(session).recent(course.id, limit=limit, before=as_naive_utc(before))
    return success([chat_message_out(m) for m in messages])
