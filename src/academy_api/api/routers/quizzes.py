"""
academy_api.api.routers.quizzes

Quiz submissions: numbered attempts with per-question responses.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED, HTTP_403_FORBIDDEN, HTTP_404_NOT_FOUND

from academy_api.api.deps import db_session
from academy_api.api.responses import ApiError, success
from academy_api.api.routers.enrollments import load_enrollment
from academy_api.api.serializers import quiz_submission_out
from academy_api.auth.deps import get_current_user
from academy_api.db.base import utcnow
from academy_api.db.models import User
from academy_api.db.repositories.courses import TemplateRepo
from academy_api.db.repositories.enrollments import EnrollmentRepo
from academy_api.db.repositories.submissions import QuizSubmissionRepo
from academy_api.observability.logging import get_logger

log = get_logger(__name__)

router = APIRouter(tags=["quizzes"])


class QuizResponseIn(BaseModel):
    quiz_question_id: uuid.UUID
    user_response: Any = None
    is_correct: bool = False
    points_earned: float = Field(default=0, ge=0)
    max_points: float = Field(default=0, ge=0)


class QuizSubmissionCreate(BaseModel):
    enrollment_id: uuid.UUID
    activity_id: uuid.UUID
    responses: list[QuizResponseIn] = Field(min_length=1)


@router.post("/quiz-submissions")
async def submit_quiz(
    body: QuizSubmissionCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    enrollment = await EnrollmentRepo(session).get(body.enrollment_id)
    if enrollment is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Enrollment not found")
    if enrollment.user_id != user.id:
        raise ApiError(HTTP_403_FORBIDDEN, "You can only submit quizzes for your own enrollments")
    if await TemplateRepo(session).get_activity(body.activity_id) is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Activity not found")

    submission = await QuizSubmissionRepo(session).create(
        enrollment_id=enrollment.id,
        activity_id=body.activity_id,
        user_id=user.id,
        responses=[r.model_dump() for r in body.responses],
        now=utcnow(),
    )
    await session.commit()
    log.info(
        "quiz_submitted",
        submission_id=str(submission.id),
        attempt=submission.attempt_number,
        score=submission.score,
    )
    return success(
        quiz_submission_out(submission),
        message="Quiz submitted successfully",
        status_code=HTTP_201_CREATED,
    )


@router.get("/quiz-submissions")
async def list_quiz_submissions(
    activity_id: uuid.UUID | None = Query(default=None),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    submissions = await QuizSubmissionRepo(session).list(
        user_id=None if user.is_admin else user.id, activity_id=activity_id
    )
    return success([quiz_submission_out(s) for s in submissions])


@router.get("/quiz-submissions/{submission_id}")
async def get_quiz_submission(
    submission_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    submission = await QuizSubmissionRepo(session).get(submission_id)
    if submission is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Quiz submission not found")
    if submission.user_id != user.id and not user.is_admin:
        raise ApiError(HTTP_403_FORBIDDEN, "You are not allowed to view this submission")
    return success(quiz_submission_out(submission))


@router.get("/enrollments/{enrollment_id}/quiz-submissions")
async def enrollment_quiz_submissions(
    enrollment_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    enrollment = await load_enrollment(session, enrollment_id, user)
    submissions = await QuizSubmissionRepo(session).list(enrollment_id=enrollment.id)
    return success([quiz_submission_out(s) for s in submissions])
