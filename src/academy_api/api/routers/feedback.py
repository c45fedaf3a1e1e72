"""
academy_api.api.routers.feedback

Learner feedback submissions for feedback activities.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED, HTTP_403_FORBIDDEN

from academy_api.api.deps import db_session
from academy_api.api.responses import ApiError, success
from academy_api.api.serializers import feedback_submission_out
from academy_api.auth.deps import get_current_user
from academy_api.db.models import User
from academy_api.services.feedback import FeedbackService

router = APIRouter(prefix="/feedback-submissions", tags=["feedback"])


class FeedbackAnswerIn(BaseModel):
    feedback_question_id: uuid.UUID
    answer_text: str | None = None
    answer_value: Any = None


class FeedbackDraft(BaseModel):
    feedback_content_id: uuid.UUID
    answers: list[FeedbackAnswerIn] = Field(default_factory=list)


class FeedbackAnswersUpdate(BaseModel):
    answers: list[FeedbackAnswerIn] = Field(default_factory=list)


@router.post("")
async def save_draft(
    body: FeedbackDraft,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    submission = await FeedbackService(session=session).save_draft(
        user=user,
        feedback_content_id=body.feedback_content_id,
        answers=[a.model_dump() for a in body.answers],
    )
    return success(
        feedback_submission_out(submission),
        message="Feedback draft saved successfully",
        status_code=HTTP_201_CREATED,
    )


@router.get("/{submission_id}")
async def get_submission(
    submission_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    submission = await FeedbackService(session=session).get(submission_id)
    if submission.user_id != user.id and not user.is_admin:
        raise ApiError(HTTP_403_FORBIDDEN, "You are not allowed to view this submission")
    return success(feedback_submission_out(submission))


@router.put("/{submission_id}")
async def update_submission(
    submission_id: uuid.UUID,
    body: FeedbackAnswersUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    svc = FeedbackService(session=session)
    submission = await svc.update(
        await svc.get(submission_id), user=user, answers=[a.model_dump() for a in body.answers]
    )
    return success(feedback_submission_out(submission), message="Feedback updated successfully")


@router.post("/{submission_id}/submit")
async def submit_submission(
    submission_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    svc = FeedbackService(session=session)
    submission = await svc.submit(await svc.get(submission_id), user=user)
    return success(feedback_submission_out(submission), message="Feedback submitted successfully")


@router.delete("/{submission_id}")
async def delete_submission(
    submission_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    svc = FeedbackService(session=session)
    await svc.delete(await svc.get(submission_id), user=user)
    return success(None, message="Feedback submission deleted successfully")
