"""
academy_api.services.feedback

Draft-then-submit feedback forms (transaction owner).

Responsibilities:
- Save or update a learner's draft, keeping only answers to the form's own questions.
- Replace a draft's answers wholesale.
- Submit a draft once every required question has an answer.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_400_BAD_REQUEST, HTTP_403_FORBIDDEN, HTTP_404_NOT_FOUND

from academy_api.api.responses import ApiError
from academy_api.db.base import utcnow
from academy_api.db.models import (
    FeedbackContent,
    FeedbackSubmission,
    FeedbackSubmissionStatus,
    User,
)
from academy_api.db.repositories.courses import ActivityContentRepo, TemplateRepo
from academy_api.db.repositories.submissions import FeedbackSubmissionRepo
from academy_api.observability.logging import get_logger

log = get_logger(__name__)

AnswerMap = dict[uuid.UUID, dict[str, Any]]


def is_answered(values: dict[str, Any] | None) -> bool:
    if not values:
        return False
    text = values.get("answer_text")
    value = values.get("answer_value")
    return bool(text and str(text).strip()) or value not in (None, "", [], {})


def keep_known_questions(content: FeedbackContent, answers: list[dict[str, Any]]) -> AnswerMap:
    known = {q.id for q in content.questions}
    kept: AnswerMap = {}
    for a in answers:
        question_id = a["feedback_question_id"]
        if question_id not in known:
            continue
        kept[question_id] = {"answer_text": a.get("answer_text"), "answer_value": a.get("answer_value")}
    return kept


class FeedbackService:
    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session
        self._contents = ActivityContentRepo(session)
        self._templates = TemplateRepo(session)
        self._submissions = FeedbackSubmissionRepo(session)

    async def _content(self, content_id: uuid.UUID) -> FeedbackContent:
        content = await self._contents.get_feedback_content(content_id)
        if content is None:
            raise ApiError(HTTP_404_NOT_FOUND, "Feedback content not found")
        return content

    async def get(self, submission_id: uuid.UUID) -> FeedbackSubmission:
        submission = await self._submissions.get(submission_id)
        if submission is None:
            raise ApiError(HTTP_404_NOT_FOUND, "Feedback submission not found")
        return submission

    async def save_draft(
        self, *, user: User, feedback_content_id: uuid.UUID, answers: list[dict[str, Any]]
    ) -> FeedbackSubmission:
        content = await self._content(feedback_content_id)
        incoming = keep_known_questions(content, answers)

        draft = await self._submissions.find_draft(feedback_content_id=content.id, user_id=user.id)
        if draft is None:
            draft = await self._submissions.create_draft(feedback_content_id=content.id, user_id=user.id)
        merged = {
            a.feedback_question_id: {"answer_text": a.answer_text, "answer_value": a.answer_value}
            for a in draft.answers
        }
        merged.update(incoming)
        await self._submissions.replace_answers(draft, merged)
        await self._session.commit()
        return draft

    async def update(
        self, submission: FeedbackSubmission, *, user: User, answers: list[dict[str, Any]]
    ) -> FeedbackSubmission:
        if submission.user_id != user.id:
            raise ApiError(HTTP_403_FORBIDDEN, "You can only update your own feedback")
        if submission.status != FeedbackSubmissionStatus.draft:
            raise ApiError(HTTP_400_BAD_REQUEST, "Only draft submissions can be updated")
        content = await self._content(submission.feedback_content_id)
        await self._submissions.replace_answers(submission, keep_known_questions(content, answers))
        await self._session.commit()
        return submission

    async def submit(self, submission: FeedbackSubmission, *, user: User) -> FeedbackSubmission:
        if submission.user_id != user.id:
            raise ApiError(HTTP_403_FORBIDDEN, "You can only submit your own feedback")
        if submission.status != FeedbackSubmissionStatus.draft:
            raise ApiError(HTTP_400_BAD_REQUEST, "This feedback has already been submitted")

        content = await self._content(submission.feedback_content_id)
        answered = {
            a.feedback_question_id
            for a in submission.answers
            if is_answered({"answer_text": a.answer_text, "answer_value": a.answer_value})
        }
        missing = [
            {"id": q.id, "question_text": q.question_text}
            for q in content.questions
            if q.is_required and q.id not in answered
        ]
        if missing:
            raise ApiError(
                HTTP_400_BAD_REQUEST,
                "Please answer all required questions",
                data={"missing_questions": missing},
            )

        submission.status = FeedbackSubmissionStatus.submitted
        submission.submission_date = utcnow()
        await self._session.commit()
        log.info("feedback_submitted", submission_id=str(submission.id))
        return submission

    async def delete(self, submission: FeedbackSubmission, *, user: User) -> None:
        if submission.user_id != user.id and not user.is_admin:
            content = await self._content(submission.feedback_content_id)
            template = await self._templates.template_for_activity(content.activity_id)
            if template is None or template.created_by != user.id:
                raise ApiError(HTTP_403_FORBIDDEN, "You are not allowed to delete this submission")
        await self._submissions.delete(submission)
        await self._session.commit()
