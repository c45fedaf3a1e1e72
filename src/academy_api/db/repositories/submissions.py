"""
academy_api.db.repositories.submissions

Repositories for quiz attempts and feedback form submissions.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from academy_api.db.models import (
    FeedbackAnswer,
    FeedbackSubmission,
    FeedbackSubmissionStatus,
    QuizResponse,
    QuizSubmission,
)


class QuizSubmissionRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def next_attempt_number(self, *, enrollment_id: uuid.UUID, activity_id: uuid.UUID) -> int:
        stmt = select(func.max(QuizSubmission.attempt_number)).where(
            QuizSubmission.enrollment_id == enrollment_id,
            QuizSubmission.activity_id == activity_id,
        )
        current = (await self._session.execute(stmt)).scalar_one_or_none()
        return int(current or 0) + 1

    async def create(
        self,
        *,
        enrollment_id: uuid.UUID,
        activity_id: uuid.UUID,
        user_id: uuid.UUID,
        responses: list[dict[str, Any]],
        now: datetime,
    ) -> QuizSubmission:
        attempt = await self.next_attempt_number(enrollment_id=enrollment_id, activity_id=activity_id)
        rows = [QuizResponse(**r) for r in responses]
        submission = QuizSubmission(
            enrollment_id=enrollment_id,
            activity_id=activity_id,
            user_id=user_id,
            attempt_number=attempt,
            score=sum(r.points_earned for r in rows),
            max_score=sum(r.max_points for r in rows),
            submitted_at=now,
            responses=rows,
        )
        self._session.add(submission)
        await self._session.flush()
        return submission

    async def get(self, submission_id: uuid.UUID) -> QuizSubmission | None:
        return await self._session.get(QuizSubmission, submission_id)

    async def list(
        self,
        *,
        user_id: uuid.UUID | None = None,
        enrollment_id: uuid.UUID | None = None,
        activity_id: uuid.UUID | None = None,
    ) -> list[QuizSubmission]:
        stmt = select(QuizSubmission)
        if user_id is not None:
            stmt = stmt.where(QuizSubmission.user_id == user_id)
        if enrollment_id is not None:
            stmt = stmt.where(QuizSubmission.enrollment_id == enrollment_id)
        if activity_id is not None:
            stmt = stmt.where(QuizSubmission.activity_id == activity_id)
        stmt = stmt.order_by(desc(QuizSubmission.submitted_at), desc(QuizSubmission.attempt_number))
        return list((await self._session.execute(stmt)).scalars().all())


class FeedbackSubmissionRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, submission_id: uuid.UUID) -> FeedbackSubmission | None:
        return await self._session.get(FeedbackSubmission, submission_id)

    async def find_draft(
        self, *, feedback_content_id: uuid.UUID, user_id: uuid.UUID
    ) -> FeedbackSubmission | None:
        stmt = select(FeedbackSubmission).where(
            FeedbackSubmission.feedback_content_id == feedback_content_id,
            FeedbackSubmission.user_id == user_id,
            FeedbackSubmission.status == FeedbackSubmissionStatus.draft,
        )
        return (await self._session.execute(stmt)).scalars().first()

    async def create_draft(
        self, *, feedback_content_id: uuid.UUID, user_id: uuid.UUID
    ) -> FeedbackSubmission:
        submission = FeedbackSubmission(
            feedback_content_id=feedback_content_id,
            user_id=user_id,
            status=FeedbackSubmissionStatus.draft,
            answers=[],
        )
        self._session.add(submission)
        await self._session.flush()
        return submission

    async def replace_answers(
        self, submission: FeedbackSubmission, answers: dict[uuid.UUID, dict[str, Any]]
    ) -> None:
        # `answers` maps question id -> {answer_text, answer_value}; anything absent is dropped.
        existing = {a.feedback_question_id: a for a in submission.answers}
        for question_id, row in list(existing.items()):
            if question_id not in answers:
                submission.answers.remove(row)
        for question_id, values in answers.items():
            row = existing.get(question_id)
            if row is None:
                submission.answers.append(FeedbackAnswer(feedback_question_id=question_id, **values))
            else:
                row.answer_text = values.get("answer_text")
                row.answer_value = values.get("answer_value")
        await self._session.flush()

    async def delete(self, submission: FeedbackSubmission) -> None:
        await self._session.delete(submission)
        await self._session.flush()
