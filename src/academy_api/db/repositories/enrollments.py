"""
academy_api.db.repositories.enrollments

Repositories for enrollments and per-activity completions.

Responsibilities:
- Create, look up and filter enrollments.
- Count seats taken in a course.
- Upsert and reset activity completions.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Select, asc, delete, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from academy_api.db.models import (
    ActivityCompletion,
    CompletionStatus,
    Enrollment,
    EnrollmentStatus,
)

ENROLLMENT_SORT_COLUMNS = {
    "created_at": Enrollment.created_at,
    "updated_at": Enrollment.updated_at,
    "expires_at": Enrollment.expires_at,
}

SEAT_TAKING_STATUSES = (EnrollmentStatus.active, EnrollmentStatus.completed)


class EnrollmentRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        user_id: uuid.UUID,
        course_id: uuid.UUID,
        environment_id: uuid.UUID,
        expires_at: datetime | None = None,
    ) -> Enrollment:
        enrollment = Enrollment(
            user_id=user_id,
            course_id=course_id,
            environment_id=environment_id,
            status=EnrollmentStatus.active,
            expires_at=expires_at,
        )
        self._session.add(enrollment)
        await self._session.flush()
        return enrollment

    async def get(self, enrollment_id: uuid.UUID) -> Enrollment | None:
        return await self._session.get(Enrollment, enrollment_id)

    async def find(self, *, user_id: uuid.UUID, course_id: uuid.UUID) -> Enrollment | None:
        stmt = select(Enrollment).where(
            Enrollment.user_id == user_id, Enrollment.course_id == course_id
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def seats_taken(self, course_id: uuid.UUID) -> int:
        stmt = select(func.count(Enrollment.id)).where(
            Enrollment.course_id == course_id,
            Enrollment.status.in_(SEAT_TAKING_STATUSES),
        )
        return int((await self._session.execute(stmt)).scalar_one())

    def filtered(
        self,
        *,
        user_id: uuid.UUID | None = None,
        course_id: uuid.UUID | None = None,
        status: EnrollmentStatus | None = None,
        sort_by: str = "created_at",
        sort_direction: str = "desc",
    ) -> Select:
        stmt = select(Enrollment)
        if user_id is not None:
            stmt = stmt.where(Enrollment.user_id == user_id)
        if course_id is not None:
            stmt = stmt.where(Enrollment.course_id == course_id)
        if status is not None:
            stmt = stmt.where(Enrollment.status == status)
        column = ENROLLMENT_SORT_COLUMNS.get(sort_by, Enrollment.created_at)
        return stmt.order_by(asc(column) if sort_direction == "asc" else desc(column))

    async def list_for_user(self, user_id: uuid.UUID) -> list[Enrollment]:
        stmt = self.filtered(user_id=user_id)
        return list((await self._session.execute(stmt)).scalars().all())

    async def users_for_course(self, course_id: uuid.UUID) -> list[uuid.UUID]:
        stmt = select(Enrollment.user_id).where(Enrollment.course_id == course_id)
        return list((await self._session.execute(stmt)).scalars().all())

    async def is_enrolled_in_any(self, *, user_id: uuid.UUID, course_ids: list[uuid.UUID]) -> Enrollment | None:
        if not course_ids:
            return None
        stmt = (
            select(Enrollment)
            .where(Enrollment.user_id == user_id, Enrollment.course_id.in_(course_ids))
            .limit(1)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def delete(self, enrollment: Enrollment) -> None:
        await self._session.execute(
            delete(ActivityCompletion).where(ActivityCompletion.enrollment_id == enrollment.id)
        )
        await self._session.delete(enrollment)
        await self._session.flush()


class CompletionRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_for_enrollment(self, enrollment_id: uuid.UUID) -> list[ActivityCompletion]:
        stmt = (
            select(ActivityCompletion)
            .where(ActivityCompletion.enrollment_id == enrollment_id)
            .order_by(ActivityCompletion.started_at)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def get(
        self, *, enrollment_id: uuid.UUID, activity_id: uuid.UUID
    ) -> ActivityCompletion | None:
        stmt = select(ActivityCompletion).where(
            ActivityCompletion.enrollment_id == enrollment_id,
            ActivityCompletion.activity_id == activity_id,
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def upsert(
        self,
        *,
        enrollment_id: uuid.UUID,
        activity_id: uuid.UUID,
        status: CompletionStatus,
        now: datetime,
        score: float | None = None,
        time_spent: int | None = None,
        attempts: int | None = None,
    ) -> ActivityCompletion:
        completion = await self.get(enrollment_id=enrollment_id, activity_id=activity_id)
        if completion is None:
            completion = ActivityCompletion(
                enrollment_id=enrollment_id,
                activity_id=activity_id,
                status=status,
                started_at=now,
                time_spent=0,
                attempts=0,
            )
            self._session.add(completion)
        completion.status = status
        if score is not None:
            completion.score = score
        if time_spent is not None:
            completion.time_spent = time_spent
        if attempts is not None:
            completion.attempts = attempts
        if status == CompletionStatus.completed and completion.completed_at is None:
            completion.completed_at = now
        elif status != CompletionStatus.completed:
            completion.completed_at = None
        await self._session.flush()
        return completion

    async def completed_activity_ids(self, enrollment_id: uuid.UUID) -> set[uuid.UUID]:
        stmt = select(ActivityCompletion.activity_id).where(
            ActivityCompletion.enrollment_id == enrollment_id,
            ActivityCompletion.status == CompletionStatus.completed,
        )
        return set((await self._session.execute(stmt)).scalars().all())

    async def delete_one(self, *, enrollment_id: uuid.UUID, activity_id: uuid.UUID) -> int:
        result = await self._session.execute(
            delete(ActivityCompletion).where(
                ActivityCompletion.enrollment_id == enrollment_id,
                ActivityCompletion.activity_id == activity_id,
            )
        )
        return result.rowcount or 0

    async def delete_all(self, enrollment_id: uuid.UUID) -> int:
        result = await self._session.execute(
            delete(ActivityCompletion).where(ActivityCompletion.enrollment_id == enrollment_id)
        )
        return result.rowcount or 0
