"""
academy_api.services.enrollments

Enrollment rules and course progress.

Responsibilities:
- Enforce the enrollment checks (permissions, publication, duplicates, seat limits).
- Record activity completions and promote enrollments to `completed`.
- Compute progress summaries (activity and point based).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
)

from academy_api.api.responses import ApiError
from academy_api.db.base import utcnow
from academy_api.db.models import (
    Activity,
    ActivityCompletion,
    CompletionStatus,
    Course,
    Enrollment,
    EnrollmentStatus,
    User,
)
from academy_api.db.repositories.courses import CourseRepo, TemplateRepo
from academy_api.db.repositories.enrollments import CompletionRepo, EnrollmentRepo
from academy_api.observability.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Progress:
    total_activities: int
    completed_activities: int
    total_points: int
    earned_points: int

    @property
    def overall_progress(self) -> float:
        if self.total_activities == 0:
            return 0.0
        return round(self.completed_activities / self.total_activities * 100, 2)

    @property
    def points_progress(self) -> float:
        if self.total_points == 0:
            return 0.0
        return round(self.earned_points / self.total_points * 100, 2)

    def as_dict(self) -> dict[str, float | int]:
        return {
            "total_activities": self.total_activities,
            "completed_activities": self.completed_activities,
            "overall_progress": self.overall_progress,
            "total_points": self.total_points,
            "earned_points": self.earned_points,
            "points_progress": self.points_progress,
        }


class EnrollmentService:
    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session
        self._courses = CourseRepo(session)
        self._templates = TemplateRepo(session)
        self._enrollments = EnrollmentRepo(session)
        self._completions = CompletionRepo(session)

    async def enroll(
        self,
        *,
        actor: User,
        course_id: uuid.UUID,
        user_id: uuid.UUID | None = None,
        expires_at: datetime | None = None,
    ) -> Enrollment:
        target_user_id = user_id or actor.id
        if target_user_id != actor.id and not actor.is_admin:
            raise ApiError(HTTP_403_FORBIDDEN, "You can only enroll yourself in courses")

        course = await self._courses.get(course_id)
        if course is None:
            raise ApiError(HTTP_404_NOT_FOUND, "Course not found")
        if not course.is_published and not actor.is_admin:
            raise ApiError(HTTP_400_BAD_REQUEST, "Cannot enroll in an unpublished course")

        if await self._enrollments.find(user_id=target_user_id, course_id=course_id) is not None:
            raise ApiError(HTTP_409_CONFLICT, "User is already enrolled in this course")

        if course.enrollment_limit is not None:
            if await self._enrollments.seats_taken(course_id) >= course.enrollment_limit:
                raise ApiError(HTTP_400_BAD_REQUEST, "Course has reached its enrollment limit")

        enrollment = await self._enrollments.create(
            user_id=target_user_id,
            course_id=course.id,
            environment_id=course.environment_id,
            expires_at=expires_at,
        )
        await self._session.commit()
        log.info("enrollment_created", enrollment_id=str(enrollment.id), course_id=str(course.id))
        return enrollment

    async def course_activities(self, course: Course | None) -> list[Activity]:
        if course is None or course.template_id is None:
            return []
        return await self._templates.activities_for_template(course.template_id)

    async def record_completion(
        self,
        enrollment: Enrollment,
        *,
        activity_id: uuid.UUID,
        status: CompletionStatus,
        score: float | None = None,
        time_spent: int | None = None,
        attempts: int | None = None,
    ) -> ActivityCompletion:
        activity = await self._templates.get_activity(activity_id)
        if activity is None:
            raise ApiError(HTTP_404_NOT_FOUND, "Activity not found")

        now = utcnow()
        completion = await self._completions.upsert(
            enrollment_id=enrollment.id,
            activity_id=activity_id,
            status=status,
            now=now,
            score=score,
            time_spent=time_spent,
            attempts=attempts,
        )
        enrollment.last_activity_at = now
        await self.refresh(enrollment)
        await self._session.commit()
        return completion

    async def progress(self, enrollment: Enrollment) -> Progress:
        course = await self._courses.get(enrollment.course_id)
        activities = await self.course_activities(course)
        done = await self._completions.completed_activity_ids(enrollment.id)
        return Progress(
            total_activities=len(activities),
            completed_activities=sum(1 for a in activities if a.id in done),
            total_points=sum(a.points for a in activities),
            earned_points=sum(a.points for a in activities if a.id in done),
        )

    async def refresh(self, enrollment: Enrollment) -> None:
        # Recompute progress and promote to `completed` once every required activity is done.
        course = await self._courses.get(enrollment.course_id)
        activities = await self.course_activities(course)
        done = await self._completions.completed_activity_ids(enrollment.id)

        progress = await self.progress(enrollment)
        enrollment.progress_percentage = progress.overall_progress

        required = [a for a in activities if a.is_required]
        if (
            enrollment.status == EnrollmentStatus.active
            and required
            and all(a.id in done for a in required)
        ):
            enrollment.status = EnrollmentStatus.completed
            enrollment.completed_at = utcnow()
            log.info("enrollment_completed", enrollment_id=str(enrollment.id))
        await self._session.flush()

    async def reset_activity(self, enrollment: Enrollment, activity_id: uuid.UUID) -> int:
        removed = await self._completions.delete_one(
            enrollment_id=enrollment.id, activity_id=activity_id
        )
        await self._reactivate(enrollment)
        return removed

    async def reset_all(self, enrollment: Enrollment) -> int:
        removed = await self._completions.delete_all(enrollment.id)
        await self._reactivate(enrollment)
        return removed

    async def _reactivate(self, enrollment: Enrollment) -> None:
        enrollment.status = EnrollmentStatus.active
        enrollment.completed_at = None
        await self._session.flush()
        enrollment.progress_percentage = (await self.progress(enrollment)).overall_progress
        await self._session.commit()
