"""
academy_api.api.routers.enrollments

Enrollment endpoints.

Responsibilities:
- List (admins: all, others: own), create, read, update and delete enrollments.
- Per-user and per-course enrollment listings.
- Activity completion upserts, progress reports and admin resets.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED, HTTP_403_FORBIDDEN, HTTP_404_NOT_FOUND

from academy_api.api.deps import PageParams, db_session, page_params
from academy_api.api.responses import ApiError, success
from academy_api.api.serializers import completion_out, enrollment_out
from academy_api.auth.deps import get_current_user, require_admin
from academy_api.db.base import as_naive_utc
from academy_api.db.models import CompletionStatus, Enrollment, EnrollmentStatus, User
from academy_api.db.pagination import paginate
from academy_api.db.repositories.courses import CourseRepo
from academy_api.db.repositories.enrollments import CompletionRepo, EnrollmentRepo
from academy_api.services.enrollments import EnrollmentService

router = APIRouter(tags=["enrollments"])


class EnrollmentCreate(BaseModel):
    course_id: uuid.UUID
    user_id: uuid.UUID | None = None
    expires_at: datetime | None = None


class EnrollmentUpdate(BaseModel):
    status: EnrollmentStatus | None = None
    expires_at: datetime | None = None


class CompletionUpsert(BaseModel):
    status: CompletionStatus
    score: float | None = Field(default=None, ge=0)
    time_spent: int | None = Field(default=None, ge=0)
    attempts: int | None = Field(default=None, ge=0)


async def load_enrollment(session: AsyncSession, enrollment_id: uuid.UUID, user: User) -> Enrollment:
    enrollment = await EnrollmentRepo(session).get(enrollment_id)
    if enrollment is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Enrollment not found")
    if enrollment.user_id != user.id and not user.is_admin:
        raise ApiError(HTTP_403_FORBIDDEN, "You are not allowed to access this enrollment")
    return enrollment


@router.get("/enrollments")
async def list_enrollments(
    course_id: uuid.UUID | None = Query(default=None),
    status: EnrollmentStatus | None = Query(default=None),
    user_id: uuid.UUID | None = Query(default=None),
    sort_by: Literal["created_at", "updated_at", "expires_at"] = Query(default="created_at"),
    sort_direction: Literal["asc", "desc"] = Query(default="desc"),
    paging: PageParams = Depends(page_params),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    stmt = EnrollmentRepo(session).filtered(
        user_id=(user_id if user.is_admin else user.id),
        course_id=course_id,
        status=status,
        sort_by=sort_by,
        sort_direction=sort_direction,
    )
    page = await paginate(session, stmt, page=paging.page, per_page=paging.per_page)
    return success(page.to_dict([enrollment_out(e) for e in page.items]))


@router.post("/enrollments")
async def create_enrollment(
    body: EnrollmentCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    enrollment = await EnrollmentService(session=session).enroll(
        actor=user,
        course_id=body.course_id,
        user_id=body.user_id,
        expires_at=as_naive_utc(body.expires_at),
    )
    return success(
        enrollment_out(enrollment),
        message="Enrollment created successfully",
        status_code=HTTP_201_CREATED,
    )


@router.get("/enrollments/{enrollment_id}")
async def get_enrollment(
    enrollment_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    return success(enrollment_out(await load_enrollment(session, enrollment_id, user)))


@router.put("/enrollments/{enrollment_id}")
async def update_enrollment(
    enrollment_id: uuid.UUID,
    body: EnrollmentUpdate,
    _: User = Depends(require_admin),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    enrollment = await EnrollmentRepo(session).get(enrollment_id)
    if enrollment is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Enrollment not found")
    # A null expiry clears it; a null status is ignored.
    changes = body.model_dump(exclude_unset=True)
    if changes.get("status", EnrollmentStatus.active) is None:
        del changes["status"]
    if "expires_at" in changes:
        changes["expires_at"] = as_naive_utc(changes["expires_at"])
    for field, value in changes.items():
        setattr(enrollment, field, value)
    await session.commit()
    return success(enrollment_out(enrollment), message="Enrollment updated successfully")


@router.delete("/enrollments/{enrollment_id}")
async def delete_enrollment(
    enrollment_id: uuid.UUID,
    _: User = Depends(require_admin),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    enrollments = EnrollmentRepo(session)
    enrollment = await enrollments.get(enrollment_id)
    if enrollment is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Enrollment not found")
    await enrollments.delete(enrollment)
    await session.commit()
    return success(None, message="Enrollment deleted successfully")


@router.get("/my-enrollments")
async def my_enrollments(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    enrollments = await EnrollmentRepo(session).list_for_user(user.id)
    return success([enrollment_out(e) for e in enrollments])


@router.get("/courses/{course_id}/enrollments")
async def course_enrollments(
    course_id: uuid.UUID,
    paging: PageParams = Depends(page_params),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    course = await CourseRepo(session).get(course_id)
    if course is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Course not found")
    if course.created_by != user.id and not user.is_admin:
        raise ApiError(HTTP_403_FORBIDDEN, "You are not allowed to view enrollments for this course")
    stmt = EnrollmentRepo(session).filtered(course_id=course.id)
    page = await paginate(session, stmt, page=paging.page, per_page=paging.per_page)
    return success(page.to_dict([enrollment_out(e) for e in page.items]))


@router.get("/enrollments/{enrollment_id}/activity-completions")
async def list_completions(
    enrollment_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    enrollment = await load_enrollment(session, enrollment_id, user)
    completions = await CompletionRepo(session).list_for_enrollment(enrollment.id)
    return success([completion_out(c) for c in completions])


@router.put("/enrollments/{enrollment_id}/activities/{activity_id}/completion")
async def upsert_completion(
    enrollment_id: uuid.UUID,
    activity_id: uuid.UUID,
    body: CompletionUpsert,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    enrollment = await load_enrollment(session, enrollment_id, user)
    completion = await EnrollmentService(session=session).record_completion(
        enrollment,
        activity_id=activity_id,
        status=body.status,
        score=body.score,
        time_spent=body.time_spent,
        attempts=body.attempts,
    )
    return success(
        {"completion": completion_out(completion), "enrollment": enrollment_out(enrollment)},
        message="Activity completion updated successfully",
    )


@router.get("/enrollments/{enrollment_id}/progress")
async def enrollment_progress(
    enrollment_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    enrollment = await load_enrollment(session, enrollment_id, user)
    progress = await EnrollmentService(session=session).progress(enrollment)
    return success({"enrollment_id": enrollment.id, "status": enrollment.status, **progress.as_dict()})


@router.post("/enrollments/{enrollment_id}/activities/{activity_id}/reset")
async def reset_activity(
    enrollment_id: uuid.UUID,
    activity_id: uuid.UUID,
    _: User = Depends(require_admin),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    enrollment = await EnrollmentRepo(session).get(enrollment_id)
    if enrollment is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Enrollment not found")
    removed = await EnrollmentService(session=session).reset_activity(enrollment, activity_id)
    return success(
        {"removed": removed, "enrollment": enrollment_out(enrollment)},
        message="Activity progress reset successfully",
    )


@router.post("/enrollments/{enrollment_id}/reset")
async def reset_enrollment(
    enrollment_id: uuid.UUID,
    _: User = Depends(require_admin),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    enrollment = await EnrollmentRepo(session).get(enrollment_id)
    if enrollment is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Enrollment not found")
    removed = await EnrollmentService(session=session).reset_all(enrollment)
    return success(
        {"removed": removed, "enrollment": enrollment_out(enrollment)},
        message="Enrollment progress reset successfully",
    )
