"""
academy_api.services.certificates

Certificate generation, issuance and verification.

Responsibilities:
- Compute expiry dates from the content's expiry period.
- Render certificates through the external certificate service.
- Persist generation metadata and issued certificates.
"""

from __future__ import annotations

import calendar
import secrets
import string
import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import (
    HTTP_404_NOT_FOUND,
    HTTP_422_UNPROCESSABLE_ENTITY,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from academy_api.api.responses import ApiError
from academy_api.clients.certificate_service import CertificateServiceClient
from academy_api.db.base import utcnow
from academy_api.db.models import CertificateContent, IssuedCertificate, User
from academy_api.db.repositories.certificates import CertificateRepo
from academy_api.db.repositories.courses import CourseRepo, TemplateRepo
from academy_api.db.repositories.enrollments import EnrollmentRepo
from academy_api.observability.logging import get_logger

log = get_logger(__name__)

DATE_FORMAT = "%B %d, %Y"


def generate_access_code() -> str:
    alphabet = string.ascii_uppercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(8))


def add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def expiry_date(content: CertificateContent, issued_at: datetime) -> datetime | None:
    if not content.expiry_period or not content.expiry_period_unit:
        return None
    period = content.expiry_period
    unit = content.expiry_period_unit
    if unit == "days":
        return issued_at + timedelta(days=period)
    if unit == "months":
        return add_months(issued_at, period)
    if unit == "years":
        return add_months(issued_at, period * 12)
    return None


class CertificateService:
    def __init__(self, *, session: AsyncSession, client: CertificateServiceClient) -> None:
        self._session = session
        self._client = client
        self._certificates = CertificateRepo(session)
        self._templates = TemplateRepo(session)
        self._courses = CourseRepo(session)
        self._enrollments = EnrollmentRepo(session)

    async def _render(
        self,
        content: CertificateContent,
        *,
        full_name: str,
        course_title: str,
        certificate_date: str | None,
        additional_data: dict[str, Any] | None = None,
    ) -> tuple[dict[str, Any], str, datetime | None]:
        now = utcnow()
        access_code = generate_access_code()
        expires = expiry_date(content, now)
        data: dict[str, Any] = {
            **(additional_data or {}),
            "fullName": full_name,
            "courseTitle": course_title,
            "certificateDate": certificate_date or now.strftime(DATE_FORMAT),
            "expiryDate": expires.strftime(DATE_FORMAT) if expires else None,
            "accessCode": access_code,
        }
        try:
            result = await self._client.generate(template_name=content.template_name, data=data)
        except Exception as e:
            log.warning(
                "certificate_generation_failed",
                certificate_content_id=str(content.id),
                error=str(e),
            )
            raise ApiError(HTTP_500_INTERNAL_SERVER_ERROR, "Failed to generate certificate") from e
        return result, access_code, expires

    async def generate(
        self,
        *,
        activity_id: uuid.UUID,
        content_id: uuid.UUID,
        full_name: str,
        certificate_date: str | None = None,
        additional_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        content = await self._certificates.content_for_activity(activity_id, content_id)
        if content is None:
            raise ApiError(HTTP_404_NOT_FOUND, "Certificate content not found")

        template = await self._templates.template_for_activity(activity_id)
        result, access_code, _ = await self._render(
            content,
            full_name=full_name,
            course_title=template.title if template is not None else "Certificate",
            certificate_date=certificate_date,
            additional_data=additional_data,
        )

        content.meta = {
            **(content.meta or {}),
            "certificate_url": result["certificate_url"],
            "preview_url": result.get("preview_url"),
            "access_code": access_code,
            "generated_at": utcnow().isoformat(),
        }
        await self._session.commit()
        log.info("certificate_generated", certificate_content_id=str(content.id))
        return {
            "fileUrl": result["certificate_url"],
            "previewUrl": result.get("preview_url"),
            "accessCode": access_code,
        }

    async def issue(
        self,
        *,
        content_id: uuid.UUID,
        user: User,
        full_name: str | None = None,
        certificate_date: str | None = None,
    ) -> IssuedCertificate:
        content = await self._certificates.get_content(content_id)
        if content is None:
            raise ApiError(HTTP_404_NOT_FOUND, "Certificate content not found")

        template = await self._templates.template_for_activity(content.activity_id)
        courses = await self._courses.for_template(template.id) if template is not None else []
        enrollment = await self._enrollments.is_enrolled_in_any(
            user_id=user.id, course_ids=[c.id for c in courses]
        )
        if enrollment is None:
            raise ApiError(
                HTTP_422_UNPROCESSABLE_ENTITY,
                "You must be enrolled in a course that includes this certificate",
            )
        course = next(c for c in courses if c.id == enrollment.course_id)

        result, access_code, expires = await self._render(
            content,
            full_name=full_name or user.name,
            course_title=course.title,
            certificate_date=certificate_date,
        )
        issued = await self._certificates.issue(
            certificate_content_id=content.id,
            user_id=user.id,
            course_id=course.id,
            certificate_number=access_code,
            status="issued",
            file_path=result["certificate_url"],
            issued_date=utcnow(),
            expiry_date=expires,
            custom_fields={
                "certificate_url": result["certificate_url"],
                "preview_url": result.get("preview_url"),
                "recipient_name": full_name or user.name,
                "course_title": course.title,
            },
        )
        await self._session.commit()
        log.info("certificate_issued", issued_certificate_id=str(issued.id), user_id=str(user.id))
        return issued

    async def verify(self, access_code: str) -> dict[str, Any]:
        try:
            return await self._client.verify(access_code=access_code)
        except Exception as e:
            log.warning("certificate_verification_failed", error=str(e))
            raise ApiError(HTTP_404_NOT_FOUND, "Certificate not found or invalid") from e
