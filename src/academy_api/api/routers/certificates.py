"""
academy_api.api.routers.certificates

Certificate content authoring, generation, issuance and verification.

Responsibilities:
- CRUD for the certificate configuration attached to a certificate activity.
- Render certificates via the external certificate service.
- Issue certificates to enrolled learners and verify access codes.
"""

from __future__ import annotations

import uuid
from typing import Any, Literal

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import (
    HTTP_201_CREATED,
    HTTP_400_BAD_REQUEST,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
)

from academy_api.api.deps import db_session, http_client, settings_dep
from academy_api.api.responses import ApiError, success
from academy_api.api.serializers import certificate_content_out, issued_certificate_out
from academy_api.auth.deps import get_current_user
from academy_api.clients.certificate_service import CertificateServiceClient
from academy_api.db.models import (
    Activity,
    ActivityType,
    CertificateContent,
    CertificateType,
    TemplateDesign,
    User,
)
from academy_api.db.repositories.certificates import CertificateRepo
from academy_api.db.repositories.courses import TemplateRepo
from academy_api.services.certificates import CertificateService
from academy_api.settings import Settings

router = APIRouter(tags=["certificates"])


class CompletionCriteria(BaseModel):
    type: Literal["all_activities", "percentage", "specific_activities"] = "all_activities"
    value: int | None = Field(default=None, ge=1, le=100)
    activities: list[uuid.UUID] = Field(default_factory=list)


class CertificateContentFields(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    certificate_type: CertificateType | None = None
    template_design: TemplateDesign | None = None
    template_name: str | None = Field(default=None, min_length=1, max_length=255)
    background_url: str | None = Field(default=None, max_length=1024)
    logo_url: str | None = Field(default=None, max_length=1024)
    signature_url: str | None = Field(default=None, max_length=1024)
    signatory_name: str | None = Field(default=None, max_length=255)
    signatory_title: str | None = Field(default=None, max_length=255)
    signatory_organization: str | None = Field(default=None, max_length=255)
    custom_fields: list[dict[str, Any]] | None = None
    completion_criteria: CompletionCriteria | None = None
    expiry_period: int | None = Field(default=None, ge=1)
    expiry_period_unit: Literal["days", "months", "years"] | None = None
    allow_download: bool | None = None
    download_formats: list[Literal["pdf", "jpg", "png"]] | None = None
    allow_sharing: bool | None = None
    sharing_platforms: list[Literal["linkedin", "facebook", "twitter", "email"]] | None = None
    verification_enabled: bool | None = None
    verification_method: Literal["qr", "link", "code"] | None = None


class CertificateContentCreate(CertificateContentFields):
    title: str = Field(min_length=1, max_length=255)
    certificate_type: CertificateType


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    full_name: str = Field(alias="fullName", min_length=1, max_length=100)
    certificate_date: str | None = Field(default=None, alias="certificateDate")
    additional_data: dict[str, Any] | None = Field(default=None, alias="additionalData")


class IssueRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    full_name: str | None = Field(default=None, alias="fullName", max_length=100)
    certificate_date: str | None = Field(default=None, alias="certificateDate")


class VerifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_code: str = Field(alias="accessCode", min_length=1, max_length=64)


def certificate_service(
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
    http: httpx.AsyncClient = Depends(http_client),
) -> CertificateService:
    return CertificateService(
        session=session, client=CertificateServiceClient(settings=settings, http=http)
    )


async def _owned_activity(session: AsyncSession, activity_id: uuid.UUID, user: User) -> Activity:
    templates = TemplateRepo(session)
    activity = await templates.get_activity(activity_id)
    if activity is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Activity not found")
    template = await templates.template_for_activity(activity_id)
    if template is None or (template.created_by != user.id and not user.is_admin):
        raise ApiError(HTTP_403_FORBIDDEN, "You do not have permission to manage this certificate")
    return activity


async def _content(session: AsyncSession, activity_id: uuid.UUID, content_id: uuid.UUID) -> CertificateContent:
    content = await CertificateRepo(session).get_content(content_id)
    if content is None or content.activity_id != activity_id:
        raise ApiError(HTTP_404_NOT_FOUND, "Certificate content not found")
    return content


def _content_values(body: CertificateContentFields) -> dict[str, Any]:
    values = {
        field: value
        for field, value in body.model_dump(
            exclude_unset=True, exclude={"completion_criteria"}, mode="json"
        ).items()
        if value is not None
    }
    if body.completion_criteria is not None:
        values["completion_criteria"] = body.completion_criteria.model_dump(mode="json")
    for field in ("certificate_type", "template_design"):
        if values.get(field) is not None:
            values[field] = getattr(body, field)
    return values


@router.post("/activities/{activity_id}/certificate-content")
async def create_certificate_content(
    activity_id: uuid.UUID,
    body: CertificateContentCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    activity = await _owned_activity(session, activity_id, user)
    if activity.activity_type != ActivityType.certificate:
        raise ApiError(HTTP_400_BAD_REQUEST, "Activity is not a certificate activity")
    certificates = CertificateRepo(session)
    if await certificates.content_for_activity(activity_id) is not None:
        raise ApiError(HTTP_409_CONFLICT, "Certificate content already exists for this activity")

    content = await certificates.create_content(
        activity_id=activity_id, created_by=user.id, **_content_values(body)
    )
    await session.commit()
    return success(
        certificate_content_out(content),
        message="Certificate content created successfully",
        status_code=HTTP_201_CREATED,
    )


@router.get("/activities/{activity_id}/certificate-content")
async def get_certificate_content(
    activity_id: uuid.UUID,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    content = await CertificateRepo(session).content_for_activity(activity_id)
    if content is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Certificate content not found")
    return success(certificate_content_out(content))


@router.put("/activities/{activity_id}/certificate-content/{content_id}")
async def update_certificate_content(
    activity_id: uuid.UUID,
    content_id: uuid.UUID,
    body: CertificateContentFields,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    await _owned_activity(session, activity_id, user)
    content = await _content(session, activity_id, content_id)
    for field, value in _content_values(body).items():
        setattr(content, field, value)
    await session.commit()
    return success(certificate_content_out(content), message="Certificate content updated successfully")


@router.delete("/activities/{activity_id}/certificate-content/{content_id}")
async def delete_certificate_content(
    activity_id: uuid.UUID,
    content_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    await _owned_activity(session, activity_id, user)
    content = await _content(session, activity_id, content_id)
    await CertificateRepo(session).delete_content(content)
    await session.commit()
    return success(None, message="Certificate content deleted successfully")


@router.post("/activities/{activity_id}/certificate-content/{content_id}/generate")
async def generate_certificate(
    activity_id: uuid.UUID,
    content_id: uuid.UUID,
    body: GenerateRequest,
    _: User = Depends(get_current_user),
    svc: CertificateService = Depends(certificate_service),
) -> JSONResponse:
    result = await svc.generate(
        activity_id=activity_id,
        content_id=content_id,
        full_name=body.full_name,
        certificate_date=body.certificate_date,
        additional_data=body.additional_data,
    )
    return success(result, message="Certificate generated successfully")


@router.post("/certificate-content/{content_id}/issue")
async def issue_certificate(
    content_id: uuid.UUID,
    body: IssueRequest,
    user: User = Depends(get_current_user),
    svc: CertificateService = Depends(certificate_service),
) -> JSONResponse:
    issued = await svc.issue(
        content_id=content_id,
        user=user,
        full_name=body.full_name,
        certificate_date=body.certificate_date,
    )
    return success(
        issued_certificate_out(issued),
        message="Certificate issued successfully",
        status_code=HTTP_201_CREATED,
    )


@router.post("/certificates/verify")
async def verify_certificate(
    body: VerifyRequest,
    svc: CertificateService = Depends(certificate_service),
) -> JSONResponse:
    return success(await svc.verify(body.access_code), message="Certificate verified successfully")
