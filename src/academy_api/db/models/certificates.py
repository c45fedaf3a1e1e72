"""
academy_api.db.models.certificates

Certificate configuration attached to certificate activities, and the
certificates actually issued to learners.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Enum, ForeignKey, String, Text, Uuid as SAUuid
from sqlalchemy.orm import Mapped, mapped_column

from academy_api.db.base import Base, utcnow


class CertificateType(enum.StrEnum):
    completion = "completion"
    achievement = "achievement"
    participation = "participation"
    custom = "custom"


class TemplateDesign(enum.StrEnum):
    standard = "standard"
    premium = "premium"
    custom = "custom"


class CertificateContent(Base):
    __tablename__ = "certificate_contents"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    activity_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("activities.id"), nullable=False, unique=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    certificate_type: Mapped[CertificateType] = mapped_column(Enum(CertificateType), nullable=False)
    template_design: Mapped[TemplateDesign] = mapped_column(
        Enum(TemplateDesign), nullable=False, default=TemplateDesign.standard
    )
    # Name of the render template registered with the external certificate service.
    template_name: Mapped[str] = mapped_column(String(255), nullable=False, default="default")

    background_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    logo_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    signature_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    signatory_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    signatory_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    signatory_organization: Mapped[str | None] = mapped_column(String(255), nullable=True)

    custom_fields: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    completion_criteria: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    expiry_period: Mapped[int | None] = mapped_column(nullable=True)
    expiry_period_unit: Mapped[str | None] = mapped_column(String(16), nullable=True)

    allow_download: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    download_formats: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    allow_sharing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sharing_platforms: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    verification_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verification_method: Mapped[str | None] = mapped_column(String(16), nullable=True)

    # `metadata` is reserved on declarative classes; the column keeps its natural name.
    meta: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)

    created_by: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)


class IssuedCertificate(Base):
    __tablename__ = "issued_certificates"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    certificate_content_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("certificate_contents.id"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    course_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("courses.id"), nullable=True
    )
    certificate_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="issued")
    file_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    issued_date: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    expiry_date: Mapped[datetime | None] = mapped_column(nullable=True)
    custom_fields: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
