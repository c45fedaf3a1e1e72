"""
academy_api.db.repositories.certificates

Repository for certificate content and issued certificates.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from academy_api.db.models import CertificateContent, IssuedCertificate


class CertificateRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_content(self, *, activity_id: uuid.UUID, created_by: uuid.UUID, **fields: Any) -> CertificateContent:
        content = CertificateContent(activity_id=activity_id, created_by=created_by, **fields)
        self._session.add(content)
        await self._session.flush()
        return content

    async def get_content(self, content_id: uuid.UUID) -> CertificateContent | None:
        return await self._session.get(CertificateContent, content_id)

    async def content_for_activity(
        self, activity_id: uuid.UUID, content_id: uuid.UUID | None = None
    ) -> CertificateContent | None:
        # Exact (activity, id) match first, then the most recent content for the activity.
        if content_id is not None:
            stmt = select(CertificateContent).where(
                CertificateContent.activity_id == activity_id,
                CertificateContent.id == content_id,
            )
            found = (await self._session.execute(stmt)).scalar_one_or_none()
            if found is not None:
                return found
        stmt = (
            select(CertificateContent)
            .where(CertificateContent.activity_id == activity_id)
            .order_by(desc(CertificateContent.created_at))
            .limit(1)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def delete_content(self, content: CertificateContent) -> None:
        await self._session.delete(content)
        await self._session.flush()

    async def issue(self, **fields: Any) -> IssuedCertificate:
        issued = IssuedCertificate(**fields)
        self._session.add(issued)
        await self._session.flush()
        return issued
