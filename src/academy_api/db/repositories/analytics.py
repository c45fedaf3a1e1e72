"""
academy_api.db.repositories.analytics

Repository for academy visitors, visit events and widget aggregates.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from academy_api.db.models import (
    AcademyVisitEvent,
    AcademyVisitor,
    Enrollment,
    EnrollmentAnalytics,
    Invoice,
    InvoiceStatus,
    Transaction,
)

UNPAID_INVOICE_STATUSES = (InvoiceStatus.draft, InvoiceStatus.sent, InvoiceStatus.overdue)


class VisitorRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_or_create(
        self, *, environment_id: uuid.UUID, visit_hash: str, now: datetime
    ) -> AcademyVisitor:
        stmt = select(AcademyVisitor).where(
            AcademyVisitor.environment_id == environment_id,
            AcademyVisitor.visit_hash == visit_hash,
        )
        visitor = (await self._session.execute(stmt)).scalar_one_or_none()
        if visitor is None:
            visitor = AcademyVisitor(
                environment_id=environment_id,
                visit_hash=visit_hash,
                visits_count=0,
                first_seen_at=now,
            )
            self._session.add(visitor)
            await self._session.flush()
        return visitor

    async def add_event(self, **fields: object) -> AcademyVisitEvent:
        event = AcademyVisitEvent(**fields)
        self._session.add(event)
        await self._session.flush()
        return event


class WidgetRepo:
    """Read-only aggregates behind the dashboard widgets."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def completed_transaction_totals(
        self, environment_id: uuid.UUID, *, start: datetime, end: datetime
    ) -> tuple[float, float]:
        stmt = select(
            func.coalesce(func.sum(Transaction.amount - Transaction.fee_amount), 0),
            func.coalesce(func.sum(Transaction.fee_amount), 0),
        ).where(
            Transaction.environment_id == environment_id,
            Transaction.status == "completed",
            Transaction.created_at >= start,
            Transaction.created_at <= end,
        )
        net, fees = (await self._session.execute(stmt)).one()
        return float(net), float(fees)

    async def unpaid_invoices(self, environment_id: uuid.UUID) -> tuple[int, float]:
        stmt = select(func.count(Invoice.id), func.coalesce(func.sum(Invoice.total_fee_amount), 0)).where(
            Invoice.environment_id == environment_id,
            Invoice.status.in_(UNPAID_INVOICE_STATUSES),
        )
        count, total = (await self._session.execute(stmt)).one()
        return int(count), float(total)

    async def visit_counts(
        self, environment_id: uuid.UUID, *, start: datetime, end: datetime
    ) -> tuple[int, int]:
        stmt = select(
            func.count(AcademyVisitEvent.id),
            func.count(func.distinct(AcademyVisitEvent.visit_hash)),
        ).where(
            AcademyVisitEvent.environment_id == environment_id,
            AcademyVisitEvent.occurred_at >= start,
            AcademyVisitEvent.occurred_at <= end,
        )
        total, unique = (await self._session.execute(stmt)).one()
        return int(total), int(unique)

    async def visits_per_country(
        self, environment_id: uuid.UUID, *, start: datetime, end: datetime, limit: int = 10
    ) -> list[tuple[str, int]]:
        country = func.coalesce(AcademyVisitor.country_code, "UN").label("country_code")
        visits = func.count(AcademyVisitEvent.id).label("visits")
        stmt = (
            select(country, visits)
            .select_from(AcademyVisitEvent)
            .outerjoin(
                AcademyVisitor,
                (AcademyVisitor.environment_id == AcademyVisitEvent.environment_id)
                & (AcademyVisitor.visit_hash == AcademyVisitEvent.visit_hash),
            )
            .where(
                AcademyVisitEvent.environment_id == environment_id,
                AcademyVisitEvent.occurred_at >= start,
                AcademyVisitEvent.occurred_at <= end,
            )
            .group_by(country)
            .order_by(visits.desc())
            .limit(limit)
        )
        return [(code, int(n)) for code, n in (await self._session.execute(stmt)).all()]

    async def max_session_duration(self, environment_id: uuid.UUID) -> int:
        stmt = (
            select(func.max(EnrollmentAnalytics.session_duration))
            .join(Enrollment, Enrollment.id == EnrollmentAnalytics.enrollment_id)
            .where(Enrollment.environment_id == environment_id)
        )
        value = (await self._session.execute(stmt)).scalar_one_or_none()
        return int(value or 0)
