"""
academy_api.services.analytics

Academy traffic tracking and dashboard widgets.

Responsibilities:
- Count throttled visits per browser fingerprint and enrich visitors with geo data.
- Summarize earnings, platform commission and unpaid invoices.
- Summarize traffic (visits, unique visitors, countries, longest learning session).
"""

from __future__ import annotations

import hashlib
import ipaddress
import uuid
from collections.abc import Mapping
from datetime import date, datetime, time, timedelta
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from academy_api.clients.geoip import GeoIpClient, GeoIpRateLimited
from academy_api.db.base import utcnow
from academy_api.db.models import AcademyVisitor
from academy_api.db.repositories.analytics import VisitorRepo, WidgetRepo
from academy_api.observability.logging import get_logger
from academy_api.settings import Settings

log = get_logger(__name__)

VISIT_THROTTLE = timedelta(minutes=30)
DEFAULT_WIDGET_DAYS = 30


def client_ip(headers: Mapping[str, str], peer: str | None) -> str | None:
    if headers.get("cf-connecting-ip"):
        return headers["cf-connecting-ip"].strip()
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if headers.get("x-real-ip"):
        return headers["x-real-ip"].strip()
    return peer


def hash_ip(app_key: str, ip: str | None) -> str | None:
    if not ip:
        return None
    return hashlib.sha256(f"{app_key}|{ip}".encode()).hexdigest()


def is_public_ip(ip: str | None) -> bool:
    if not ip:
        return False
    try:
        return ipaddress.ip_address(ip).is_global
    except ValueError:
        return False


def widget_range(start: date | None, end: date | None) -> tuple[date, date]:
    end = end or utcnow().date()
    start = start or end - timedelta(days=DEFAULT_WIDGET_DAYS)
    return start, end


def day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    return datetime.combine(start, time.min), datetime.combine(end, time.max)


def _section(payload: Any, key: str) -> dict[str, Any]:
    value = payload.get(key) if isinstance(payload, dict) else None
    return value if isinstance(value, dict) else {}


def apply_geo(visitor: AcademyVisitor, payload: dict[str, Any]) -> None:
    if not isinstance(payload, dict):
        raise ValueError("geolocation payload is not an object")
    location = _section(payload, "location")
    company = _section(_section(payload, "network"), "company")
    visitor.country_code = location.get("country_code2")
    visitor.country_name = location.get("country_name")
    visitor.state_prov = location.get("state_prov")
    visitor.city = location.get("city")
    visitor.isp = company.get("name")
    visitor.geo_data = payload


class AnalyticsService:
    def __init__(self, *, session: AsyncSession, settings: Settings, http: httpx.AsyncClient) -> None:
        self._session = session
        self._settings = settings
        self._visitors = VisitorRepo(session)
        self._widgets = WidgetRepo(session)
        self._geoip = GeoIpClient(settings=settings, http=http)

    async def track_visit(
        self,
        *,
        environment_id: uuid.UUID,
        visit_hash: str,
        path: str | None,
        referrer: str | None,
        ip: str | None,
        user_agent: str | None,
    ) -> dict[str, Any]:
        now = utcnow()
        ip_hash = hash_ip(self._settings.app_key, ip)
        visitor = await self._visitors.get_or_create(
            environment_id=environment_id, visit_hash=visit_hash, now=now
        )

        counted = visitor.last_seen_at is None or visitor.last_seen_at < now - VISIT_THROTTLE
        visitor.ip_hash = ip_hash
        visitor.user_agent = user_agent
        visitor.last_seen_at = now
        if counted:
            visitor.visits_count += 1
            await self._visitors.add_event(
                environment_id=environment_id,
                visit_hash=visit_hash,
                path=path,
                referrer=referrer,
                ip_hash=ip_hash,
                user_agent=user_agent,
                occurred_at=now,
            )

        if visitor.country_code is None and is_public_ip(ip) and self._geoip.enabled:
            await self._enrich(visitor, ip)  # type: ignore[arg-type]

        await self._session.commit()
        return {
            "counted": counted,
            "visits_count": visitor.visits_count,
            "country_code": visitor.country_code,
        }

    async def _enrich(self, visitor: AcademyVisitor, ip: str) -> None:
        # Enrichment never fails the visit.
        try:
            apply_geo(visitor, await self._geoip.lookup(ip))
        except GeoIpRateLimited:
            pass
        except httpx.HTTPStatusError as e:
            log.warning("geoip_lookup_failed", status_code=e.response.status_code)
        except Exception as e:
            log.warning("geoip_lookup_error", error=str(e))

    async def financial_widgets(
        self, environment_id: uuid.UUID, *, start: date | None, end: date | None
    ) -> dict[str, Any]:
        start, end = widget_range(start, end)
        lo, hi = day_bounds(start, end)
        net, commission = await self._widgets.completed_transaction_totals(environment_id, start=lo, end=hi)
        unpaid_count, unpaid_total = await self._widgets.unpaid_invoices(environment_id)
        return {
            "net_earnings": round(net, 2),
            "platform_commission": round(commission, 2),
            "unpaid_invoices": {"count": unpaid_count, "total": round(unpaid_total, 2)},
            "currency": "USD",
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
        }

    async def traffic_widgets(
        self, environment_id: uuid.UUID, *, start: date | None, end: date | None
    ) -> dict[str, Any]:
        start, end = widget_range(start, end)
        lo, hi = day_bounds(start, end)
        total, unique = await self._widgets.visit_counts(environment_id, start=lo, end=hi)
        countries = await self._widgets.visits_per_country(environment_id, start=lo, end=hi)
        return {
            "total_visits": total,
            "unique_visitors": unique,
            "visits_per_country": [{"country_code": code, "visits": n} for code, n in countries],
            "max_time_spent_seconds": await self._widgets.max_session_duration(environment_id),
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
        }
