"""
academy_api.services.participation_metrics

Course chat engagement analytics.

Responsibilities:
- Score each participant's engagement (consistency, volume, message quality).
- Decide discussion-certificate eligibility and participation levels.
- Build the engagement report, participation listing and dashboard views.
"""

from __future__ import annotations

import math
import uuid
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from academy_api.db.models import ChatMessage, Course, User, UserRole
from academy_api.db.repositories.chat import ChatMessageRepo
from academy_api.db.repositories.enrollments import EnrollmentRepo
from academy_api.db.repositories.identity import UserRepo

CERTIFICATE_MIN_MESSAGES = 10
CERTIFICATE_MIN_ACTIVE_DAYS = 3
CERTIFICATE_MIN_SCORE = 70
RESPONSE_WINDOW_MINUTES = 1440

PARTICIPATION_LEVELS = (
    (90, "Outstanding"),
    (80, "Excellent"),
    (70, "Good"),
    (60, "Average"),
)


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def message_quality(content: str) -> float:
    length = len(content)
    if length < 10:
        return 0.3
    if length < 50:
        return 0.6
    if length < 100:
        return 0.8
    return 1.0


def active_days(messages: list[ChatMessage]) -> int:
    return len({m.created_at.date() for m in messages})


def total_days(start: date, end: date) -> int:
    return (end - start).days + 1


def engagement_score(messages: list[ChatMessage], start: date, end: date) -> int:
    if not messages:
        return 0
    consistency = active_days(messages) / max(total_days(start, end), 1) * 40
    volume = min(len(messages) / 10 * 30, 30)
    quality = sum(message_quality(m.content) for m in messages) / len(messages) * 30
    return int(min(100, round_half_up(consistency + volume + quality)))


def is_certificate_eligible(*, message_count: int, days_active: int, score: int) -> bool:
    return (
        message_count >= CERTIFICATE_MIN_MESSAGES
        and days_active >= CERTIFICATE_MIN_ACTIVE_DAYS
        and score >= CERTIFICATE_MIN_SCORE
    )


def participation_level(score: int) -> str:
    for threshold, label in PARTICIPATION_LEVELS:
        if score >= threshold:
            return label
    return "Needs Improvement"


def average_response_minutes(messages: list[ChatMessage]) -> float:
    if len(messages) < 2:
        return 0.0
    ordered = sorted(messages, key=lambda m: m.created_at)
    gaps = []
    for prev, cur in zip(ordered, ordered[1:]):
        minutes = int((cur.created_at - prev.created_at).total_seconds() // 60)
        if minutes <= RESPONSE_WINDOW_MINUTES:
            gaps.append(minutes)
    return round_half_up(sum(gaps) / len(gaps), 2) if gaps else 0.0


def hourly_distribution(messages: list[ChatMessage]) -> list[int]:
    buckets = [0] * 24
    for m in messages:
        buckets[m.created_at.hour] += 1
    return buckets


def daily_distribution(messages: list[ChatMessage]) -> list[int]:
    # Sunday = 0 ... Saturday = 6.
    buckets = [0] * 7
    for m in messages:
        buckets[(m.created_at.weekday() + 1) % 7] += 1
    return buckets


def peak_hours(messages: list[ChatMessage]) -> list[int]:
    buckets = hourly_distribution(messages)
    top = max(buckets)
    return [hour for hour, count in enumerate(buckets) if count == top]


def thread_stats(messages: list[ChatMessage]) -> dict[str, Any]:
    by_id = {m.id: m for m in messages}
    roots = [m for m in messages if m.parent_message_id is None]
    sizes: Counter[uuid.UUID] = Counter()
    for m in messages:
        node = m
        seen: set[uuid.UUID] = set()
        while node.parent_message_id is not None and node.parent_message_id in by_id:
            if node.id in seen:
                break
            seen.add(node.id)
            node = by_id[node.parent_message_id]
        sizes[node.id] += 1
    return {
        "total_threads": len(roots),
        "average_thread_length": round_half_up(len(messages) / max(1, len(roots)), 2),
        "longest_thread": max(sizes.values(), default=0),
    }


@dataclass(slots=True)
class Participant:
    user_id: uuid.UUID
    user_name: str
    role: str
    messages: list[ChatMessage]

    def metrics(self, start: date, end: date) -> dict[str, Any]:
        score = engagement_score(self.messages, start, end)
        days = active_days(self.messages)
        dates = [m.created_at.date() for m in self.messages]
        return {
            "user_id": str(self.user_id),
            "user_name": self.user_name,
            "role": self.role,
            "message_count": len(self.messages),
            "active_days": days,
            "first_message_date": min(dates).isoformat() if dates else None,
            "last_message_date": max(dates).isoformat() if dates else None,
            "engagement_score": score,
            "participation_level": participation_level(score),
            "certificate_eligible": is_certificate_eligible(
                message_count=len(self.messages), days_active=days, score=score
            ),
        }


def participant_role(user: User | None, course: Course) -> str:
    if user is None:
        return "student"
    if user.id == course.created_by or user.role in (UserRole.instructor, UserRole.admin):
        return "instructor"
    return "student"


class ParticipationMetricsService:
    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session
        self._messages = ChatMessageRepo(session)
        self._enrollments = EnrollmentRepo(session)
        self._users = UserRepo(session)

    async def _load(
        self, course: Course, start: date, end: date
    ) -> tuple[list[ChatMessage], list[Participant]]:
        messages = await self._messages.in_range(
            course.id,
            start=datetime.combine(start, time.min),
            end=datetime.combine(end, time.max),
        )
        by_user: dict[uuid.UUID, list[ChatMessage]] = defaultdict(list)
        for m in messages:
            by_user[m.user_id].append(m)

        user_ids = list(dict.fromkeys([*await self._enrollments.users_for_course(course.id), *by_user]))
        users = await self._users.get_many(user_ids)
        participants = [
            Participant(
                user_id=uid,
                user_name=users[uid].name if uid in users else f"User {uid}",
                role=participant_role(users.get(uid), course),
                messages=by_user.get(uid, []),
            )
            for uid in user_ids
        ]
        return messages, participants

    def _overview(
        self, messages: list[ChatMessage], participants: list[Participant], start: date, end: date
    ) -> dict[str, Any]:
        per_day = Counter(m.created_at.date() for m in messages)
        most_active = None
        if per_day:
            day, count = max(per_day.items(), key=lambda kv: (kv[1], -kv[0].toordinal()))
            most_active = {"date": day.isoformat(), "count": count}
        instructors = {p.user_id for p in participants if p.role == "instructor"}
        instructor_messages = sum(1 for m in messages if m.user_id in instructors)
        return {
            "total_messages": len(messages),
            "unique_participants": len({m.user_id for m in messages}),
            "average_messages_per_day": round_half_up(len(messages) / total_days(start, end), 2),
            "most_active_day": most_active or {"date": None, "count": 0},
            "response_time_avg": average_response_minutes(messages),
            "instructor_participation_rate": (
                round_half_up(instructor_messages / len(messages) * 100, 2) if messages else 0.0
            ),
        }

    def _trends(self, messages: list[ChatMessage], start: date, end: date) -> list[dict[str, Any]]:
        by_day: dict[date, list[ChatMessage]] = defaultdict(list)
        for m in messages:
            by_day[m.created_at.date()].append(m)
        trends = []
        current = start
        while current <= end:
            day_messages = by_day.get(current, [])
            trends.append(
                {
                    "date": current.isoformat(),
                    "message_count": len(day_messages),
                    "unique_participants": len({m.user_id for m in day_messages}),
                    "avg_response_time": average_response_minutes(day_messages),
                }
            )
            current += timedelta(days=1)
        return trends

    @staticmethod
    def _top_students(metrics: list[dict[str, Any]], limit: int) -> list[dict[str, Any]]:
        students = [m for m in metrics if m["role"] == "student" and m["message_count"] > 0]
        return sorted(students, key=lambda m: m["engagement_score"], reverse=True)[:limit]

    @staticmethod
    def _eligibility(metrics: list[dict[str, Any]]) -> dict[str, Any]:
        eligible = [m for m in metrics if m["certificate_eligible"]]
        return {
            "total_eligible": len(eligible),
            "eligible_users": [
                {
                    "user_id": m["user_id"],
                    "user_name": m["user_name"],
                    "message_count": m["message_count"],
                    "active_days": m["active_days"],
                    "engagement_score": m["engagement_score"],
                }
                for m in eligible
            ],
        }

    async def engagement_report(self, course: Course, start: date, end: date) -> dict[str, Any]:
        messages, participants = await self._load(course, start, end)
        metrics = [p.metrics(start, end) for p in participants]
        return {
            "course_id": str(course.id),
            "period": {"start_date": start.isoformat(), "end_date": end.isoformat()},
            "overview": self._overview(messages, participants, start, end),
            "participation": metrics,
            "engagement_trends": self._trends(messages, start, end),
            "top_contributors": self._top_students(metrics, 10),
            "activity_patterns": {
                "hourly_distribution": hourly_distribution(messages),
                "daily_distribution": daily_distribution(messages),
                "peak_activity_hours": peak_hours(messages),
                "discussion_threads": thread_stats(messages),
            },
            "certificate_eligibility": self._eligibility(metrics),
        }

    async def participation(
        self, course: Course, start: date, end: date, *, role: str = "all", limit: int = 50
    ) -> list[dict[str, Any]]:
        _, participants = await self._load(course, start, end)
        metrics = [p.metrics(start, end) for p in participants if role in ("all", p.role)]
        metrics.sort(key=lambda m: (m["engagement_score"], m["message_count"]), reverse=True)
        return metrics[:limit]

    async def dashboard(self, course: Course, *, days: int, today: date) -> dict[str, Any]:
        start = today - timedelta(days=days - 1)
        messages, participants = await self._load(course, start, today)
        metrics = [p.metrics(start, today) for p in participants]
        eligible = sum(1 for m in metrics if m["certificate_eligible"])
        trends = self._trends(messages, start, today)
        return {
            "course_id": str(course.id),
            "period_days": days,
            "overview": self._overview(messages, participants, start, today),
            "top_contributors": self._top_students(metrics, 5),
            "certificate_eligibility": {
                "eligible_count": eligible,
                "total_participants": len(metrics),
                "eligibility_percentage": (
                    round_half_up(eligible / len(metrics) * 100, 2) if metrics else 0.0
                ),
            },
            "recent_trends": trends[-7:],
            "peak_activity": {
                "peak_hours": peak_hours(messages),
                "daily_distribution": daily_distribution(messages),
            },
        }
