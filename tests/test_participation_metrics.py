"""
tests.test_participation_metrics

Chat engagement scoring and the instructor analytics endpoints.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta

import httpx
import pytest

from academy_api.db.base import utcnow
from academy_api.db.models import ChatMessage
from academy_api.services.participation_metrics import (
    average_response_minutes,
    daily_distribution,
    engagement_score,
    is_certificate_eligible,
    message_quality,
    participation_level,
    round_half_up,
    thread_stats,
)
from tests.support import create_environment, login, published_course


def _msg(content: str, at: datetime, parent: ChatMessage | None = None) -> ChatMessage:
    return ChatMessage(
        id=uuid.uuid4(),
        course_id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        content=content,
        created_at=at,
        parent_message_id=parent.id if parent else None,
    )


def test_message_quality_bands() -> None:
    assert message_quality("ok") == 0.3
    assert message_quality("x" * 10) == 0.6
    assert message_quality("x" * 50) == 0.8
    assert message_quality("x" * 100) == 1.0


def test_engagement_score_caps_and_rounds() -> None:
    start = date(2026, 3, 1)
    long_text = "x" * 120
    busy = [_msg(long_text, datetime(2026, 3, 1 + i % 3, 10, i)) for i in range(12)]
    assert engagement_score(busy, start, date(2026, 3, 3)) == 100

    # consistency 1/10*40 + volume 1/10*30 + quality 0.3*30
    assert engagement_score([_msg("hey", datetime(2026, 3, 2, 9))], start, date(2026, 3, 10)) == 16
    assert engagement_score([], start, date(2026, 3, 10)) == 0


def test_certificate_eligibility_and_levels() -> None:
    assert is_certificate_eligible(message_count=10, days_active=3, score=70)
    assert not is_certificate_eligible(message_count=9, days_active=5, score=95)
    assert not is_certificate_eligible(message_count=20, days_active=2, score=95)
    assert not is_certificate_eligible(message_count=20, days_active=5, score=69)

    assert participation_level(90) == "Outstanding"
    assert participation_level(85) == "Excellent"
    assert participation_level(70) == "Good"
    assert participation_level(60) == "Average"
    assert participation_level(59) == "Needs Improvement"


def test_round_half_up() -> None:
    assert round_half_up(2.5) == 3
    assert round_half_up(0.125, 2) == 0.13


def test_response_time_ignores_long_gaps() -> None:
    base = datetime(2026, 3, 1, 8, 0)
    messages = [
        _msg("a", base),
        _msg("b", base + timedelta(minutes=10)),
        _msg("c", base + timedelta(minutes=30)),
        _msg("d", base + timedelta(days=3)),
    ]
    assert average_response_minutes(messages) == 15.0
    assert average_response_minutes(messages[:1]) == 0.0


def test_daily_distribution_starts_on_sunday() -> None:
    sunday = datetime(2023, 1, 1, 12)
    buckets = daily_distribution([_msg("a", sunday), _msg("b", sunday + timedelta(days=1))])
    assert buckets == [1, 1, 0, 0, 0, 0, 0]


def test_thread_stats_follow_reply_chains() -> None:
    base = datetime(2026, 3, 1, 8, 0)
    root = _msg("root", base)
    reply = _msg("reply", base + timedelta(minutes=1), parent=root)
    nested = _msg("nested", base + timedelta(minutes=2), parent=reply)
    other = _msg("other", base + timedelta(minutes=3))

    stats = thread_stats([root, reply, nested, other])
    assert stats == {"total_threads": 2, "average_thread_length": 2.0, "longest_thread": 3}


async def _discussion(client: httpx.AsyncClient) -> dict:
    instructor = await login(client, "instructor@example.com", role="instructor", name="Professor")
    env_id = await create_environment(client, instructor)
    course = await published_course(client, instructor, env_id)
    student = await login(client, "student@example.com", name="Student")
    r = await client.post("/enrollments", json={"course_id": course["id"]}, headers=student["headers"])
    assert r.status_code == 201

    url = f"/courses/{course['id']}/chat/messages"
    for actor, content in (
        (student, "How do I submit the first assignment?"),
        (instructor, "Upload it from the activity page."),
        (student, "Thanks!"),
    ):
        r = await client.post(url, json={"content": content}, headers=actor["headers"])
        assert r.status_code == 201, r.text
    return {"instructor": instructor, "student": student, "course": course}


@pytest.mark.asyncio
async def test_dashboard_summarises_recent_activity(client: httpx.AsyncClient) -> None:
    ctx = await _discussion(client)
    url = f"/chat/analytics/{ctx['course']['id']}/dashboard"

    r = await client.get(url, headers=ctx["student"]["headers"])
    assert r.status_code == 403

    r = await client.get(url, params={"days": 91}, headers=ctx["instructor"]["headers"])
    assert r.status_code == 422

    r = await client.get(url, params={"days": 7}, headers=ctx["instructor"]["headers"])
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["period_days"] == 7
    assert data["overview"]["total_messages"] == 3
    assert data["overview"]["unique_participants"] == 2
    assert data["overview"]["instructor_participation_rate"] == 33.33
    assert [c["user_id"] for c in data["top_contributors"]] == [ctx["student"]["user_id"]]
    assert data["certificate_eligibility"] == {
        "eligible_count": 0,
        "total_participants": 2,
        "eligibility_percentage": 0.0,
    }
    assert len(data["recent_trends"]) == 7
    assert data["recent_trends"][-1]["message_count"] == 3


@pytest.mark.asyncio
async def test_engagement_report_validates_range(client: httpx.AsyncClient) -> None:
    ctx = await _discussion(client)
    url = f"/chat/analytics/{ctx['course']['id']}/engagement-report"
    headers = ctx["instructor"]["headers"]
    today = utcnow().date()

    r = await client.get(
        url,
        params={"start_date": (today + timedelta(days=1)).isoformat(), "end_date": today.isoformat()},
        headers=headers,
    )
    assert r.status_code == 422
    assert "start_date" in r.json()["errors"]

    r = await client.get(
        url,
        params={"start_date": today.isoformat(), "end_date": (today - timedelta(days=1)).isoformat()},
        headers=headers,
    )
    assert r.status_code == 422
    assert "end_date" in r.json()["errors"]

    r = await client.get(
        url,
        params={"start_date": (today - timedelta(days=400)).isoformat(), "end_date": today.isoformat()},
        headers=headers,
    )
    assert r.status_code == 422
    assert r.json()["message"] == "Date range cannot exceed 365 days"

    r = await client.get(
        url,
        params={"start_date": (today - timedelta(days=2)).isoformat(), "end_date": today.isoformat()},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    report = r.json()["data"]
    assert report["period"] == {
        "start_date": (today - timedelta(days=2)).isoformat(),
        "end_date": today.isoformat(),
    }
    assert len(report["engagement_trends"]) == 3
    by_user = {p["user_id"]: p for p in report["participation"]}
    assert by_user[ctx["student"]["user_id"]]["message_count"] == 2
    assert by_user[ctx["student"]["user_id"]]["role"] == "student"
    assert by_user[ctx["instructor"]["user_id"]]["role"] == "instructor"
    assert report["activity_patterns"]["discussion_threads"]["total_threads"] == 3
    assert sum(report["activity_patterns"]["hourly_distribution"]) == 3
    assert report["certificate_eligibility"]["total_eligible"] == 0


@pytest.mark.asyncio
async def test_participation_filters_by_role(client: httpx.AsyncClient) -> None:
    ctx = await _discussion(client)
    url = f"/chat/analytics/{ctx['course']['id']}/participation"
    headers = ctx["instructor"]["headers"]

    r = await client.get(url, headers=headers)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["role"] == "all"
    assert len(data["participants"]) == 2
    today = utcnow().date()
    assert data["period"]["start_date"] == (today - timedelta(days=29)).isoformat()

    r = await client.get(url, params={"role": "instructor"}, headers=headers)
    assert [p["user_name"] for p in r.json()["data"]["participants"]] == ["Professor"]

    r = await client.get(url, params={"role": "student", "limit": 1}, headers=headers)
    assert [p["user_name"] for p in r.json()["data"]["participants"]] == ["Student"]

    r = await client.get(url, params={"role": "guest"}, headers=headers)
    assert r.status_code == 422
