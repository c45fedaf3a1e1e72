"""
tests.test_enrollments

Enrollment lifecycle: enrollment rules, completions, progress and quiz attempts.
"""

from __future__ import annotations

import httpx
import pytest

from tests.support import create_environment, in_env, login, published_course, template_with_activities


async def _setup(client: httpx.AsyncClient) -> dict:
    instructor = await login(client, "instructor@example.com", role="instructor")
    env_id = await create_environment(client, instructor)
    tree = await template_with_activities(
        client,
        instructor,
        env_id,
        [
            {"title": "Welcome video", "activity_type": "video", "points": 10},
            {"title": "Checkpoint quiz", "activity_type": "quiz", "points": 30},
            {"title": "Extra reading", "activity_type": "text", "points": 0, "is_required": False},
        ],
    )
    course = await published_course(client, instructor, env_id, template_id=tree["template_id"])
    return {"instructor": instructor, "env_id": env_id, "course": course, "activities": tree["activities"]}


@pytest.mark.asyncio
async def test_enrollment_rules(client: httpx.AsyncClient) -> None:
    ctx = await _setup(client)
    student = await login(client, "student@example.com")
    other = await login(client, "other@example.com")
    course_id = ctx["course"]["id"]

    r = await client.post(
        "/enrollments",
        json={"course_id": course_id, "user_id": other["user_id"]},
        headers=student["headers"],
    )
    assert r.status_code == 403

    r = await client.post("/enrollments", json={"course_id": course_id}, headers=student["headers"])
    assert r.status_code == 201, r.text
    enrollment = r.json()["data"]
    assert enrollment["status"] == "active"
    assert enrollment["user_id"] == student["user_id"]
    assert enrollment["environment_id"] == ctx["env_id"]

    r = await client.post("/enrollments", json={"course_id": course_id}, headers=student["headers"])
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_unpublished_and_full_courses_reject_enrollment(client: httpx.AsyncClient) -> None:
    instructor = await login(client, "instructor@example.com", role="instructor")
    env_id = await create_environment(client, instructor)
    student = await login(client, "student@example.com")
    other = await login(client, "other@example.com")

    r = await client.post("/courses", json={"title": "Draft"}, headers=in_env(instructor, env_id))
    draft_id = r.json()["data"]["id"]
    r = await client.post("/enrollments", json={"course_id": draft_id}, headers=student["headers"])
    assert r.status_code == 400
    assert r.json()["message"] == "Cannot enroll in an unpublished course"

    full = await published_course(client, instructor, env_id, title="Tiny", enrollment_limit=1)
    r = await client.post("/enrollments", json={"course_id": full["id"]}, headers=student["headers"])
    assert r.status_code == 201
    r = await client.post("/enrollments", json={"course_id": full["id"]}, headers=other["headers"])
    assert r.status_code == 400
    assert r.json()["message"] == "Course has reached its enrollment limit"


@pytest.mark.asyncio
async def test_partial_updates_ignore_null_fields(client: httpx.AsyncClient) -> None:
    ctx = await _setup(client)
    headers = in_env(ctx["instructor"], ctx["env_id"])
    course_id = ctx["course"]["id"]

    r = await client.put(
        f"/courses/{course_id}",
        json={"title": None, "status": None, "description": "Updated outline"},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    course = r.json()["data"]
    assert course["title"] == "Intro to Testing"
    assert course["status"] == "published"
    assert course["description"] == "Updated outline"

    student = await login(client, "student@example.com")
    admin = await login(client, "admin@example.com", role="admin")
    r = await client.post("/enrollments", json={"course_id": course_id}, headers=student["headers"])
    enrollment_id = r.json()["data"]["id"]

    r = await client.put(
        f"/enrollments/{enrollment_id}",
        json={"status": None, "expires_at": None},
        headers=admin["headers"],
    )
    assert r.status_code == 200, r.text
    assert r.json()["data"]["status"] == "active"
    assert r.json()["data"]["expires_at"] is None


@pytest.mark.asyncio
async def test_completions_drive_progress_and_auto_complete(client: httpx.AsyncClient) -> None:
    ctx = await _setup(client)
    student = await login(client, "student@example.com")
    video, quiz, reading = ctx["activities"]

    r = await client.post("/enrollments", json={"course_id": ctx["course"]["id"]}, headers=student["headers"])
    enrollment_id = r.json()["data"]["id"]

    r = await client.put(
        f"/enrollments/{enrollment_id}/activities/{video['id']}/completion",
        json={"status": "completed", "time_spent": 120},
        headers=student["headers"],
    )
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["completion"]["status"] == "completed"
    assert data["enrollment"]["status"] == "active"
    assert data["enrollment"]["progress_percentage"] == pytest.approx(33.33)

    r = await client.get(f"/enrollments/{enrollment_id}/progress", headers=student["headers"])
    progress = r.json()["data"]
    assert progress["total_activities"] == 3
    assert progress["completed_activities"] == 1
    assert progress["total_points"] == 40
    assert progress["earned_points"] == 10
    assert progress["points_progress"] == 25.0

    r = await client.put(
        f"/enrollments/{enrollment_id}/activities/{quiz['id']}/completion",
        json={"status": "completed", "score": 28},
        headers=student["headers"],
    )
    enrollment = r.json()["data"]["enrollment"]
    # The optional reading is still open, yet every required activity is done.
    assert enrollment["status"] == "completed"
    assert enrollment["completed_at"] is not None

    r = await client.get(f"/enrollments/{enrollment_id}/activity-completions", headers=student["headers"])
    assert {c["activity_id"] for c in r.json()["data"]} == {video["id"], quiz["id"]}
    assert reading["id"] not in {c["activity_id"] for c in r.json()["data"]}


@pytest.mark.asyncio
async def test_admin_reset_reactivates_enrollment(client: httpx.AsyncClient) -> None:
    ctx = await _setup(client)
    student = await login(client, "student@example.com")
    admin = await login(client, "admin@example.com", role="admin")

    r = await client.post("/enrollments", json={"course_id": ctx["course"]["id"]}, headers=student["headers"])
    enrollment_id = r.json()["data"]["id"]
    for activity in ctx["activities"][:2]:
        await client.put(
            f"/enrollments/{enrollment_id}/activities/{activity['id']}/completion",
            json={"status": "completed"},
            headers=student["headers"],
        )

    r = await client.post(f"/enrollments/{enrollment_id}/reset", headers=student["headers"])
    assert r.status_code == 403

    r = await client.post(f"/enrollments/{enrollment_id}/reset", headers=admin["headers"])
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["removed"] == 2
    assert data["enrollment"]["status"] == "active"
    assert data["enrollment"]["completed_at"] is None
    assert data["enrollment"]["progress_percentage"] == 0.0


@pytest.mark.asyncio
async def test_listing_is_scoped_and_paginated(client: httpx.AsyncClient) -> None:
    instructor = await login(client, "instructor@example.com", role="instructor")
    env_id = await create_environment(client, instructor)
    student = await login(client, "student@example.com")
    other = await login(client, "other@example.com")

    for i in range(3):
        course = await published_course(client, instructor, env_id, title=f"Course {i}")
        await client.post("/enrollments", json={"course_id": course["id"]}, headers=student["headers"])
    await client.post("/enrollments", json={"course_id": course["id"]}, headers=other["headers"])

    r = await client.get("/enrollments", params={"per_page": 2}, headers=student["headers"])
    assert r.status_code == 200
    page = r.json()["data"]
    assert page["total"] == 3
    assert page["per_page"] == 2
    assert page["current_page"] == 1
    assert page["last_page"] == 2
    assert len(page["items"]) == 2

    r = await client.get(f"/courses/{course['id']}/enrollments", headers=instructor["headers"])
    assert r.json()["data"]["total"] == 2

    r = await client.get(f"/courses/{course['id']}/enrollments", headers=student["headers"])
    assert r.status_code == 403

    r = await client.get("/enrollments", params={"per_page": 101}, headers=student["headers"])
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_quiz_attempts_are_numbered_and_scored(client: httpx.AsyncClient) -> None:
    ctx = await _setup(client)
    student = await login(client, "student@example.com")
    intruder = await login(client, "intruder@example.com")
    quiz = ctx["activities"][1]

    r = await client.post(
        f"/activities/{quiz['id']}/quiz-questions",
        json={"question": "2 + 2?", "options": ["3", "4"], "correct_answer": "4", "points": 5},
        headers=ctx["instructor"]["headers"],
    )
    assert r.status_code == 201
    question_id = r.json()["data"]["id"]

    r = await client.post("/enrollments", json={"course_id": ctx["course"]["id"]}, headers=student["headers"])
    enrollment_id = r.json()["data"]["id"]

    payload = {
        "enrollment_id": enrollment_id,
        "activity_id": quiz["id"],
        "responses": [
            {
                "quiz_question_id": question_id,
                "user_response": "3",
                "is_correct": False,
                "points_earned": 0,
                "max_points": 5,
            }
        ],
    }
    r = await client.post("/quiz-submissions", json=payload, headers=student["headers"])
    assert r.status_code == 201, r.text
    first = r.json()["data"]
    assert first["attempt_number"] == 1
    assert first["score"] == 0
    assert first["max_score"] == 5

    payload["responses"][0].update(user_response="4", is_correct=True, points_earned=5)
    r = await client.post("/quiz-submissions", json=payload, headers=student["headers"])
    second = r.json()["data"]
    assert second["attempt_number"] == 2
    assert second["score"] == 5

    r = await client.post("/quiz-submissions", json=payload, headers=intruder["headers"])
    assert r.status_code == 403

    r = await client.get(f"/enrollments/{enrollment_id}/quiz-submissions", headers=student["headers"])
    assert [s["attempt_number"] for s in r.json()["data"]] == [2, 1]

    r = await client.get(f"/quiz-submissions/{first['id']}", headers=intruder["headers"])
    assert r.status_code == 403
