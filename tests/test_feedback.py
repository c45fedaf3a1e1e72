"""
tests.test_feedback

Draft-then-submit feedback forms.
"""

from __future__ import annotations

import httpx
import pytest

from tests.support import create_environment, login, template_with_activities


async def _feedback_form(client: httpx.AsyncClient) -> dict:
    instructor = await login(client, "instructor@example.com", role="instructor")
    env_id = await create_environment(client, instructor)
    tree = await template_with_activities(
        client, instructor, env_id, [{"title": "Course survey", "activity_type": "feedback"}]
    )
    activity_id = tree["activities"][0]["id"]
    r = await client.post(
        f"/activities/{activity_id}/feedback-content",
        json={
            "title": "How did it go?",
            "questions": [
                {"question_text": "Rate the course", "question_type": "rating", "is_required": True},
                {"question_text": "What would you change?", "question_type": "text", "order": 1},
            ],
        },
        headers=instructor["headers"],
    )
    assert r.status_code == 201, r.text
    content = r.json()["data"]
    return {
        "instructor": instructor,
        "content_id": content["id"],
        "rating_id": content["questions"][0]["id"],
        "comment_id": content["questions"][1]["id"],
    }


@pytest.mark.asyncio
async def test_only_template_owner_can_attach_feedback_content(client: httpx.AsyncClient) -> None:
    instructor = await login(client, "instructor@example.com", role="instructor")
    env_id = await create_environment(client, instructor)
    tree = await template_with_activities(
        client, instructor, env_id, [{"title": "Survey", "activity_type": "feedback"}]
    )
    stranger = await login(client, "stranger@example.com", role="instructor")
    r = await client.post(
        f"/activities/{tree['activities'][0]['id']}/feedback-content",
        json={"title": "Hijack"},
        headers=stranger["headers"],
    )
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_draft_answers_merge_and_ignore_foreign_questions(client: httpx.AsyncClient) -> None:
    form = await _feedback_form(client)
    student = await login(client, "student@example.com")

    r = await client.post(
        "/feedback-submissions",
        json={
            "feedback_content_id": form["content_id"],
            "answers": [
                {"feedback_question_id": form["comment_id"], "answer_text": "More labs"},
                {"feedback_question_id": "00000000-0000-0000-0000-000000000000", "answer_text": "?"},
            ],
        },
        headers=student["headers"],
    )
    assert r.status_code == 201, r.text
    draft = r.json()["data"]
    assert draft["status"] == "draft"
    assert [a["feedback_question_id"] for a in draft["answers"]] == [form["comment_id"]]

    r = await client.post(
        "/feedback-submissions",
        json={
            "feedback_content_id": form["content_id"],
            "answers": [{"feedback_question_id": form["rating_id"], "answer_value": 4}],
        },
        headers=student["headers"],
    )
    merged = r.json()["data"]
    assert merged["id"] == draft["id"]
    answers = {a["feedback_question_id"]: a for a in merged["answers"]}
    assert answers[form["comment_id"]]["answer_text"] == "More labs"
    assert answers[form["rating_id"]]["answer_value"] == 4


@pytest.mark.asyncio
async def test_submit_requires_every_required_answer(client: httpx.AsyncClient) -> None:
    form = await _feedback_form(client)
    student = await login(client, "student@example.com")
    other = await login(client, "other@example.com")

    r = await client.post(
        "/feedback-submissions",
        json={
            "feedback_content_id": form["content_id"],
            "answers": [{"feedback_question_id": form["comment_id"], "answer_text": "Nothing"}],
        },
        headers=student["headers"],
    )
    submission_id = r.json()["data"]["id"]

    r = await client.post(f"/feedback-submissions/{submission_id}/submit", headers=student["headers"])
    assert r.status_code == 400
    body = r.json()
    assert body["message"] == "Please answer all required questions"
    assert [q["id"] for q in body["data"]["missing_questions"]] == [form["rating_id"]]

    r = await client.put(
        f"/feedback-submissions/{submission_id}",
        json={"answers": [{"feedback_question_id": form["rating_id"], "answer_value": 5}]},
        headers=other["headers"],
    )
    assert r.status_code == 403

    # PUT replaces the answer set wholesale.
    r = await client.put(
        f"/feedback-submissions/{submission_id}",
        json={"answers": [{"feedback_question_id": form["rating_id"], "answer_value": 5}]},
        headers=student["headers"],
    )
    assert r.status_code == 200
    assert [a["feedback_question_id"] for a in r.json()["data"]["answers"]] == [form["rating_id"]]

    r = await client.post(f"/feedback-submissions/{submission_id}/submit", headers=other["headers"])
    assert r.status_code == 403

    r = await client.post(f"/feedback-submissions/{submission_id}/submit", headers=student["headers"])
    assert r.status_code == 200
    submitted = r.json()["data"]
    assert submitted["status"] == "submitted"
    assert submitted["submission_date"] is not None

    r = await client.put(
        f"/feedback-submissions/{submission_id}",
        json={"answers": []},
        headers=student["headers"],
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_delete_allowed_for_owner_and_template_author(client: httpx.AsyncClient) -> None:
    form = await _feedback_form(client)
    student = await login(client, "student@example.com")
    other = await login(client, "other@example.com")

    r = await client.post(
        "/feedback-submissions",
        json={"feedback_content_id": form["content_id"]},
        headers=student["headers"],
    )
    submission_id = r.json()["data"]["id"]

    r = await client.get(f"/feedback-submissions/{submission_id}", headers=other["headers"])
    assert r.status_code == 403
    r = await client.delete(f"/feedback-submissions/{submission_id}", headers=other["headers"])
    assert r.status_code == 403

    r = await client.delete(f"/feedback-submissions/{submission_id}", headers=form["instructor"]["headers"])
    assert r.status_code == 200
    r = await client.get(f"/feedback-submissions/{submission_id}", headers=student["headers"])
    assert r.status_code == 404
