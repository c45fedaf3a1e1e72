"""
tests.test_certificates

Certificate content authoring plus the external rendering/verification flow.
"""

from __future__ import annotations

import json

import httpx
import pytest

from tests.support import Upstream, create_environment, login, published_course, template_with_activities

LOGIN = "/api/login"
GENERATE = "/api/certificates/generate"
VERIFY = "/api/certificates/verify"


def _script_certificate_service(upstream: Upstream, *, expire_first_token: bool = False) -> None:
    tokens = iter(["tok-1", "tok-2", "tok-3"])
    state = {"rejected": False}

    def login_handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": {"access_token": next(tokens)}})

    def generate_handler(request: httpx.Request) -> httpx.Response:
        if expire_first_token and not state["rejected"]:
            state["rejected"] = True
            return httpx.Response(401, json={"message": "expired"})
        return httpx.Response(
            200,
            json={
                "data": {
                    "certificate_url": "https://certs.test/files/cert.pdf",
                    "preview_url": "https://certs.test/files/cert.png",
                }
            },
        )

    upstream.on("POST", LOGIN, login_handler)
    upstream.on("POST", GENERATE, generate_handler)


async def _certificate_activity(client: httpx.AsyncClient) -> dict:
    instructor = await login(client, "instructor@example.com", role="instructor")
    env_id = await create_environment(client, instructor)
    tree = await template_with_activities(
        client,
        instructor,
        env_id,
        [
            {"title": "Lesson", "activity_type": "text"},
            {"title": "Certificate", "activity_type": "certificate"},
        ],
        title="Data Literacy",
    )
    return {
        "instructor": instructor,
        "env_id": env_id,
        "template_id": tree["template_id"],
        "lesson": tree["activities"][0],
        "activity": tree["activities"][1],
    }


async def _create_content(client: httpx.AsyncClient, ctx: dict, **fields) -> dict:
    r = await client.post(
        f"/activities/{ctx['activity']['id']}/certificate-content",
        json={"title": "Certificate of Completion", "certificate_type": "completion", **fields},
        headers=ctx["instructor"]["headers"],
    )
    assert r.status_code == 201, r.text
    return r.json()["data"]


@pytest.mark.asyncio
async def test_certificate_content_crud_rules(client: httpx.AsyncClient) -> None:
    ctx = await _certificate_activity(client)
    stranger = await login(client, "stranger@example.com", role="instructor")
    url = f"/activities/{ctx['activity']['id']}/certificate-content"
    payload = {"title": "Certificate", "certificate_type": "completion"}

    r = await client.post(
        f"/activities/{ctx['lesson']['id']}/certificate-content",
        json=payload,
        headers=ctx["instructor"]["headers"],
    )
    assert r.status_code == 400

    r = await client.post(url, json=payload, headers=stranger["headers"])
    assert r.status_code == 403

    content = await _create_content(
        client, ctx, completion_criteria={"type": "percentage", "value": 80}, expiry_period=2, expiry_period_unit="years"
    )
    assert content["template_design"] == "standard"
    assert content["template_name"] == "default"
    assert content["completion_criteria"] == {"type": "percentage", "value": 80, "activities": []}

    r = await client.post(url, json=payload, headers=ctx["instructor"]["headers"])
    assert r.status_code == 409

    r = await client.put(
        f"{url}/{content['id']}",
        json={"signatory_name": "Dr. Ada", "verification_method": "qr"},
        headers=ctx["instructor"]["headers"],
    )
    assert r.status_code == 200
    assert r.json()["data"]["signatory_name"] == "Dr. Ada"
    assert r.json()["data"]["title"] == "Certificate of Completion"

    r = await client.get(url, headers=stranger["headers"])
    assert r.json()["data"]["id"] == content["id"]

    r = await client.delete(f"{url}/{content['id']}", headers=stranger["headers"])
    assert r.status_code == 403
    r = await client.delete(f"{url}/{content['id']}", headers=ctx["instructor"]["headers"])
    assert r.status_code == 200
    r = await client.get(url, headers=ctx["instructor"]["headers"])
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_update_keeps_criteria_defaults_and_ignores_nulls(client: httpx.AsyncClient) -> None:
    ctx = await _certificate_activity(client)
    content = await _create_content(client, ctx, signatory_name="Dr. Ada")
    url = f"/activities/{ctx['activity']['id']}/certificate-content/{content['id']}"

    r = await client.put(
        url,
        json={"completion_criteria": {"type": "specific_activities"}, "title": None, "certificate_type": None},
        headers=ctx["instructor"]["headers"],
    )
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["completion_criteria"] == {"type": "specific_activities", "value": None, "activities": []}
    assert data["title"] == "Certificate of Completion"
    assert data["certificate_type"] == "completion"
    assert data["signatory_name"] == "Dr. Ada"


@pytest.mark.asyncio
async def test_generate_logs_in_and_retries_once_on_expired_token(
    client: httpx.AsyncClient, upstream: Upstream
) -> None:
    _script_certificate_service(upstream, expire_first_token=True)
    ctx = await _certificate_activity(client)
    content = await _create_content(client, ctx, template_name="classic")

    r = await client.post(
        f"/activities/{ctx['activity']['id']}/certificate-content/{content['id']}/generate",
        json={"fullName": "Grace Hopper", "certificateDate": "March 01, 2026", "additionalData": {"grade": "A"}},
        headers=ctx["instructor"]["headers"],
    )
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["fileUrl"] == "https://certs.test/files/cert.pdf"
    assert len(data["accessCode"]) == 8

    assert len(upstream.calls(LOGIN)) == 2
    generate_calls = upstream.calls(GENERATE)
    assert [c.headers["Authorization"] for c in generate_calls] == ["Bearer tok-1", "Bearer tok-2"]
    sent = json.loads(generate_calls[-1].content)
    assert sent["template_name"] == "classic"
    assert sent["data"]["fullName"] == "Grace Hopper"
    assert sent["data"]["courseTitle"] == "Data Literacy"
    assert sent["data"]["certificateDate"] == "March 01, 2026"
    assert sent["data"]["grade"] == "A"
    assert sent["data"]["accessCode"] == data["accessCode"]

    r = await client.get(
        f"/activities/{ctx['activity']['id']}/certificate-content", headers=ctx["instructor"]["headers"]
    )
    assert r.json()["data"]["metadata"]["certificate_url"] == "https://certs.test/files/cert.pdf"


@pytest.mark.asyncio
async def test_generate_failure_is_reported(client: httpx.AsyncClient, upstream: Upstream) -> None:
    upstream.on("POST", LOGIN, lambda _: httpx.Response(200, json={"data": {"access_token": "tok"}}))
    upstream.on("POST", GENERATE, lambda _: httpx.Response(200, json={"data": {}}))
    ctx = await _certificate_activity(client)
    content = await _create_content(client, ctx)

    r = await client.post(
        f"/activities/{ctx['activity']['id']}/certificate-content/{content['id']}/generate",
        json={"fullName": "Grace Hopper"},
        headers=ctx["instructor"]["headers"],
    )
    assert r.status_code == 500
    assert r.json()["message"] == "Failed to generate certificate"


@pytest.mark.asyncio
async def test_issue_requires_enrollment(client: httpx.AsyncClient, upstream: Upstream) -> None:
    _script_certificate_service(upstream)
    ctx = await _certificate_activity(client)
    content = await _create_content(client, ctx, expiry_period=30, expiry_period_unit="days")
    course = await published_course(
        client, ctx["instructor"], ctx["env_id"], title="Data Literacy 101", template_id=ctx["template_id"]
    )
    student = await login(client, "student@example.com", name="Student One")

    r = await client.post(f"/certificate-content/{content['id']}/issue", json={}, headers=student["headers"])
    assert r.status_code == 422

    await client.post("/enrollments", json={"course_id": course["id"]}, headers=student["headers"])
    r = await client.post(f"/certificate-content/{content['id']}/issue", json={}, headers=student["headers"])
    assert r.status_code == 201, r.text
    issued = r.json()["data"]
    assert issued["status"] == "issued"
    assert issued["course_id"] == course["id"]
    assert issued["user_id"] == student["user_id"]
    assert issued["expiry_date"] is not None
    assert issued["custom_fields"]["recipient_name"] == "Student One"
    assert issued["custom_fields"]["course_title"] == "Data Literacy 101"

    sent = json.loads(upstream.calls(GENERATE)[-1].content)
    assert sent["data"]["accessCode"] == issued["certificate_number"]
    assert sent["data"]["expiryDate"] is not None


@pytest.mark.asyncio
async def test_verify_relays_service_answer(client: httpx.AsyncClient, upstream: Upstream) -> None:
    upstream.on("POST", LOGIN, lambda _: httpx.Response(200, json={"data": {"access_token": "tok"}}))

    def verify_handler(request: httpx.Request) -> httpx.Response:
        code = json.loads(request.content)["accessCode"]
        if code == "GOODCODE":
            return httpx.Response(200, json={"valid": True, "recipient": "Grace Hopper"})
        return httpx.Response(404, json={"message": "not found"})

    upstream.on("POST", VERIFY, verify_handler)

    r = await client.post("/certificates/verify", json={"accessCode": "GOODCODE"})
    assert r.status_code == 200
    assert r.json()["data"] == {"valid": True, "recipient": "Grace Hopper"}

    r = await client.post("/certificates/verify", json={"accessCode": "BADCODE"})
    assert r.status_code == 404
    assert r.json()["message"] == "Certificate not found or invalid"
