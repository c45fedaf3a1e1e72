"""
tests.support

Helpers shared by the API tests (scripted upstream, dev tokens, tenants).
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx

Handler = Callable[[httpx.Request], httpx.Response]


class Upstream:
    """Scripted stand-in for every external service, keyed by method and URL path."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Handler] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, handler: Handler) -> None:
        self.routes[(method.upper(), path)] = handler

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": "no route"})
        return handler(request)


async def login(
    client: httpx.AsyncClient,
    email: str,
    *,
    role: str = "student",
    name: str | None = None,
) -> dict[str, Any]:
    r = await client.post(
        "/v1/dev/token",
        json={"email": email, "name": name or email.split("@")[0], "role": role},
    )
    assert r.status_code == 200, r.text
    body = r.json()
    return {"headers": {"Authorization": f"Bearer {body['access_token']}"}, "user_id": body["user_id"]}


async def create_environment(client: httpx.AsyncClient, owner: dict[str, Any], name: str = "Acme Academy") -> str:
    r = await client.post("/environments", json={"name": name}, headers=owner["headers"])
    assert r.status_code == 201, r.text
    return r.json()["data"]["id"]


def in_env(actor: dict[str, Any], environment_id: str) -> dict[str, str]:
    return {**actor["headers"], "X-Environment-ID": environment_id}


async def published_course(
    client: httpx.AsyncClient,
    owner: dict[str, Any],
    environment_id: str,
    *,
    title: str = "Intro to Testing",
    template_id: str | None = None,
    enrollment_limit: int | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {"title": title, "status": "published"}
    if template_id is not None:
        payload["template_id"] = template_id
    if enrollment_limit is not None:
        payload["enrollment_limit"] = enrollment_limit
    r = await client.post("/courses", json=payload, headers=in_env(owner, environment_id))
    assert r.status_code == 201, r.text
    return r.json()["data"]


async def template_with_activities(
    client: httpx.AsyncClient,
    owner: dict[str, Any],
    environment_id: str,
    activities: list[dict[str, Any]],
    *,
    title: str = "Course Template",
) -> dict[str, Any]:
    """Create a one-block template and return `{"template_id", "activities"}`."""
    headers = in_env(owner, environment_id)
    r = await client.post("/templates", json={"title": title}, headers=headers)
    assert r.status_code == 201, r.text
    template_id = r.json()["data"]["id"]

    r = await client.post(f"/templates/{template_id}/blocks", json={"title": "Block 1"}, headers=headers)
    assert r.status_code == 201, r.text
    block_id = r.json()["data"]["id"]

    created = []
    for order, spec in enumerate(activities):
        r = await client.post(
            f"/blocks/{block_id}/activities",
            json={"order": order, **spec},
            headers=headers,
        )
        assert r.status_code == 201, r.text
        created.append(r.json()["data"])
    return {"template_id": template_id, "activities": created}
