"""
tests.test_teams

Team management, invitations and member roles.
"""

from __future__ import annotations

import httpx
import pytest

from tests.support import create_environment, in_env, login


async def _team(client: httpx.AsyncClient) -> dict:
    owner = await login(client, "lead@example.com", role="instructor", name="Lead")
    env_id = await create_environment(client, owner)
    r = await client.post(
        "/teams",
        json={"name": "Content", "description": "Course writers"},
        headers=in_env(owner, env_id),
    )
    assert r.status_code == 201, r.text
    return {"owner": owner, "env_id": env_id, "team": r.json()["data"]}


async def _invite_and_accept(client: httpx.AsyncClient, ctx: dict, email: str, role: str = "member") -> dict:
    team_id = ctx["team"]["id"]
    r = await client.post(
        f"/teams/{team_id}/invitations",
        json={"email": email, "role": role},
        headers=in_env(ctx["owner"], ctx["env_id"]),
    )
    assert r.status_code == 201, r.text
    invitee = await login(client, email)
    r = await client.post(f"/teams/invitations/{r.json()['data']['token']}/accept", headers=invitee["headers"])
    assert r.status_code == 200, r.text
    return invitee


@pytest.mark.asyncio
async def test_team_crud(client: httpx.AsyncClient) -> None:
    ctx = await _team(client)
    headers = in_env(ctx["owner"], ctx["env_id"])
    team = ctx["team"]
    assert team["member_count"] == 1
    assert team["environment_id"] == ctx["env_id"]

    r = await client.get("/teams", headers=headers)
    assert [(t["name"], t["member_count"]) for t in r.json()["data"]] == [("Content", 1)]

    r = await client.get(f"/teams/{team['id']}", headers=headers)
    members = r.json()["data"]["members"]
    assert [(m["user_id"], m["role"]) for m in members] == [(ctx["owner"]["user_id"], "admin")]

    r = await client.put(f"/teams/{team['id']}", json={"name": "Authors"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["name"] == "Authors"
    assert r.json()["data"]["description"] == "Course writers"

    r = await client.put(f"/teams/{team['id']}", json={"name": None, "description": "Writers"}, headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["data"]["name"] == "Authors"
    assert r.json()["data"]["description"] == "Writers"

    other_owner = await login(client, "other@example.com")
    other_env = await create_environment(client, other_owner, name="Elsewhere")
    r = await client.get(f"/teams/{team['id']}", headers=in_env(other_owner, other_env))
    assert r.status_code == 404

    r = await client.delete(f"/teams/{team['id']}", headers=headers)
    assert r.status_code == 200
    r = await client.get(f"/teams/{team['id']}", headers=headers)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_invitations(client: httpx.AsyncClient) -> None:
    ctx = await _team(client)
    headers = in_env(ctx["owner"], ctx["env_id"])
    url = f"/teams/{ctx['team']['id']}/invitations"

    r = await client.post(url, json={"email": "Writer@Example.com"}, headers=headers)
    assert r.status_code == 201
    invitation = r.json()["data"]
    assert invitation["email"] == "writer@example.com"
    assert invitation["role"] == "member"
    assert len(invitation["token"]) == 40

    r = await client.post(url, json={"email": "writer@example.com"}, headers=headers)
    assert r.status_code == 422
    assert r.json()["errors"]["email"] == ["An invitation has already been sent to this email."]

    r = await client.post(url, json={"email": "lead@example.com"}, headers=headers)
    assert r.status_code == 422
    assert r.json()["errors"]["email"] == ["This user is already a member of the team."]

    r = await client.post(url, json={"email": "not-an-email"}, headers=headers)
    assert r.status_code == 422

    stranger = await login(client, "stranger@example.com")
    r = await client.post(f"/teams/invitations/{invitation['token']}/accept", headers=stranger["headers"])
    assert r.status_code == 403

    r = await client.post("/teams/invitations/nope/accept", headers=stranger["headers"])
    assert r.status_code == 404

    writer = await login(client, "writer@example.com")
    r = await client.post(f"/teams/invitations/{invitation['token']}/accept", headers=writer["headers"])
    assert r.status_code == 200
    assert r.json()["message"] == "Invitation accepted successfully"

    r = await client.post(f"/teams/invitations/{invitation['token']}/accept", headers=writer["headers"])
    assert r.status_code == 404

    r = await client.get(f"/teams/{ctx['team']['id']}", headers=headers)
    assert r.json()["data"]["member_count"] == 2

    r = await client.post(url, json={"email": "someone@example.com"}, headers=in_env(writer, ctx["env_id"]))
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_member_roles_and_removal(client: httpx.AsyncClient) -> None:
    ctx = await _team(client)
    headers = in_env(ctx["owner"], ctx["env_id"])
    team_id = ctx["team"]["id"]
    writer = await _invite_and_accept(client, ctx, "writer@example.com")
    editor = await _invite_and_accept(client, ctx, "editor@example.com")

    r = await client.put(
        f"/teams/{team_id}/members/{editor['user_id']}",
        json={"role": "admin"},
        headers=in_env(writer, ctx["env_id"]),
    )
    assert r.status_code == 403

    r = await client.put(f"/teams/{team_id}/members/{editor['user_id']}", json={"role": "admin"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["data"] == {"user_id": editor["user_id"], "role": "admin"}

    r = await client.put(f"/teams/{team_id}/members/{editor['user_id']}", json={"role": "owner"}, headers=headers)
    assert r.status_code == 422

    r = await client.delete(f"/teams/{team_id}/members/{editor['user_id']}", headers=in_env(writer, ctx["env_id"]))
    assert r.status_code == 403

    # Members may always leave on their own.
    r = await client.delete(f"/teams/{team_id}/members/{writer['user_id']}", headers=in_env(writer, ctx["env_id"]))
    assert r.status_code == 200

    r = await client.delete(f"/teams/{team_id}/members/{writer['user_id']}", headers=headers)
    assert r.status_code == 404

    r = await client.put(f"/teams/{team_id}", json={"name": "Editors"}, headers=in_env(editor, ctx["env_id"]))
    assert r.status_code == 200

    r = await client.get(f"/teams/{team_id}", headers=headers)
    roles = {m["user_id"]: m["role"] for m in r.json()["data"]["members"]}
    assert roles == {ctx["owner"]["user_id"]: "admin", editor["user_id"]: "admin"}
