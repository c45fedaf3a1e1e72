"""
academy_api.api.routers.teams

Teams inside an environment.

Responsibilities:
- Create, list, read, update and delete teams.
- Invite members by email and accept invitations by token.
- Change member roles and remove members.
"""

from __future__ import annotations

import secrets
import string
import uuid

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import (
    HTTP_201_CREATED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_422_UNPROCESSABLE_ENTITY,
)

from academy_api.api.deps import EMAIL_PATTERN, current_environment, db_session
from academy_api.api.responses import ApiError, success
from academy_api.api.serializers import invitation_out, team_member_out, team_out
from academy_api.auth.deps import get_current_user
from academy_api.db.models import Environment, Team, TeamRole, User
from academy_api.db.repositories.identity import EnvironmentRepo
from academy_api.db.repositories.teams import TeamRepo
from academy_api.observability.logging import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/teams", tags=["teams"])

INVITATION_TOKEN_LENGTH = 40


def generate_invitation_token() -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(INVITATION_TOKEN_LENGTH))


class TeamCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None


class TeamUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None


class InvitationCreate(BaseModel):
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    role: TeamRole = TeamRole.member


class MemberRoleUpdate(BaseModel):
    role: TeamRole


async def _team(session: AsyncSession, team_id: uuid.UUID, environment: Environment) -> Team:
    team = await TeamRepo(session).get(team_id)
    if team is None or team.environment_id != environment.id:
        raise ApiError(HTTP_404_NOT_FOUND, "Team not found")
    return team


async def _is_team_admin(session: AsyncSession, team: Team, user: User) -> bool:
    member = await TeamRepo(session).get_member(team.id, user.id)
    return member is not None and member.role == TeamRole.admin


async def _require_team_admin(session: AsyncSession, team: Team, user: User) -> None:
    if not await _is_team_admin(session, team, user):
        raise ApiError(HTTP_403_FORBIDDEN, "Only team admins can perform this action")


@router.get("")
async def list_teams(
    _: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    teams = TeamRepo(session)
    rows = await teams.list_for_environment(environment.id)
    counts = await teams.member_counts([t.id for t in rows])
    return success([team_out(t, member_count=counts.get(t.id, 0)) for t in rows])


@router.post("")
async def create_team(
    body: TeamCreate,
    user: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    team = await TeamRepo(session).create(
        environment_id=environment.id,
        created_by=user.id,
        name=body.name,
        description=body.description,
    )
    await session.commit()
    log.info("team_created", team_id=str(team.id), environment_id=str(environment.id))
    return success(
        team_out(team, member_count=1),
        message="Team created successfully",
        status_code=HTTP_201_CREATED,
    )


@router.get("/{team_id}")
async def get_team(
    team_id: uuid.UUID,
    _: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    team = await _team(session, team_id, environment)
    members = await TeamRepo(session).members(team.id)
    out = team_out(team, member_count=len(members))
    out["members"] = [team_member_out(m, u) for m, u in members]
    return success(out)


@router.put("/{team_id}")
async def update_team(
    team_id: uuid.UUID,
    body: TeamUpdate,
    user: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    team = await _team(session, team_id, environment)
    await _require_team_admin(session, team, user)
    for field, value in body.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(team, field, value)
    await session.commit()
    return success(team_out(team), message="Team updated successfully")


@router.delete("/{team_id}")
async def delete_team(
    team_id: uuid.UUID,
    user: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    team = await _team(session, team_id, environment)
    await _require_team_admin(session, team, user)
    await TeamRepo(session).delete(team)
    await session.commit()
    log.info("team_deleted", team_id=str(team_id))
    return success(None, message="Team deleted successfully")


@router.post("/{team_id}/invitations")
async def invite_member(
    team_id: uuid.UUID,
    body: InvitationCreate,
    user: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    team = await _team(session, team_id, environment)
    await _require_team_admin(session, team, user)

    teams = TeamRepo(session)
    if await teams.member_by_email(team.id, body.email) is not None:
        raise ApiError(
            HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation failed",
            errors={"email": ["This user is already a member of the team."]},
        )
    if await teams.pending_invitation(team.id, body.email) is not None:
        raise ApiError(
            HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation failed",
            errors={"email": ["An invitation has already been sent to this email."]},
        )

    invitation = await teams.create_invitation(
        team_id=team.id,
        email=body.email,
        role=body.role,
        token=generate_invitation_token(),
        invited_by=user.id,
    )
    await session.commit()
    log.info("team_invitation_created", team_id=str(team.id), invitation_id=str(invitation.id))
    return success(
        invitation_out(invitation),
        message="Invitation sent successfully",
        status_code=HTTP_201_CREATED,
    )


@router.post("/invitations/{token}/accept")
async def accept_invitation(
    token: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    teams = TeamRepo(session)
    invitation = await teams.invitation_by_token(token)
    if invitation is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Invitation not found")
    if invitation.email != user.email.lower():
        raise ApiError(HTTP_403_FORBIDDEN, "This invitation was sent to a different email address")

    team = await teams.get(invitation.team_id)
    if team is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Team not found")
    if await teams.get_member(team.id, user.id) is None:
        await teams.add_member(team.id, user.id, invitation.role)
    await EnvironmentRepo(session).ensure_member(team.environment_id, user.id)
    await teams.delete_invitation(invitation)
    await session.commit()
    log.info("team_invitation_accepted", team_id=str(team.id), user_id=str(user.id))
    return success(team_out(team), message="Invitation accepted successfully")


@router.delete("/{team_id}/members/{user_id}")
async def remove_member(
    team_id: uuid.UUID,
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    team = await _team(session, team_id, environment)
    if user_id != user.id:
        await _require_team_admin(session, team, user)
    teams = TeamRepo(session)
    member = await teams.get_member(team.id, user_id)
    if member is None:
        raise ApiError(HTTP_404_NOT_FOUND, "User is not a member of this team")
    await teams.remove_member(member)
    await session.commit()
    return success(None, message="Member removed successfully")


@router.put("/{team_id}/members/{user_id}")
async def update_member_role(
    team_id: uuid.UUID,
    user_id: uuid.UUID,
    body: MemberRoleUpdate,
    user: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    team = await _team(session, team_id, environment)
    await _require_team_admin(session, team, user)
    member = await TeamRepo(session).get_member(team.id, user_id)
    if member is None:
        raise ApiError(HTTP_404_NOT_FOUND, "User is not a member of this team")
    member.role = body.role
    await session.commit()
    return success({"user_id": member.user_id, "role": member.role}, message="Member role updated successfully")
