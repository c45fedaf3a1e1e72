"""
academy_api.db.repositories.teams

Repository for teams, team members and invitations.
"""

from __future__ import annotations

import uuid

from sqlalchemy import delete, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from academy_api.db.models import Team, TeamInvitation, TeamMember, TeamRole, User


class TeamRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        environment_id: uuid.UUID,
        created_by: uuid.UUID,
        name: str,
        description: str | None = None,
    ) -> Team:
        team = Team(
            environment_id=environment_id,
            created_by=created_by,
            name=name,
            description=description,
        )
        self._session.add(team)
        await self._session.flush()
        self._session.add(TeamMember(team_id=team.id, user_id=created_by, role=TeamRole.admin))
        await self._session.flush()
        return team

    async def get(self, team_id: uuid.UUID) -> Team | None:
        return await self._session.get(Team, team_id)

    async def list_for_environment(self, environment_id: uuid.UUID) -> list[Team]:
        stmt = (
            select(Team)
            .where(Team.environment_id == environment_id)
            .order_by(desc(Team.created_at))
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def member_counts(self, team_ids: list[uuid.UUID]) -> dict[uuid.UUID, int]:
        if not team_ids:
            return {}
        stmt = (
            select(TeamMember.team_id, func.count(TeamMember.id))
            .where(TeamMember.team_id.in_(team_ids))
            .group_by(TeamMember.team_id)
        )
        return {team_id: int(n) for team_id, n in (await self._session.execute(stmt)).all()}

    async def delete(self, team: Team) -> None:
        await self._session.execute(delete(TeamInvitation).where(TeamInvitation.team_id == team.id))
        await self._session.execute(delete(TeamMember).where(TeamMember.team_id == team.id))
        await self._session.delete(team)
        await self._session.flush()

    async def members(self, team_id: uuid.UUID) -> list[tuple[TeamMember, User]]:
        stmt = (
            select(TeamMember, User)
            .join(User, User.id == TeamMember.user_id)
            .where(TeamMember.team_id == team_id)
            .order_by(TeamMember.created_at)
        )
        return [(m, u) for m, u in (await self._session.execute(stmt)).all()]

    async def get_member(self, team_id: uuid.UUID, user_id: uuid.UUID) -> TeamMember | None:
        stmt = select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def member_by_email(self, team_id: uuid.UUID, email: str) -> TeamMember | None:
        stmt = (
            select(TeamMember)
            .join(User, User.id == TeamMember.user_id)
            .where(TeamMember.team_id == team_id, User.email == email.lower())
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def add_member(self, team_id: uuid.UUID, user_id: uuid.UUID, role: TeamRole) -> TeamMember:
        member = TeamMember(team_id=team_id, user_id=user_id, role=role)
        self._session.add(member)
        await self._session.flush()
        return member

    async def remove_member(self, member: TeamMember) -> None:
        await self._session.delete(member)
        await self._session.flush()

    async def create_invitation(
        self, *, team_id: uuid.UUID, email: str, role: TeamRole, token: str, invited_by: uuid.UUID
    ) -> TeamInvitation:
        invitation = TeamInvitation(
            team_id=team_id, email=email.lower(), role=role, token=token, invited_by=invited_by
        )
        self._session.add(invitation)
        await self._session.flush()
        return invitation

    async def pending_invitation(self, team_id: uuid.UUID, email: str) -> TeamInvitation | None:
        stmt = select(TeamInvitation).where(
            TeamInvitation.team_id == team_id, TeamInvitation.email == email.lower()
        )
        return (await self._session.execute(stmt)).scalars().first()

    async def invitation_by_token(self, token: str) -> TeamInvitation | None:
        stmt = select(TeamInvitation).where(TeamInvitation.token == token)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def delete_invitation(self, invitation: TeamInvitation) -> None:
        await self._session.delete(invitation)
        await self._session.flush()
