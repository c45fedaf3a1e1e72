"""
academy_api.db.repositories.identity

Repositories for users, environments and environment membership.
"""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from academy_api.db.models import Environment, EnvironmentUser, User, UserRole


class UserRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: uuid.UUID) -> User | None:
        return await self._session.get(User, user_id)

    async def get_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == email.lower())
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def get_many(self, user_ids: list[uuid.UUID]) -> dict[uuid.UUID, User]:
        if not user_ids:
            return {}
        rows = (await self._session.execute(select(User).where(User.id.in_(user_ids)))).scalars()
        return {u.id: u for u in rows}

    async def upsert(
        self,
        *,
        email: str,
        name: str,
        role: UserRole,
        company_name: str | None = None,
    ) -> User:
        user = await self.get_by_email(email)
        if user is None:
            user = User(email=email.lower(), name=name, role=role, company_name=company_name)
            self._session.add(user)
        else:
            user.name = name
            user.role = role
            user.company_name = company_name
        await self._session.flush()
        return user


class EnvironmentRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, *, name: str, owner_id: uuid.UUID, domain: str | None = None) -> Environment:
        env = Environment(name=name, owner_id=owner_id, domain=domain)
        self._session.add(env)
        await self._session.flush()
        self._session.add(EnvironmentUser(environment_id=env.id, user_id=owner_id, role="admin"))
        await self._session.flush()
        return env

    async def get(self, environment_id: uuid.UUID) -> Environment | None:
        return await self._session.get(Environment, environment_id)

    async def list_for_user(self, user_id: uuid.UUID) -> list[Environment]:
        stmt = (
            select(Environment)
            .join(EnvironmentUser, EnvironmentUser.environment_id == Environment.id)
            .where(EnvironmentUser.user_id == user_id)
            .order_by(Environment.created_at)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def get_membership(
        self, environment_id: uuid.UUID, user_id: uuid.UUID
    ) -> EnvironmentUser | None:
        stmt = select(EnvironmentUser).where(
            EnvironmentUser.environment_id == environment_id,
            EnvironmentUser.user_id == user_id,
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def ensure_member(
        self, environment_id: uuid.UUID, user_id: uuid.UUID, *, role: str = "member"
    ) -> EnvironmentUser:
        membership = await self.get_membership(environment_id, user_id)
        if membership is None:
            membership = EnvironmentUser(environment_id=environment_id, user_id=user_id, role=role)
            self._session.add(membership)
            await self._session.flush()
        return membership
