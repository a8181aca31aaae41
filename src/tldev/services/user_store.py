from __future__ import annotations

import uuid

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tldev.database import insert_for
from tldev.models import User


def anonymous_email(user_id: uuid.UUID) -> str:
    return f"{user_id}@anonymous.local"


def device_email(device_id: str) -> str:
    return f"{device_id}@device.tldev"


class UserStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_or_create(self, user_id: uuid.UUID) -> User:
        """Lazily create an anonymous user the first time an id shows up."""
        user = await self.db.get(User, user_id)
        if user:
            return user

        await self.db.execute(
            insert_for(self.db, User)
            .values(id=user_id, email=anonymous_email(user_id), interests=[])
            .on_conflict_do_nothing()
        )
        await self.db.flush()
        return await self.db.get(User, user_id)

    async def register_push_token(
        self, device_id: str, push_token: str, device_type: str | None = None
    ) -> User:
        email = device_email(device_id)
        user = await self.db.scalar(select(User).where(User.email == email))
        if user is None:
            user = User(email=email, push_token=push_token, device_type=device_type or "unknown")
            self.db.add(user)
        else:
            user.push_token = push_token
            if device_type:
                user.device_type = device_type
        await self.db.flush()
        return user

    async def set_interests(self, user_id: uuid.UUID, interests: list[str]) -> User:
        user = await self.get_or_create(user_id)
        user.interests = list(dict.fromkeys(interests))
        await self.db.flush()
        return user

    async def with_push_tokens(self) -> list[User]:
        stmt = (
            select(User)
            .where(User.push_token.is_not(None))
            .order_by(User.created_at, User.id)
        )
        return list((await self.db.scalars(stmt)).all())

    async def latest_push_token(self) -> User | None:
        """Newest device with a real token; seeded "test" tokens are skipped."""
        stmt = (
            select(User)
            .where(User.push_token.is_not(None), User.push_token.not_like("%test%"))
            .order_by(User.created_at.desc(), User.id.desc())
            .limit(1)
        )
        return await self.db.scalar(stmt)

    async def get_or_create_by_provider(
        self,
        provider: str,
        provider_id: str,
        email: str,
        name: str | None = None,
        avatar: str | None = None,
    ) -> User:
        stmt = select(User).where(User.provider == provider, User.provider_id == provider_id)
        user = await self.db.scalar(stmt)
        if user:
            return user

        await self.db.execute(
            insert_for(self.db, User)
            .values(
                id=uuid.uuid4(),
                email=email,
                provider=provider,
                provider_id=provider_id,
                name=name,
                avatar=avatar,
                interests=[],
            )
            .on_conflict_do_nothing()
        )
        await self.db.flush()
        user = await self.db.scalar(stmt)
        if user is None:
            raise HTTPException(status_code=409, detail="Email already belongs to another account")
        return user
