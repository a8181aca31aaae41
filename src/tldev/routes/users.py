from __future__ import annotations

import uuid
from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel, Field

from tldev.database import async_session
from tldev.services.user_store import UserStore

router = APIRouter(prefix="/users", tags=["users"])


class PushTokenRequest(BaseModel):
    user_id: str = Field(min_length=1)
    push_token: str = Field(min_length=1)
    device_type: str | None = None


class PushTokenResponse(BaseModel):
    success: bool = True
    user_id: uuid.UUID


class InterestsRequest(BaseModel):
    user_id: uuid.UUID
    interests: list[str]


class InterestsResponse(BaseModel):
    success: bool = True
    interests: list[str]


class IdentityRequest(BaseModel):
    email: str = Field(min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    name: str
    provider: Literal["google", "github", "apple"]
    provider_id: str = Field(min_length=1)
    avatar: str | None = None


class UserProfile(BaseModel):
    model_config = {"from_attributes": True}

    id: uuid.UUID
    email: str
    name: str | None
    avatar: str | None
    interests: list[str]


class IdentityResponse(BaseModel):
    success: bool = True
    user: UserProfile


@router.post("/push-token", response_model=PushTokenResponse)
async def register_push_token(body: PushTokenRequest):
    # user_id here is the device's install id; one row per device.
    async with async_session() as db:
        user = await UserStore(db).register_push_token(
            body.user_id, body.push_token, body.device_type
        )
        await db.commit()
        return PushTokenResponse(user_id=user.id)


@router.post("/interests", response_model=InterestsResponse)
async def update_interests(body: InterestsRequest):
    async with async_session() as db:
        user = await UserStore(db).set_interests(body.user_id, body.interests)
        await db.commit()
        return InterestsResponse(interests=user.interests)


@router.post("/identity", response_model=IdentityResponse)
async def identify(body: IdentityRequest):
    """Record an OAuth sign-in. Session tokens are issued by the auth layer."""
    async with async_session() as db:
        user = await UserStore(db).get_or_create_by_provider(
            body.provider, body.provider_id, body.email, body.name, body.avatar
        )
        await db.commit()
        return IdentityResponse(user=UserProfile.model_validate(user))
