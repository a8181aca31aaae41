from __future__ import annotations

import random
import uuid
from datetime import datetime

from fastapi import APIRouter, Query
from pydantic import BaseModel

from tldev.config import settings
from tldev.database import async_session
from tldev.models import ActionType, TipSource
from tldev.services.action_store import ActionChange, ActionStore
from tldev.services.tip_store import TipStore

router = APIRouter(prefix="/tips", tags=["tips"])


class TipResponse(BaseModel):
    id: uuid.UUID
    headline: str
    summary: str | None
    detail: str | None
    code_snippet: str | None
    category: str
    tags: list[str]
    image: dict | None
    view_more: dict | None
    likes_count: int
    saves_count: int
    shares_count: int
    views_count: int
    created_at: datetime

    model_config = {"from_attributes": True}


class TipDetailResponse(TipResponse):
    source: TipSource
    ai_model: str | None


class FeedResponse(BaseModel):
    items: list[TipResponse]
    next_cursor: uuid.UUID | None


class ActionRequest(BaseModel):
    user_id: uuid.UUID
    action_type: ActionType


class ActionResponse(BaseModel):
    success: bool = True
    action: ActionChange
    action_type: ActionType


@router.get("", response_model=FeedResponse)
async def list_tips(
    limit: int = Query(20, ge=1),
    cursor: uuid.UUID | None = None,
    category: str | None = None,
    categories: str | None = None,
    shuffle: bool = False,
):
    limit = min(limit, settings.feed_max_limit)
    wanted = [c for c in (categories or "").split(",") if c] or None

    async with async_session() as db:
        tips, next_cursor = await TipStore(db).feed(
            limit=limit, cursor=cursor, category=category, categories=wanted
        )
        items = [TipResponse.model_validate(t) for t in tips]

    # Order within the page only; the cursor still follows created_at.
    if shuffle:
        random.shuffle(items)
    return FeedResponse(items=items, next_cursor=next_cursor)


@router.get("/{tip_id}", response_model=TipDetailResponse)
async def get_tip(tip_id: uuid.UUID):
    async with async_session() as db:
        tip = await TipStore(db).get_and_count_view(tip_id)
        return TipDetailResponse.model_validate(tip)


@router.post("/{tip_id}/action", response_model=ActionResponse)
async def apply_action(tip_id: uuid.UUID, body: ActionRequest):
    async with async_session() as db:
        result = await ActionStore(db).apply(body.user_id, tip_id, body.action_type)
    return ActionResponse(action=result.action, action_type=result.action_type)
