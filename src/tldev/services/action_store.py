from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass

from fastapi import HTTPException
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tldev.database import insert_for
from tldev.models import Action, ActionType, Tip
from tldev.services.user_store import UserStore

logger = logging.getLogger(__name__)

COUNTER_COLUMNS: dict[ActionType, str] = {
    ActionType.like: "likes_count",
    ActionType.save: "saves_count",
    ActionType.share: "shares_count",
}


class ActionChange(str, enum.Enum):
    added = "added"
    removed = "removed"


@dataclass
class ActionResult:
    action: ActionChange
    action_type: ActionType
    changed: bool = True


class ActionStore:
    """Likes and saves toggle; shares only ever add.

    The action row and the tip counter move together in one transaction, and
    the counter only moves when the insert or delete actually hit a row.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def apply(
        self, user_id: uuid.UUID, tip_id: uuid.UUID, action_type: ActionType
    ) -> ActionResult:
        if await self.db.scalar(select(Tip.id).where(Tip.id == tip_id)) is None:
            raise HTTPException(status_code=404, detail="Tip not found")
        await UserStore(self.db).get_or_create(user_id)

        if action_type != ActionType.share:
            if await self._delete(user_id, tip_id, action_type):
                await self._bump(tip_id, action_type, -1)
                await self.db.commit()
                return ActionResult(ActionChange.removed, action_type)

        inserted = await self._insert(user_id, tip_id, action_type)
        if inserted:
            await self._bump(tip_id, action_type, 1)
        await self.db.commit()
        return ActionResult(ActionChange.added, action_type, changed=inserted)

    async def count(self, tip_id: uuid.UUID, action_type: ActionType) -> int:
        return await self.db.scalar(
            select(func.count())
            .select_from(Action)
            .where(Action.tip_id == tip_id, Action.action_type == action_type)
        )

    async def _insert(self, user_id: uuid.UUID, tip_id: uuid.UUID, action_type: ActionType) -> bool:
        result = await self.db.execute(
            insert_for(self.db, Action)
            .values(id=uuid.uuid4(), user_id=user_id, tip_id=tip_id, action_type=action_type)
            .on_conflict_do_nothing(index_elements=["user_id", "tip_id", "action_type"])
        )
        return result.rowcount == 1

    async def _delete(self, user_id: uuid.UUID, tip_id: uuid.UUID, action_type: ActionType) -> bool:
        result = await self.db.execute(
            delete(Action)
            .where(
                Action.user_id == user_id,
                Action.tip_id == tip_id,
                Action.action_type == action_type,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _bump(self, tip_id: uuid.UUID, action_type: ActionType, delta: int) -> None:
        column = getattr(Tip, COUNTER_COLUMNS[action_type])
        await self.db.execute(
            update(Tip)
            .where(Tip.id == tip_id)
            .values({column: column + delta})
            .execution_options(synchronize_session=False)
        )
