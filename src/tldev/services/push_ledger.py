"""Idempotency ledger for scheduled push slots.

One DailyPush row per (date, slot). The unique constraint is the only mutual
exclusion primitive: a slot is claimed by inserting its row (compare and
create). A row that failed, or that has been ``sending`` for longer than the
stale threshold, can be taken over with a conditional UPDATE that only
succeeds if the row is still in the state the caller observed (compare and
swap). ``completed`` is terminal.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tldev.config import settings
from tldev.database import insert_for
from tldev.models import DailyPush, PushStatus, utcnow
from tldev.services.summaries import PushFailureSummary, PushSuccessSummary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Claim:
    push_id: uuid.UUID
    claim_id: uuid.UUID
    date: str
    slot: int
    tip_id: uuid.UUID
    candidate_count: int


class ClaimRejected(Exception):
    def __init__(self, reason: str, existing: DailyPush | None):
        self.reason = reason
        self.existing = existing
        super().__init__(reason)


class PushLedger:
    def __init__(self, db: AsyncSession, stale_after: timedelta | None = None):
        self.db = db
        self.stale_after = stale_after or timedelta(minutes=settings.push_claim_stale_minutes)

    async def get(self, date: str, slot: int) -> DailyPush | None:
        stmt = (
            select(DailyPush)
            .where(DailyPush.date == date, DailyPush.slot == slot)
            .execution_options(populate_existing=True)
        )
        return await self.db.scalar(stmt)

    async def list_for_date(self, date: str) -> list[DailyPush]:
        stmt = select(DailyPush).where(DailyPush.date == date).order_by(DailyPush.slot)
        return list((await self.db.scalars(stmt)).all())

    async def claim(
        self,
        date: str,
        slot: int,
        tip_id: uuid.UUID,
        candidate_count: int,
        now: datetime | None = None,
    ) -> Claim:
        """Take ownership of a slot, or raise ClaimRejected."""
        now = now or utcnow()
        claim_id = uuid.uuid4()

        stmt = (
            insert_for(self.db, DailyPush)
            .values(
                id=uuid.uuid4(),
                date=date,
                slot=slot,
                tip_id=tip_id,
                candidate_count=candidate_count,
                status=PushStatus.sending,
                claim_id=claim_id,
                started_at=now,
                sent_count=0,
                error_count=0,
                summary={},
            )
            .on_conflict_do_nothing(index_elements=["date", "slot"])
        )
        result = await self.db.execute(stmt)
        await self.db.commit()

        if result.rowcount == 1:
            existing = await self.get(date, slot)
            logger.info("Claimed push slot %s/%d", date, slot)
            return Claim(existing.id, claim_id, date, slot, tip_id, candidate_count)

        existing = await self.get(date, slot)
        if existing is None:
            raise ClaimRejected("in_flight", None)
        if existing.status == PushStatus.completed:
            raise ClaimRejected("already_completed", existing)
        if existing.status == PushStatus.sending and not self._is_stale(existing, now):
            raise ClaimRejected("in_flight", existing)

        return await self._take_over(existing, claim_id, tip_id, candidate_count, now)

    async def _take_over(
        self,
        existing: DailyPush,
        claim_id: uuid.UUID,
        tip_id: uuid.UUID,
        candidate_count: int,
        now: datetime,
    ) -> Claim:
        seen_claim = (
            DailyPush.claim_id.is_(None)
            if existing.claim_id is None
            else DailyPush.claim_id == existing.claim_id
        )
        stmt = (
            update(DailyPush)
            .where(
                DailyPush.id == existing.id,
                DailyPush.status == existing.status,
                seen_claim,
            )
            .values(
                status=PushStatus.sending,
                claim_id=claim_id,
                tip_id=tip_id,
                candidate_count=candidate_count,
                started_at=now,
                finished_at=None,
                sent_count=0,
                error_count=0,
                summary={},
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()

        if result.rowcount != 1:
            raise ClaimRejected("in_flight", await self.get(existing.date, existing.slot))

        logger.info(
            "Took over %s push slot %s/%d",
            existing.status.value,
            existing.date,
            existing.slot,
        )
        return Claim(existing.id, claim_id, existing.date, existing.slot, tip_id, candidate_count)

    async def complete(self, claim: Claim, summary: PushSuccessSummary) -> bool:
        summary = summary.model_copy(
            update={"errors": summary.errors[: settings.push_error_sample_size]}
        )
        return await self._finish(
            claim,
            status=PushStatus.completed,
            sent_count=summary.sent_count,
            error_count=summary.error_count,
            summary=summary.model_dump(mode="json"),
        )

    async def fail(self, claim: Claim, summary: PushFailureSummary) -> bool:
        return await self._finish(
            claim,
            status=PushStatus.failed,
            summary=summary.model_dump(mode="json"),
        )

    async def record_failure(self, date: str, slot: int, summary: PushFailureSummary) -> bool:
        """Record a failure that happened before the slot was claimed.

        Only creates a row; an existing row belongs to another attempt and is
        left untouched.
        """
        now = utcnow()
        stmt = (
            insert_for(self.db, DailyPush)
            .values(
                id=uuid.uuid4(),
                date=date,
                slot=slot,
                candidate_count=0,
                status=PushStatus.failed,
                started_at=now,
                finished_at=now,
                sent_count=0,
                error_count=0,
                summary=summary.model_dump(mode="json"),
            )
            .on_conflict_do_nothing(index_elements=["date", "slot"])
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount == 1

    async def _finish(self, claim: Claim, status: PushStatus, **values) -> bool:
        stmt = (
            update(DailyPush)
            .where(
                DailyPush.id == claim.push_id,
                DailyPush.claim_id == claim.claim_id,
                DailyPush.status == PushStatus.sending,
            )
            .values(status=status, finished_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        if result.rowcount != 1:
            logger.warning(
                "Push slot %s/%d was taken over before it could be marked %s",
                claim.date,
                claim.slot,
                status.value,
            )
            return False
        return True

    def _is_stale(self, push: DailyPush, now: datetime) -> bool:
        return now - push.started_at >= self.stale_after
