from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from tldev.models import DailyPush, PushStatus, Tip
from tldev.services.pipeline.results import DispatchResult, Outcome, Stopwatch
from tldev.services.push_ledger import ClaimRejected, PushLedger
from tldev.services.push_sender import ExpoPushSender, PushMessage
from tldev.services.scheduling.selector import EmptyCandidateSet, select_index, slot_seed
from tldev.services.scheduling.slots import OutOfWindow, SlotConfig, resolve_slot
from tldev.services.summaries import (
    PushFailureSummary,
    PushSuccessSummary,
    RecipientError,
    parse_push_summary,
)
from tldev.services.tip_store import TipStore
from tldev.services.user_store import UserStore

logger = logging.getLogger(__name__)

DECORATIVE_TITLES = [
    "🔥 This {category} tip will change how you code",
    "💡 {category} devs are loving this trick",
    "🚀 Level up your {category} skills instantly",
    "✨ The {category} hack you didn't know you needed",
    "⚡ Quick {category} tip that saves hours",
    "🎯 Master {category} with this one trick",
    "💎 Hidden {category} gem most devs miss",
    "🔮 The {category} secret pros don't share",
]


@dataclass
class Notification:
    title: str
    body: str
    image_url: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class Recipient:
    user_id: str
    push_token: str | None


@dataclass
class DispatchOutcome:
    sent_count: int = 0
    error_count: int = 0
    errors: list[RecipientError] = field(default_factory=list)


def format_tip_notification(tip: Tip, rng: random.Random | None = None) -> Notification:
    # Cosmetic only; replays do not need the same title.
    rng = rng or random
    title = rng.choice(DECORATIVE_TITLES).format(category=tip.category)
    body = tip.summary or f"{tip.headline[:100]}..."
    image_url = (tip.image or {}).get("url")
    return Notification(title=title, body=body, image_url=image_url)


class NotificationDispatcher:
    def __init__(self, sender: ExpoPushSender):
        self.sender = sender

    async def dispatch(
        self, notification: Notification, recipients: list[Recipient]
    ) -> DispatchOutcome:
        outcome = DispatchOutcome()

        valid = []
        for r in recipients:
            if self.sender.is_valid_token(r.push_token):
                valid.append(r)
            else:
                outcome.errors.append(RecipientError(user_id=r.user_id, error="Invalid push token"))

        pairs = [
            (
                r,
                PushMessage(
                    to=r.push_token,
                    title=notification.title,
                    body=notification.body,
                    data=notification.data,
                    image_url=notification.image_url,
                ),
            )
            for r in valid
        ]

        for batch in self.sender.chunk(pairs):
            try:
                tickets = await self.sender.send_chunk([m for _, m in batch])
            except Exception as exc:
                logger.exception("Push chunk of %d messages failed", len(batch))
                outcome.errors.extend(
                    RecipientError(user_id=r.user_id, error=str(exc) or "Send failed")
                    for r, _ in batch
                )
                continue

            for i, (r, _) in enumerate(batch):
                ticket = tickets[i] if i < len(tickets) else None
                if ticket is not None and ticket.ok:
                    outcome.sent_count += 1
                else:
                    message = ticket.message if ticket is not None and ticket.message else "Unknown error"
                    outcome.errors.append(RecipientError(user_id=r.user_id, error=message))

        outcome.error_count = len(outcome.errors)
        return outcome


def _previous(push: DailyPush) -> dict:
    summary = parse_push_summary(push.summary)
    return {
        "status": push.status.value,
        "tip_id": str(push.tip_id) if push.tip_id else None,
        "sent_count": push.sent_count,
        "error_count": push.error_count,
        "started_at": str(push.started_at),
        "finished_at": str(push.finished_at) if push.finished_at else None,
        "summary": summary.model_dump(mode="json") if summary else None,
    }


async def _recipients(db: AsyncSession) -> list[Recipient]:
    users = await UserStore(db).with_push_tokens()
    return [Recipient(user_id=str(u.id), push_token=u.push_token) for u in users]


async def run_dispatch_for_slot(
    db: AsyncSession,
    sender: ExpoPushSender,
    date: str,
    slot: int,
    local_time: str | None = None,
) -> DispatchResult:
    """Send the slot's tip to every registered device, at most once per slot."""
    clock = Stopwatch()
    ledger = PushLedger(db)

    existing = await ledger.get(date, slot)
    if existing is not None and existing.status == PushStatus.completed:
        logger.info("Push already sent for %s slot %d, skipping", date, slot)
        return DispatchResult(
            outcome=Outcome.skipped,
            reason="already_completed",
            duration_ms=clock.elapsed_ms,
            date=date,
            slot=slot,
            tip_id=existing.tip_id,
            sent_count=existing.sent_count,
            error_count=existing.error_count,
            previous=_previous(existing),
        )

    try:
        candidates = await TipStore(db).published_candidates()
    except Exception as exc:
        logger.exception("Candidate fetch failed for %s slot %d", date, slot)
        await db.rollback()
        error = str(exc) or type(exc).__name__
        await ledger.record_failure(
            date, slot, PushFailureSummary(error=error, duration_ms=clock.elapsed_ms)
        )
        return DispatchResult(
            outcome=Outcome.failed,
            reason="candidate_fetch",
            duration_ms=clock.elapsed_ms,
            date=date,
            slot=slot,
            error=error,
        )

    try:
        index = select_index(slot_seed(date, slot), candidates)
    except EmptyCandidateSet:
        logger.info("No published tips available for %s slot %d", date, slot)
        return DispatchResult(
            outcome=Outcome.skipped,
            reason="no_candidates",
            duration_ms=clock.elapsed_ms,
            date=date,
            slot=slot,
        )

    tip = candidates[index]
    tip_id: uuid.UUID = tip.id
    logger.info(
        "Slot %s/%d selected tip %s (index %d of %d)",
        date,
        slot,
        tip_id,
        index,
        len(candidates),
    )

    try:
        claim = await ledger.claim(date, slot, tip_id, len(candidates))
    except ClaimRejected as rejected:
        logger.info("Slot %s/%d not claimed: %s", date, slot, rejected.reason)
        return DispatchResult(
            outcome=Outcome.skipped,
            reason=rejected.reason,
            duration_ms=clock.elapsed_ms,
            date=date,
            slot=slot,
            tip_id=rejected.existing.tip_id if rejected.existing else None,
            previous=_previous(rejected.existing) if rejected.existing else None,
        )

    notification = format_tip_notification(tip)
    notification.data = {"tipId": str(tip_id), "type": "random", "slot": slot}

    try:
        recipients = await _recipients(db)
        outcome = await NotificationDispatcher(sender).dispatch(notification, recipients)
    except Exception as exc:
        logger.exception("Dispatch failed for %s slot %d", date, slot)
        await db.rollback()
        error = str(exc) or type(exc).__name__
        await ledger.fail(claim, PushFailureSummary(error=error, duration_ms=clock.elapsed_ms))
        return DispatchResult(
            outcome=Outcome.failed,
            reason="dispatch_error",
            duration_ms=clock.elapsed_ms,
            date=date,
            slot=slot,
            tip_id=tip_id,
            candidate_count=len(candidates),
            error=error,
        )

    await ledger.complete(
        claim,
        PushSuccessSummary(
            tip_id=tip_id,
            slot=slot,
            local_time=local_time,
            candidate_count=len(candidates),
            recipient_count=len(recipients),
            sent_count=outcome.sent_count,
            error_count=outcome.error_count,
            duration_ms=clock.elapsed_ms,
            errors=outcome.errors,
        ),
    )

    logger.info(
        "Slot %s/%d completed: %d sent, %d errors in %dms",
        date,
        slot,
        outcome.sent_count,
        outcome.error_count,
        clock.elapsed_ms,
    )
    return DispatchResult(
        outcome=Outcome.success,
        duration_ms=clock.elapsed_ms,
        date=date,
        slot=slot,
        tip_id=tip_id,
        candidate_count=len(candidates),
        recipient_count=len(recipients),
        sent_count=outcome.sent_count,
        error_count=outcome.error_count,
    )


async def run_scheduled_dispatch(
    db: AsyncSession,
    sender: ExpoPushSender,
    now: datetime | None = None,
    config: SlotConfig | None = None,
) -> DispatchResult:
    now = now or datetime.now(UTC)
    config = config or SlotConfig.from_settings()

    try:
        resolved = resolve_slot(now, config)
    except OutOfWindow as exc:
        logger.info("Outside notification window: %s", exc)
        return DispatchResult(outcome=Outcome.skipped, reason="out_of_window")

    return await run_dispatch_for_slot(
        db, sender, resolved.date, resolved.slot, local_time=resolved.local_time_label
    )


async def broadcast(
    db: AsyncSession,
    sender: ExpoPushSender,
    notification: Notification,
) -> tuple[int, DispatchOutcome]:
    """Ad hoc send to every registered device; no slot ledger involved."""
    recipients = await _recipients(db)
    outcome = await NotificationDispatcher(sender).dispatch(notification, recipients)
    return len(recipients), outcome
