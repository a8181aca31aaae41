from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import func, select

from tldev.auth import require_admin_key
from tldev.database import async_session
from tldev.models import Action, DailyPush, Job, Tip, User
from tldev.services.images import UnsplashClient
from tldev.services.job_ledger import JobLedger
from tldev.services.links import LinkSearchClient
from tldev.services.llm import TipGenerator
from tldev.services.pipeline.dispatch import (
    Notification,
    NotificationDispatcher,
    Recipient,
    broadcast,
    format_tip_notification,
)
from tldev.services.pipeline.enrich import enrich_tip
from tldev.services.pipeline.generate import preview_tips, run_generation_stage
from tldev.services.push_ledger import PushLedger
from tldev.services.push_sender import ExpoPushSender
from tldev.services.summaries import parse_job_summary, parse_push_summary
from tldev.services.tip_store import TipStore
from tldev.services.user_store import UserStore

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin_key)])

MANUAL_GENERATE_MAX = 5
TEST_PUSH_TITLE = "🚀 TL;Dev Test"
TEST_PUSH_BODY = "This is a test notification!"


class SendPushRequest(BaseModel):
    tip_id: uuid.UUID | None = None
    title: str | None = None
    body: str | None = None
    image_url: str | None = None

    @model_validator(mode="after")
    def _tip_or_custom(self):
        if self.tip_id is None and not self.title:
            raise ValueError("Either tip_id or title is required")
        return self


class GenerateTipsRequest(BaseModel):
    count: int = Field(1, ge=1)
    category: str | None = None
    publish: bool = False


class SingleTokenPushRequest(BaseModel):
    push_token: str | None = None
    title: str | None = None
    message: str | None = None


def _mask(token: str) -> str:
    return token if len(token) <= 24 else f"{token[:20]}...{token[-4:]}"


def _job_row(job: Job) -> dict:
    summary = parse_job_summary(job.summary)
    return {
        "id": str(job.id),
        "status": job.status.value,
        "started_at": str(job.started_at),
        "finished_at": str(job.finished_at) if job.finished_at else None,
        "tips_count": job.tips_count,
        "summary": summary.model_dump(mode="json") if summary else None,
    }


@router.get("/stats")
async def get_stats():
    async with async_session() as db:
        user_count = await db.scalar(select(func.count()).select_from(User))
        token_count = await db.scalar(
            select(func.count()).select_from(User).where(User.push_token.is_not(None))
        )
        tip_rows = (await db.execute(select(Tip.status, func.count()).group_by(Tip.status))).all()
        action_rows = (
            await db.execute(select(Action.action_type, func.count()).group_by(Action.action_type))
        ).all()
        push_count = await db.scalar(select(func.count()).select_from(DailyPush))
        job_count = await db.scalar(select(func.count()).select_from(Job))
        jobs = await JobLedger(db).recent(5)

        return {
            "users": user_count,
            "push_tokens": token_count,
            "tips_by_status": {row[0].value: row[1] for row in tip_rows},
            "actions_by_type": {row[0].value: row[1] for row in action_rows},
            "pushes": push_count,
            "jobs": job_count,
            "recent_jobs": [_job_row(j) for j in jobs],
        }


@router.get("/pushes")
async def list_pushes(date: str = Query(..., pattern=r"^\d{4}-\d{2}-\d{2}$")):
    async with async_session() as db:
        pushes = await PushLedger(db).list_for_date(date)
        result = []
        for p in pushes:
            summary = parse_push_summary(p.summary)
            result.append(
                {
                    "id": str(p.id),
                    "date": p.date,
                    "slot": p.slot,
                    "tip_id": str(p.tip_id) if p.tip_id else None,
                    "status": p.status.value,
                    "candidate_count": p.candidate_count,
                    "sent_count": p.sent_count,
                    "error_count": p.error_count,
                    "started_at": str(p.started_at),
                    "finished_at": str(p.finished_at) if p.finished_at else None,
                    "summary": summary.model_dump(mode="json") if summary else None,
                }
            )
        return result


@router.post("/send-push")
async def send_push(body: SendPushRequest):
    async with async_session() as db:
        if body.tip_id is not None:
            tip = await TipStore(db).get_by_id(body.tip_id)
            if tip is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tip not found")
            notification = format_tip_notification(tip)
            notification.data = {"tipId": str(tip.id), "type": "tip"}
        else:
            notification = Notification(
                title=body.title,
                body=body.body or "",
                image_url=body.image_url,
                data={"type": "custom"},
            )

        total, outcome = await broadcast(db, ExpoPushSender(), notification)

    return {
        "success": True,
        "total": total,
        "sent": outcome.sent_count,
        "errors": outcome.error_count,
    }


@router.get("/push-tokens")
async def list_push_tokens(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    async with async_session() as db:
        stmt = (
            select(User)
            .where(User.push_token.is_not(None))
            .order_by(User.created_at.desc(), User.id)
            .limit(limit)
            .offset(offset)
        )
        users = (await db.scalars(stmt)).all()
        return [
            {
                "user_id": str(u.id),
                "device_type": u.device_type,
                "push_token": _mask(u.push_token),
                "created_at": str(u.created_at),
            }
            for u in users
        ]


@router.post("/generate-tips")
async def generate_tips(body: GenerateTipsRequest):
    """Generate tips on demand, either as a preview or published right away."""
    count = min(body.count, MANUAL_GENERATE_MAX)
    categories = [body.category] if body.category else None
    generator, images, links = TipGenerator(), UnsplashClient(), LinkSearchClient()

    async with async_session() as db:
        if not body.publish:
            result, previews = await preview_tips(db, generator, images, links, count, categories)
            if not previews:
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail=result.error or "Failed to generate tips",
                )
            return {
                "success": True,
                "published": False,
                "model": result.model,
                "tips": [
                    {
                        **p.tip.model_dump(),
                        "image": p.image.model_dump() if p.image else None,
                        "view_more": p.view_more.model_dump() if p.view_more else None,
                        "status": "preview",
                    }
                    for p in previews
                ],
            }

        job = await run_generation_stage(db, generator, batch_size=count, categories=categories)
        if not job.ok:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=job.error or "Failed to generate tips",
            )

        store = TipStore(db)
        tips = []
        for tip_id in job.tip_ids:
            await enrich_tip(db, uuid.UUID(tip_id), images, links)
            tip = await store.get_by_id(uuid.UUID(tip_id))
            tips.append(
                {
                    "id": str(tip.id),
                    "headline": tip.headline,
                    "summary": tip.summary,
                    "category": tip.category,
                    "image": tip.image,
                    "view_more": tip.view_more,
                    "status": tip.status.value,
                }
            )

    return {
        "success": True,
        "published": True,
        "model": job.model,
        "job_id": str(job.job_id),
        "tips": tips,
    }


@router.post("/test-push")
async def send_test_push(body: SingleTokenPushRequest):
    """Push one test message to a token, or to the newest registered device."""
    token, user_id = body.push_token, ""
    if not token:
        async with async_session() as db:
            user = await UserStore(db).latest_push_token()
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No push token provided and no users registered",
            )
        token, user_id = user.push_token, str(user.id)

    notification = Notification(
        title=body.title or TEST_PUSH_TITLE,
        body=body.message or TEST_PUSH_BODY,
        data={"type": "test"},
    )
    outcome = await NotificationDispatcher(ExpoPushSender()).dispatch(
        notification, [Recipient(user_id=user_id, push_token=token)]
    )
    return {
        "success": outcome.sent_count == 1,
        "sent_to": _mask(token),
        "error": outcome.errors[0].error if outcome.errors else None,
    }
