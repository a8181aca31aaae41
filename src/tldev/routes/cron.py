from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from tldev.auth import require_cron_or_admin, require_cron_secret
from tldev.database import async_session
from tldev.services.images import UnsplashClient
from tldev.services.links import LinkSearchClient
from tldev.services.llm import TipGenerator
from tldev.services.pipeline.dispatch import run_scheduled_dispatch
from tldev.services.pipeline.enrich import enrich_drafts, enrich_tip
from tldev.services.pipeline.generate import run_generation_stage
from tldev.services.pipeline.results import StageResult
from tldev.services.push_sender import ExpoPushSender

router = APIRouter(prefix="/cron", tags=["cron"])


class EnrichTipRequest(BaseModel):
    tip_id: uuid.UUID


def _respond(result: StageResult) -> JSONResponse:
    return JSONResponse(status_code=200 if result.ok else 500, content=result.to_dict())


@router.get("/generate-tips", dependencies=[Depends(require_cron_secret)])
async def generate_tips():
    async with async_session() as db:
        result = await run_generation_stage(db, TipGenerator())
    return _respond(result)


@router.post("/enrich-tip", dependencies=[Depends(require_cron_or_admin)])
async def enrich_one(body: EnrichTipRequest):
    async with async_session() as db:
        result = await enrich_tip(db, body.tip_id, UnsplashClient(), LinkSearchClient())
    if result.reason == "not_found":
        return JSONResponse(status_code=404, content=result.to_dict())
    return _respond(result)


@router.get("/enrich-tips", dependencies=[Depends(require_cron_or_admin)])
async def enrich_batch():
    async with async_session() as db:
        result = await enrich_drafts(db, UnsplashClient(), LinkSearchClient())
    return _respond(result)


@router.get("/send-daily-push", dependencies=[Depends(require_cron_secret)])
async def send_daily_push():
    async with async_session() as db:
        result = await run_scheduled_dispatch(db, ExpoPushSender())
    return _respond(result)
