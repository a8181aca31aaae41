import asyncio
import logging
import uuid

from tldev.database import async_session, dispose_after
from tldev.services.images import UnsplashClient
from tldev.services.links import LinkSearchClient
from tldev.services.pipeline.enrich import enrich_drafts, enrich_tip
from tldev.worker import celery_app

logger = logging.getLogger(__name__)


async def _enrich_drafts() -> dict:
    async with async_session() as db:
        result = await enrich_drafts(db, UnsplashClient(), LinkSearchClient())
    logger.info(
        "Scheduled enrichment finished: %d enriched, %d failed", result.enriched, result.failed
    )
    return result.to_dict()


async def _enrich_one(tip_id: str) -> dict:
    async with async_session() as db:
        result = await enrich_tip(db, uuid.UUID(tip_id), UnsplashClient(), LinkSearchClient())
    return result.to_dict()


@celery_app.task(name="tldev.tasks.enrich_tips.enrich_draft_tips")
def enrich_draft_tips():
    return asyncio.run(dispose_after(_enrich_drafts()))


@celery_app.task(name="tldev.tasks.enrich_tips.enrich_single_tip")
def enrich_single_tip(tip_id: str):
    return asyncio.run(dispose_after(_enrich_one(tip_id)))
