import asyncio
import logging

from tldev.database import async_session, dispose_after
from tldev.services.llm import TipGenerator
from tldev.services.pipeline.generate import run_generation_stage
from tldev.worker import celery_app

logger = logging.getLogger(__name__)


async def _generate() -> dict:
    async with async_session() as db:
        result = await run_generation_stage(db, TipGenerator())
    logger.info("Scheduled generation finished: %s", result.outcome.value)
    return result.to_dict()


@celery_app.task(name="tldev.tasks.generate_tips.generate_tips")
def generate_tips():
    return asyncio.run(dispose_after(_generate()))
