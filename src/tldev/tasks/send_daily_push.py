import asyncio
import logging

from tldev.database import async_session, dispose_after
from tldev.services.pipeline.dispatch import run_scheduled_dispatch
from tldev.services.push_sender import ExpoPushSender
from tldev.worker import celery_app

logger = logging.getLogger(__name__)


async def _send() -> dict:
    async with async_session() as db:
        result = await run_scheduled_dispatch(db, ExpoPushSender())
    logger.info(
        "Scheduled push finished: %s (%s)", result.outcome.value, result.reason or "sent"
    )
    return result.to_dict()


@celery_app.task(name="tldev.tasks.send_daily_push.send_daily_push")
def send_daily_push():
    return asyncio.run(dispose_after(_send()))
