"""Enrichment stage: attach an image and a "learn more" link, then publish.

Publishing only happens here, so a tip reaches the feed once it has had
its enrichment attempt. Fetch failures degrade to "no image" / "no link"
and never block publication.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable

from sqlalchemy.ext.asyncio import AsyncSession

from tldev.config import settings
from tldev.models import Tip, TipStatus
from tldev.services.images import TipImage, UnsplashClient
from tldev.services.links import LinkSearchClient, ViewMoreLink
from tldev.services.pipeline.results import EnrichedItem, EnrichmentResult, Outcome, Stopwatch
from tldev.services.tip_store import TipStore

logger = logging.getLogger(__name__)


def is_enriched(tip: Tip) -> bool:
    return tip.status == TipStatus.published and bool(tip.image)


async def _or_none(label: str, call: Awaitable):
    try:
        return await call
    except Exception:
        logger.exception("%s fetch failed", label)
        return None


async def fetch_enrichment(
    images: UnsplashClient, links: LinkSearchClient, category: str, headline: str
) -> tuple[TipImage | None, ViewMoreLink | None]:
    image, link = await asyncio.gather(
        _or_none("Image", images.fetch_image(category)),
        _or_none("Link", links.fetch_link(headline, category)),
    )
    return image, link


async def enrich_tip(
    db: AsyncSession,
    tip_id: uuid.UUID,
    images: UnsplashClient,
    links: LinkSearchClient,
) -> EnrichmentResult:
    clock = Stopwatch()
    store = TipStore(db)

    tip = await store.get_by_id(tip_id)
    if tip is None:
        return EnrichmentResult(outcome=Outcome.failed, reason="not_found", duration_ms=clock.elapsed_ms)

    if is_enriched(tip):
        logger.info("Tip %s already enriched, skipping", tip_id)
        return EnrichmentResult(
            outcome=Outcome.skipped,
            reason="already_enriched",
            duration_ms=clock.elapsed_ms,
            items=[EnrichedItem(str(tip_id), Outcome.skipped, has_image=True, has_link=bool(tip.view_more))],
        )

    try:
        image, link = await fetch_enrichment(images, links, tip.category, tip.headline)
        updated = await store.publish_with_enrichment(tip_id, image, link)
        await db.commit()
    except Exception as exc:
        logger.exception("Failed to enrich tip %s", tip_id)
        await db.rollback()
        return EnrichmentResult(
            outcome=Outcome.failed,
            reason="enrichment_error",
            duration_ms=clock.elapsed_ms,
            items=[EnrichedItem(str(tip_id), Outcome.failed, error=str(exc))],
        )

    logger.info("Tip %s enriched and published in %dms", tip_id, clock.elapsed_ms)
    return EnrichmentResult(
        outcome=Outcome.success,
        duration_ms=clock.elapsed_ms,
        items=[
            EnrichedItem(
                str(tip_id),
                Outcome.success,
                has_image=bool(updated.image),
                has_link=bool(updated.view_more),
            )
        ],
    )


async def enrich_drafts(
    db: AsyncSession,
    images: UnsplashClient,
    links: LinkSearchClient,
    limit: int | None = None,
    group_size: int | None = None,
    group_delay: float | None = None,
) -> EnrichmentResult:
    """Enrich the oldest drafts in small groups.

    Fetches inside a group run concurrently; groups run one after another
    with a pause between them. Writes go through the single session in
    order. One item failing does not stop the batch.
    """
    limit = limit or settings.enrich_batch_limit
    group_size = group_size or settings.enrich_group_size
    group_delay = group_delay if group_delay is not None else settings.enrich_group_delay
    clock = Stopwatch()
    store = TipStore(db)

    drafts = [(t.id, t.category, t.headline) for t in await store.list_drafts(limit)]
    if not drafts:
        return EnrichmentResult(outcome=Outcome.skipped, reason="no_drafts", duration_ms=clock.elapsed_ms)

    logger.info("Enriching %d draft tips", len(drafts))
    items: list[EnrichedItem] = []

    for start in range(0, len(drafts), group_size):
        group = drafts[start : start + group_size]
        fetched = await asyncio.gather(
            *(fetch_enrichment(images, links, category, headline) for _, category, headline in group),
            return_exceptions=True,
        )

        for (tip_id, _, _), outcome in zip(group, fetched):
            if isinstance(outcome, BaseException):
                logger.error("Enrichment fetch crashed for tip %s: %s", tip_id, outcome)
                items.append(EnrichedItem(str(tip_id), Outcome.failed, error=str(outcome)))
                continue

            image, link = outcome
            try:
                await store.publish_with_enrichment(tip_id, image, link)
                await db.commit()
            except Exception as exc:
                logger.exception("Failed to publish tip %s", tip_id)
                await db.rollback()
                items.append(EnrichedItem(str(tip_id), Outcome.failed, error=str(exc)))
                continue

            items.append(
                EnrichedItem(
                    str(tip_id),
                    Outcome.success,
                    has_image=image is not None,
                    has_link=link is not None,
                )
            )

        if start + group_size < len(drafts):
            await asyncio.sleep(group_delay)

    result = EnrichmentResult(outcome=Outcome.success, duration_ms=clock.elapsed_ms, items=items)
    logger.info(
        "Batch enrichment complete: %d enriched, %d failed in %dms",
        result.enriched,
        result.failed,
        result.duration_ms,
    )
    return result
