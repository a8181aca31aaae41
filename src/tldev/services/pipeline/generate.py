from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from tldev.config import settings
from tldev.services.images import TipImage, UnsplashClient
from tldev.services.job_ledger import JobLedger
from tldev.services.links import LinkSearchClient, ViewMoreLink
from tldev.services.llm import GeneratedTip, GenerationResult, TipGenerator
from tldev.services.pipeline.enrich import fetch_enrichment
from tldev.services.pipeline.results import JobResult, Outcome, Stopwatch
from tldev.services.pipeline.uniqueness import enforce_uniqueness
from tldev.services.summaries import JobFailureSummary, JobSuccessSummary
from tldev.services.tip_store import TipStore

logger = logging.getLogger(__name__)


async def run_generation_stage(
    db: AsyncSession,
    generator: TipGenerator,
    batch_size: int | None = None,
    categories: list[str] | None = None,
    timeout: float | None = None,
) -> JobResult:
    """Generate draft tips. No enrichment happens here.

    Every call gets its own Job row, even when two runs overlap.
    """
    batch_size = batch_size or settings.tips_per_run
    timeout = timeout if timeout is not None else settings.llm_timeout
    clock = Stopwatch()
    jobs = JobLedger(db)
    tips = TipStore(db)

    job = await jobs.start()
    job_id = job.id

    async def fail(step: str, error: str, model: str | None = None) -> JobResult:
        # Reload: a rollback on the error path expires the instance.
        await jobs.fail(
            await jobs.get(job_id),
            JobFailureSummary(model=model, step=step, error=error, duration_ms=clock.elapsed_ms),
        )
        return JobResult(
            outcome=Outcome.failed,
            reason=step,
            duration_ms=clock.elapsed_ms,
            job_id=job_id,
            model=model,
            error=error,
        )

    try:
        exclusions = await tips.recent_topic_slugs(settings.exclusion_lookback)
        try:
            result: GenerationResult = await asyncio.wait_for(
                generator.generate(batch_size, categories=categories, exclusions=exclusions),
                timeout=timeout,
            )
        except TimeoutError:
            logger.error("Tip generation timed out after %ss", timeout)
            return await fail("ai_generation", f"Timed out after {timeout}s", generator.model)

        if result.error or not result.tips:
            return await fail("ai_generation", result.error or "No tips generated", result.model)

        report = enforce_uniqueness(result.tips, excluded_topics=exclusions)
        if not report.kept:
            return await fail("uniqueness", "All generated tips were duplicates", result.model)

        created = await tips.create_drafts(report.kept, job_id, result.model)
        await jobs.complete(
            job,
            tips_count=len(created),
            summary=JobSuccessSummary(
                model=result.model,
                success_count=len(created),
                total_generated=len(result.tips),
                dropped_duplicates=len(report.dropped),
                duration_ms=clock.elapsed_ms,
            ),
        )
    except Exception as exc:
        logger.exception("Generation job %s failed", job_id)
        await db.rollback()
        return await fail("main", str(exc) or type(exc).__name__)

    logger.info(
        "Generation job %s created %d drafts (%d duplicates dropped) in %dms",
        job_id,
        len(created),
        len(report.dropped),
        clock.elapsed_ms,
    )
    return JobResult(
        outcome=Outcome.success,
        duration_ms=clock.elapsed_ms,
        job_id=job_id,
        model=result.model,
        tip_ids=[str(t.id) for t in created],
        dropped_duplicates=len(report.dropped),
    )


@dataclass
class TipPreview:
    tip: GeneratedTip
    image: TipImage | None = None
    view_more: ViewMoreLink | None = None


async def preview_tips(
    db: AsyncSession,
    generator: TipGenerator,
    images: UnsplashClient,
    links: LinkSearchClient,
    count: int,
    categories: list[str] | None = None,
    timeout: float | None = None,
) -> tuple[GenerationResult, list[TipPreview]]:
    """Generate and enrich tips without saving anything."""
    timeout = timeout if timeout is not None else settings.llm_timeout
    exclusions = await TipStore(db).recent_topic_slugs(settings.exclusion_lookback)
    try:
        result = await asyncio.wait_for(
            generator.generate(count, categories=categories, exclusions=exclusions),
            timeout=timeout,
        )
    except TimeoutError:
        logger.error("Tip preview timed out after %ss", timeout)
        return GenerationResult(model=generator.model, error=f"Timed out after {timeout}s"), []

    if result.error or not result.tips:
        return result, []

    kept = enforce_uniqueness(result.tips, excluded_topics=exclusions).kept
    previews = []
    for tip in kept:
        image, link = await fetch_enrichment(images, links, tip.category, tip.headline)
        previews.append(TipPreview(tip=tip, image=image, view_more=link))
    return result, previews
