from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tldev.models import Job, JobStatus, utcnow
from tldev.services.summaries import JobFailureSummary, JobSuccessSummary

logger = logging.getLogger(__name__)


class JobLedger:
    """Lifecycle of generation runs: running -> completed | failed, once."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def start(self) -> Job:
        job = Job(status=JobStatus.running, started_at=utcnow())
        self.db.add(job)
        await self.db.commit()
        logger.info("Generation job %s started", job.id)
        return job

    async def complete(self, job: Job, tips_count: int, summary: JobSuccessSummary) -> Job:
        self._ensure_running(job)
        job.status = JobStatus.completed
        job.finished_at = utcnow()
        job.tips_count = tips_count
        job.summary = summary.model_dump(mode="json")
        await self.db.commit()
        logger.info("Generation job %s completed with %d tips", job.id, tips_count)
        return job

    async def fail(self, job: Job, summary: JobFailureSummary) -> Job:
        self._ensure_running(job)
        job.status = JobStatus.failed
        job.finished_at = utcnow()
        job.errors = [*(job.errors or []), {"step": summary.step, "error": summary.error}]
        job.summary = summary.model_dump(mode="json")
        await self.db.commit()
        logger.warning("Generation job %s failed at %s: %s", job.id, summary.step, summary.error)
        return job

    async def get(self, job_id: uuid.UUID) -> Job | None:
        return await self.db.get(Job, job_id)

    async def recent(self, limit: int = 10) -> list[Job]:
        stmt = select(Job).order_by(Job.started_at.desc()).limit(limit)
        return list((await self.db.scalars(stmt)).all())

    @staticmethod
    def _ensure_running(job: Job) -> None:
        if job.status != JobStatus.running:
            raise ValueError(f"Job {job.id} already finished with status {job.status.value}")
