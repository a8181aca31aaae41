from __future__ import annotations

import uuid

from fastapi import HTTPException
from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tldev.models import Tip, TipSource, TipStatus
from tldev.services.images import TipImage
from tldev.services.links import ViewMoreLink
from tldev.services.llm import GeneratedTip


class TipStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_drafts(
        self, generated: list[GeneratedTip], job_id: uuid.UUID, model: str
    ) -> list[Tip]:
        tips = [
            Tip(
                headline=g.headline,
                summary=g.summary,
                detail=g.detail,
                code_snippet=g.code_snippet,
                category=g.category,
                tags=list(g.tags),
                topic_slug=g.topic_slug,
                technology=g.technology,
                source=TipSource.ai,
                status=TipStatus.draft,
                ai_model=model,
                job_id=job_id,
            )
            for g in generated
        ]
        self.db.add_all(tips)
        await self.db.flush()
        return tips

    async def get_by_id(self, tip_id: uuid.UUID) -> Tip | None:
        stmt = select(Tip).where(Tip.id == tip_id).execution_options(populate_existing=True)
        return await self.db.scalar(stmt)

    async def recent_topic_slugs(self, limit: int) -> list[str]:
        stmt = (
            select(Tip.topic_slug)
            .where(Tip.topic_slug.is_not(None))
            .order_by(Tip.created_at.desc())
            .limit(limit)
        )
        return list((await self.db.scalars(stmt)).all())

    async def list_drafts(self, limit: int) -> list[Tip]:
        stmt = (
            select(Tip)
            .where(Tip.status == TipStatus.draft)
            .order_by(Tip.created_at, Tip.id)
            .limit(limit)
        )
        return list((await self.db.scalars(stmt)).all())

    async def published_candidates(self) -> list[Tip]:
        # Stable order: a retried slot must see the same list as the first attempt.
        stmt = (
            select(Tip)
            .where(Tip.status == TipStatus.published)
            .order_by(Tip.created_at, Tip.id)
        )
        return list((await self.db.scalars(stmt)).all())

    async def feed(
        self,
        limit: int = 20,
        cursor: uuid.UUID | None = None,
        category: str | None = None,
        categories: list[str] | None = None,
    ) -> tuple[list[Tip], uuid.UUID | None]:
        stmt = select(Tip).where(Tip.status == TipStatus.published)

        if category:
            stmt = stmt.where(Tip.category == category)
        elif categories:
            stmt = stmt.where(Tip.category.in_(categories))

        if cursor is not None:
            anchor = await self.db.scalar(select(Tip.created_at).where(Tip.id == cursor))
            if anchor is None:
                raise HTTPException(status_code=400, detail="Invalid cursor")
            stmt = stmt.where(
                or_(
                    Tip.created_at < anchor,
                    and_(Tip.created_at == anchor, Tip.id <= cursor),
                )
            )

        stmt = stmt.order_by(Tip.created_at.desc(), Tip.id.desc()).limit(limit + 1)
        tips = list((await self.db.scalars(stmt)).all())

        next_cursor = None
        if len(tips) > limit:
            next_cursor = tips.pop().id
        return tips, next_cursor

    async def get_and_count_view(self, tip_id: uuid.UUID) -> Tip:
        """Drafts are not visible yet: they 404 and their views never move."""
        result = await self.db.execute(
            update(Tip)
            .where(Tip.id == tip_id, Tip.status == TipStatus.published)
            .values(views_count=Tip.views_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Tip not found")
        await self.db.commit()
        return await self.get_by_id(tip_id)

    async def publish_with_enrichment(
        self,
        tip_id: uuid.UUID,
        image: TipImage | None,
        view_more: ViewMoreLink | None,
    ) -> Tip:
        """Write enrichment and flip to published in one statement.

        A failed fetch (None) keeps whatever the tip already had.
        """
        values: dict = {"status": TipStatus.published}
        if image is not None:
            values["image"] = image.model_dump()
        if view_more is not None:
            values["view_more"] = view_more.model_dump()

        await self.db.execute(
            update(Tip)
            .where(Tip.id == tip_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return await self.get_by_id(tip_id)
