import uuid
from unittest.mock import AsyncMock, patch

from conftest import FakeImages, FakeLinks

from tldev.models import TipStatus
from tldev.services.pipeline.enrich import enrich_drafts, enrich_tip, fetch_enrichment
from tldev.services.pipeline.results import Outcome
from tldev.services.tip_store import TipStore


async def _reload(db, tip_id):
    return await TipStore(db).get_by_id(tip_id)


class TestEnrichTip:
    async def test_publishes_with_image_and_link(self, db, make_tip):
        tip = await make_tip(status=TipStatus.draft, category="rust")
        result = await enrich_tip(db, tip.id, FakeImages(), FakeLinks())

        assert result.outcome == Outcome.success
        assert result.items[0].has_image is True
        assert result.items[0].has_link is True

        tip = await _reload(db, tip.id)
        assert tip.status == TipStatus.published
        assert tip.image["url"] == "https://images.example.com/rust.jpg"
        assert tip.view_more["source"] == "docs.python.org"

    async def test_publishes_even_when_fetches_fail(self, db, make_tip):
        tip = await make_tip(status=TipStatus.draft)
        result = await enrich_tip(db, tip.id, FakeImages(crash=True), FakeLinks(crash=True))

        assert result.outcome == Outcome.success
        assert result.items[0].has_image is False
        assert result.items[0].has_link is False
        assert (await _reload(db, tip.id)).status == TipStatus.published

    async def test_already_enriched_is_skipped(self, db, make_tip):
        tip = await make_tip(status=TipStatus.published, image={"url": "https://img/1.jpg"})
        images = FakeImages()
        result = await enrich_tip(db, tip.id, images, FakeLinks())

        assert result.outcome == Outcome.skipped
        assert result.reason == "already_enriched"
        assert images.calls == []

    async def test_published_without_image_is_retried(self, db, make_tip):
        tip = await make_tip(status=TipStatus.published, image=None)
        result = await enrich_tip(db, tip.id, FakeImages(), FakeLinks())

        assert result.outcome == Outcome.success
        assert (await _reload(db, tip.id)).image is not None

    async def test_missing_tip(self, db):
        result = await enrich_tip(db, uuid.uuid4(), FakeImages(), FakeLinks())
        assert result.outcome == Outcome.failed
        assert result.reason == "not_found"

    async def test_existing_link_kept_when_fetch_fails(self, db, make_tip):
        tip = await make_tip(
            status=TipStatus.draft,
            view_more={"title": "Old", "url": "https://old", "snippet": "", "source": "old"},
        )
        await enrich_tip(db, tip.id, FakeImages(), FakeLinks(crash=True))

        tip = await _reload(db, tip.id)
        assert tip.view_more["url"] == "https://old"
        assert tip.status == TipStatus.published

    async def test_store_error_leaves_draft(self, db, make_tip):
        tip = await make_tip(status=TipStatus.draft)
        tip_id = tip.id
        with patch(
            "tldev.services.pipeline.enrich.TipStore.publish_with_enrichment",
            new_callable=AsyncMock,
            side_effect=RuntimeError("write failed"),
        ):
            result = await enrich_tip(db, tip_id, FakeImages(), FakeLinks())

        assert result.outcome == Outcome.failed
        assert result.items[0].error == "write failed"
        assert (await _reload(db, tip_id)).status == TipStatus.draft


async def test_fetch_enrichment_isolates_each_provider():
    image, link = await fetch_enrichment(FakeImages(crash=True), FakeLinks(), "go", "headline")
    assert image is None
    assert link is not None


class TestEnrichDrafts:
    async def test_publishes_all_drafts(self, db, make_tip):
        drafts = [await make_tip(status=TipStatus.draft) for _ in range(5)]
        result = await enrich_drafts(db, FakeImages(), FakeLinks(), limit=10, group_size=2, group_delay=0)

        assert result.outcome == Outcome.success
        assert result.enriched == 5
        assert result.failed == 0
        for d in drafts:
            assert (await _reload(db, d.id)).status == TipStatus.published

    async def test_respects_limit_oldest_first(self, db, make_tip):
        drafts = [await make_tip(status=TipStatus.draft) for _ in range(4)]
        result = await enrich_drafts(db, FakeImages(), FakeLinks(), limit=2, group_size=3, group_delay=0)

        assert [i.tip_id for i in result.items] == [str(d.id) for d in drafts[:2]]
        assert (await _reload(db, drafts[3].id)).status == TipStatus.draft

    async def test_no_drafts(self, db, make_tip):
        await make_tip(status=TipStatus.published)
        result = await enrich_drafts(db, FakeImages(), FakeLinks(), group_delay=0)
        assert result.outcome == Outcome.skipped
        assert result.reason == "no_drafts"

    async def test_one_failure_does_not_stop_batch(self, db, make_tip):
        drafts = [await make_tip(status=TipStatus.draft) for _ in range(3)]
        store_publish = TipStore.publish_with_enrichment

        async def flaky(self, tip_id, image, view_more):
            if tip_id == drafts[1].id:
                raise RuntimeError("row locked")
            return await store_publish(self, tip_id, image, view_more)

        with patch("tldev.services.pipeline.enrich.TipStore.publish_with_enrichment", flaky):
            result = await enrich_drafts(db, FakeImages(), FakeLinks(), group_size=3, group_delay=0)

        assert result.enriched == 2
        assert result.failed == 1
        assert (await _reload(db, drafts[0].id)).status == TipStatus.published
        assert (await _reload(db, drafts[1].id)).status == TipStatus.draft
        assert (await _reload(db, drafts[2].id)).status == TipStatus.published

    async def test_result_serializes(self, db, make_tip):
        await make_tip(status=TipStatus.draft)
        data = (await enrich_drafts(db, FakeImages(), FakeLinks(), group_delay=0)).to_dict()
        assert data["outcome"] == "success"
        assert data["enriched"] == 1
        assert data["items"][0]["outcome"] == "success"

    async def test_never_regresses_to_draft(self, db, make_tip):
        tip = await make_tip(status=TipStatus.draft)
        await enrich_drafts(db, FakeImages(), FakeLinks(), group_delay=0)
        await enrich_tip(db, tip.id, FakeImages(crash=True), FakeLinks(crash=True))
        await enrich_drafts(db, FakeImages(), FakeLinks(), group_delay=0)
        assert (await _reload(db, tip.id)).status == TipStatus.published
