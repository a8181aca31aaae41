import uuid
from unittest.mock import patch

import pytest
from conftest import CountingSender, FakeGenerator, FakeImages, FakeLinks, generated_tip
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from tldev.app import create_app
from tldev.models import ActionType, Job, JobStatus, Tip, TipStatus
from tldev.services.action_store import ActionStore
from tldev.services.pipeline.dispatch import run_dispatch_for_slot

ADMIN_KEY = "test-admin-key"
HEADERS = {"X-Admin-Key": ADMIN_KEY}


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
async def client(app, session_for):
    transport = ASGITransport(app=app)
    with (
        patch("tldev.auth.settings") as mock_settings,
        patch("tldev.routes.admin.async_session", session_for),
    ):
        mock_settings.admin_api_key = ADMIN_KEY
        mock_settings.cron_secret = ""
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            yield c


class TestAdminAuth:
    async def test_missing_key_is_unauthorized(self, client):
        response = await client.get("/admin/stats")
        assert response.status_code == 401

    async def test_wrong_key_is_unauthorized(self, client):
        response = await client.get("/admin/stats", headers={"X-Admin-Key": "wrong"})
        assert response.status_code == 401

    async def test_unconfigured_key_is_forbidden(self, client):
        with patch("tldev.auth.settings") as mock_settings:
            mock_settings.admin_api_key = ""
            response = await client.get("/admin/stats", headers=HEADERS)
        assert response.status_code == 403


async def test_stats(client, db, make_tip, make_device):
    tip = await make_tip()
    await make_tip(status=TipStatus.draft)
    await make_device()
    await ActionStore(db).apply(uuid.uuid4(), tip.id, ActionType.like)

    response = await client.get("/admin/stats", headers=HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["users"] == 2
    assert data["push_tokens"] == 1
    assert data["tips_by_status"] == {"published": 1, "draft": 1}
    assert data["actions_by_type"] == {"like": 1}
    assert data["recent_jobs"] == []


async def test_pushes_for_date(client, db, make_tip, make_device):
    await make_tip()
    await make_device()
    await run_dispatch_for_slot(db, CountingSender(), "2026-03-10", 2)
    await run_dispatch_for_slot(db, CountingSender(), "2026-03-10", 0)

    response = await client.get("/admin/pushes", params={"date": "2026-03-10"}, headers=HEADERS)

    assert response.status_code == 200
    rows = response.json()
    assert [r["slot"] for r in rows] == [0, 2]
    assert rows[0]["status"] == "completed"
    assert rows[0]["summary"]["sent_count"] == 1


async def test_pushes_requires_iso_date(client):
    response = await client.get("/admin/pushes", params={"date": "10/03/2026"}, headers=HEADERS)
    assert response.status_code == 422


async def test_send_push_for_tip(client, make_tip, make_device):
    tip = await make_tip()
    await make_device()
    await make_device()
    sender = CountingSender()

    with patch("tldev.routes.admin.ExpoPushSender", return_value=sender):
        response = await client.post("/admin/send-push", json={"tip_id": str(tip.id)}, headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {"success": True, "total": 2, "sent": 2, "errors": 0}
    assert sender.sent[0].data == {"tipId": str(tip.id), "type": "tip"}


async def test_send_custom_push(client, make_device):
    await make_device()
    sender = CountingSender()

    with patch("tldev.routes.admin.ExpoPushSender", return_value=sender):
        response = await client.post(
            "/admin/send-push", json={"title": "Hello", "body": "World"}, headers=HEADERS
        )

    assert response.status_code == 200
    assert sender.sent[0].title == "Hello"
    assert sender.sent[0].data == {"type": "custom"}


async def test_send_push_requires_tip_or_title(client):
    response = await client.post("/admin/send-push", json={"body": "x"}, headers=HEADERS)
    assert response.status_code == 422


async def test_send_push_missing_tip(client):
    with patch("tldev.routes.admin.ExpoPushSender", return_value=CountingSender()):
        response = await client.post(
            "/admin/send-push", json={"tip_id": str(uuid.uuid4())}, headers=HEADERS
        )
    assert response.status_code == 404


async def test_push_tokens_are_masked(client, make_device):
    await make_device(push_token="ExponentPushToken[abcdefghijklmnopqrstuvwxyz]")

    response = await client.get("/admin/push-tokens", headers=HEADERS)

    assert response.status_code == 200
    [row] = response.json()
    assert row["push_token"].startswith("ExponentPushToken[ab")
    assert row["push_token"].endswith("xyz]")
    assert "..." in row["push_token"]


@pytest.fixture
def collaborators():
    generator = FakeGenerator(tips=[generated_tip(i, category="rust") for i in range(2)])
    with (
        patch("tldev.routes.admin.TipGenerator", return_value=generator),
        patch("tldev.routes.admin.UnsplashClient", return_value=FakeImages()),
        patch("tldev.routes.admin.LinkSearchClient", return_value=FakeLinks()),
    ):
        yield generator


class TestGenerateTips:
    async def test_preview_saves_nothing(self, client, db, collaborators):
        response = await client.post(
            "/admin/generate-tips", json={"count": 2, "category": "rust"}, headers=HEADERS
        )

        assert response.status_code == 200
        body = response.json()
        assert body["published"] is False
        assert [t["status"] for t in body["tips"]] == ["preview", "preview"]
        assert body["tips"][0]["image"]["url"] == "https://images.example.com/rust.jpg"
        assert body["tips"][0]["view_more"]["source"] == "docs.python.org"
        assert collaborators.calls[0]["categories"] == ["rust"]
        assert (await db.scalars(select(Tip))).all() == []
        assert (await db.scalars(select(Job))).all() == []

    async def test_publish_records_job_and_publishes(self, client, db, collaborators):
        response = await client.post(
            "/admin/generate-tips",
            json={"count": 2, "category": "rust", "publish": True},
            headers=HEADERS,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["published"] is True
        assert [t["status"] for t in body["tips"]] == ["published", "published"]
        assert collaborators.calls[0]["categories"] == ["rust"]

        tips = (await db.scalars(select(Tip).execution_options(populate_existing=True))).all()
        assert len(tips) == 2
        assert all(t.status == TipStatus.published and t.image for t in tips)
        [job] = (await db.scalars(select(Job).execution_options(populate_existing=True))).all()
        assert job.status == JobStatus.completed
        assert str(job.id) == body["job_id"]

    async def test_count_is_capped(self, client, collaborators):
        await client.post("/admin/generate-tips", json={"count": 50}, headers=HEADERS)
        assert collaborators.calls[0]["count"] == 5

    async def test_generation_error_is_500(self, client):
        with patch("tldev.routes.admin.TipGenerator", return_value=FakeGenerator(error="quota")):
            response = await client.post("/admin/generate-tips", json={}, headers=HEADERS)
        assert response.status_code == 500
        assert response.json()["detail"] == "quota"


class TestTestPush:
    async def test_sends_to_given_token(self, client):
        sender = CountingSender()
        with patch("tldev.routes.admin.ExpoPushSender", return_value=sender):
            response = await client.post(
                "/admin/test-push",
                json={"push_token": "ExponentPushToken[given]", "title": "Hi"},
                headers=HEADERS,
            )

        assert response.json()["success"] is True
        [message] = sender.sent
        assert message.to == "ExponentPushToken[given]"
        assert message.title == "Hi"
        assert message.data == {"type": "test"}

    async def test_defaults_to_newest_device(self, client, make_device):
        await make_device(push_token="ExponentPushToken[real-device]")
        sender = CountingSender()
        with patch("tldev.routes.admin.ExpoPushSender", return_value=sender):
            response = await client.post("/admin/test-push", json={}, headers=HEADERS)

        assert response.status_code == 200
        assert sender.sent[0].to == "ExponentPushToken[real-device]"
        assert sender.sent[0].body == "This is a test notification!"

    async def test_no_devices_is_400(self, client):
        response = await client.post("/admin/test-push", json={}, headers=HEADERS)
        assert response.status_code == 400

    async def test_invalid_token_is_not_sent(self, client):
        sender = CountingSender()
        with patch("tldev.routes.admin.ExpoPushSender", return_value=sender):
            response = await client.post(
                "/admin/test-push", json={"push_token": "not-a-token"}, headers=HEADERS
            )

        assert response.json() == {
            "success": False,
            "sent_to": "not-a-token",
            "error": "Invalid push token",
        }
        assert sender.chunk_calls == 0
