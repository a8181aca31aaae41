"""Local end-to-end test for the TL;Dev tip pipeline.

Exercises enrichment, slot dispatch and the HTTP API against a real
PostgreSQL. No Celery worker needed: calls async functions directly.
Image/link providers run unconfigured, and the seeded device carries an
invalid push token, so nothing leaves the machine.

Prerequisites:
    docker compose up -d   (PostgreSQL + Redis)

Usage:
    uv run python scripts/e2e_local.py
"""

import asyncio
import subprocess
import sys
import traceback
import uuid

import httpx
from sqlalchemy import delete, select

from tldev.app import create_app
from tldev.database import async_session
from tldev.models import Action, DailyPush, PushStatus, Tip, TipSource, TipStatus, User
from tldev.services.images import UnsplashClient
from tldev.services.links import LinkSearchClient
from tldev.services.pipeline.dispatch import run_dispatch_for_slot
from tldev.services.pipeline.enrich import enrich_tip
from tldev.services.push_sender import ExpoPushSender

E2E_DEVICE = "e2e-device"
E2E_EMAIL = f"{E2E_DEVICE}@device.tldev"
E2E_TOPIC = "e2e-local-tip"
E2E_DATE = "1999-01-01"
E2E_SLOT = 0


def step(n: int, title: str) -> None:
    print(f"\n{'='*60}")
    print(f"  Step {n}: {title}")
    print(f"{'='*60}")


async def cleanup(db):
    """Delete everything the E2E run may have written."""
    tip_ids = [
        row[0]
        for row in (await db.execute(select(Tip.id).where(Tip.topic_slug == E2E_TOPIC))).all()
    ]
    await db.execute(delete(DailyPush).where(DailyPush.date == E2E_DATE))
    if tip_ids:
        await db.execute(delete(Action).where(Action.tip_id.in_(tip_ids)))
        await db.execute(delete(Tip).where(Tip.id.in_(tip_ids)))
    await db.execute(delete(User).where(User.email == E2E_EMAIL))
    await db.commit()
    print("  Cleaned up previous E2E data")


async def seed(db):
    tip = Tip(
        headline="Use git switch -c instead of git checkout -b",
        summary="git switch is the focused command for changing branches.",
        detail="git checkout does too many things. git switch only moves branches.",
        category="git",
        tags=["git", "cli"],
        topic_slug=E2E_TOPIC,
        technology="git",
        source=TipSource.manual,
        status=TipStatus.draft,
    )
    device = User(email=E2E_EMAIL, push_token="not-an-expo-token", device_type="ios")
    db.add_all([tip, device])
    await db.commit()
    print(f"  Tip:     {tip.id} (draft)")
    print(f"  Device:  {device.id}")
    return tip, device


async def enrich(db, tip):
    result = await enrich_tip(db, tip.id, UnsplashClient(access_key=""), LinkSearchClient(api_key=""))
    assert result.ok, f"Enrichment failed: {result.to_dict()}"
    refreshed = await db.scalar(
        select(Tip).where(Tip.id == tip.id).execution_options(populate_existing=True)
    )
    assert refreshed.status == TipStatus.published, "Tip was not published"
    print(f"  Enrichment: {result.outcome.value}, status={refreshed.status.value}")


async def dispatch(db):
    sender = ExpoPushSender(access_token="")
    first = await run_dispatch_for_slot(db, sender, E2E_DATE, E2E_SLOT)
    print(f"  First run:  {first.outcome.value} ({first.error_count} recipient errors)")
    assert first.ok, f"Dispatch failed: {first.to_dict()}"

    second = await run_dispatch_for_slot(db, sender, E2E_DATE, E2E_SLOT)
    print(f"  Second run: {second.outcome.value} ({second.reason})")
    assert second.reason == "already_completed", "Slot was dispatched twice"

    push = await db.scalar(
        select(DailyPush).where(DailyPush.date == E2E_DATE, DailyPush.slot == E2E_SLOT)
    )
    assert push.status == PushStatus.completed
    print(f"  Ledger row: {push.id} status={push.status.value}")


async def verify_api(tip_id):
    app = create_app()
    transport = httpx.ASGITransport(app=app)
    user_id = str(uuid.uuid4())

    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        r = await client.get("/health")
        assert r.status_code == 200, f"/health returned {r.status_code}"
        print("  GET /health              -> 200 OK")

        r = await client.get("/tips", params={"category": "git", "limit": 50})
        assert r.status_code == 200, f"/tips returned {r.status_code}"
        ids = [item["id"] for item in r.json()["items"]]
        print(f"  GET /tips                -> 200 ({len(ids)} tips)")

        r = await client.get(f"/tips/{tip_id}")
        assert r.status_code == 200, f"/tips/{{id}} returned {r.status_code}"
        print(f"  GET /tips/{{id}}           -> 200 (views={r.json()['views_count']})")

        body = {"user_id": user_id, "action_type": "like"}
        r = await client.post(f"/tips/{tip_id}/action", json=body)
        assert r.json()["action"] == "added"
        r = await client.post(f"/tips/{tip_id}/action", json=body)
        assert r.json()["action"] == "removed"
        print("  POST /tips/{id}/action   -> added, removed")

    async with async_session() as db:
        await db.execute(delete(Action).where(Action.tip_id == tip_id))
        await db.execute(delete(User).where(User.id == uuid.UUID(user_id)))
        await db.commit()


async def main():
    failed = False

    try:
        step(1, "Run Alembic migrations")
        result = subprocess.run(
            ["alembic", "upgrade", "head"],
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            print(f"  FAILED:\n{result.stderr}")
            sys.exit(1)
        print("  Migrations applied successfully")

        async with async_session() as db:
            step(2, "Clean up previous test data")
            await cleanup(db)

            step(3, "Seed draft tip and device")
            tip, _ = await seed(db)

            step(4, "Enrich and publish")
            await enrich(db, tip)

            step(5, "Dispatch a slot twice")
            await dispatch(db)

        step(6, "Verify via HTTP API")
        await verify_api(tip.id)

        print(f"\n{'='*60}")
        print("  E2E TEST PASSED")
        print(f"{'='*60}\n")

    except Exception:
        failed = True
        traceback.print_exc()
        print(f"\n{'='*60}")
        print("  E2E TEST FAILED")
        print(f"{'='*60}\n")

    finally:
        try:
            async with async_session() as db:
                await cleanup(db)
        except Exception:
            traceback.print_exc()

    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    asyncio.run(main())
