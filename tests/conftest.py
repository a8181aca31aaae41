import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tldev.models import Base, Tip, TipSource, TipStatus, User, utcnow
from tldev.services.images import TipImage
from tldev.services.links import ViewMoreLink
from tldev.services.llm import GeneratedTip, GenerationResult
from tldev.services.push_sender import ExpoPushSender, PushTicket


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Independent sessions on the test database, for overlapping runs."""
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def session_for(db):
    """Stand-in for ``async_session`` that hands out the test session."""

    @asynccontextmanager
    async def mock_session():
        yield db

    return mock_session


@pytest.fixture
def make_tip(db):
    offset = {"n": 0}

    async def _make(**overrides) -> Tip:
        # Spread created_at so feed ordering is deterministic.
        offset["n"] += 1
        values = {
            "headline": f"Tip number {offset['n']}",
            "summary": f"Summary for tip {offset['n']}",
            "detail": "Detail",
            "category": "python",
            "tags": ["python"],
            "topic_slug": f"topic-{offset['n']}",
            "status": TipStatus.published,
            "source": TipSource.ai,
            "created_at": utcnow() - timedelta(hours=1) + timedelta(seconds=offset["n"]),
        }
        values.update(overrides)
        tip = Tip(**values)
        db.add(tip)
        await db.commit()
        return tip

    return _make


@pytest.fixture
def make_device(db):
    counter = {"n": 0}

    async def _make(push_token: str | None = None) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            email=f"device-{n}@device.tldev",
            push_token=push_token if push_token is not None else f"ExponentPushToken[device-{n}]",
            device_type="ios",
        )
        db.add(user)
        await db.commit()
        return user

    return _make


def generated_tip(n: int, **overrides) -> GeneratedTip:
    values = {
        "headline": f"Use tool{n} for faster builds",
        "summary": f"Summary {n}",
        "detail": f"Detail {n}",
        "category": "python",
        "tags": ["python"],
        "topic_slug": f"topic-{n}",
        "technology": f"tech-{n}",
    }
    values.update(overrides)
    return GeneratedTip(**values)


class FakeGenerator:
    model = "fake-model"

    def __init__(self, tips=None, error=None, delay=0.0):
        self.tips = tips if tips is not None else [generated_tip(i) for i in range(3)]
        self.error = error
        self.delay = delay
        self.calls = []

    async def generate(self, count, categories=None, exclusions=None):
        self.calls.append({"count": count, "categories": categories, "exclusions": exclusions})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            return GenerationResult(model=self.model, error=self.error)
        return GenerationResult(tips=list(self.tips), model=self.model)


class FakeImages:
    def __init__(self, fail_for=(), crash=False):
        self.fail_for = set(fail_for)
        self.crash = crash
        self.calls = []

    async def fetch_image(self, category):
        self.calls.append(category)
        if self.crash:
            raise RuntimeError("image provider down")
        if category in self.fail_for:
            return None
        return TipImage(
            url=f"https://images.example.com/{category}.jpg",
            thumb_url=f"https://images.example.com/{category}-thumb.jpg",
            width=1080,
            height=1920,
            unsplash_id=f"id-{category}",
            author="Jane Doe",
            author_url="https://unsplash.com/@jane",
            download_url="https://api.unsplash.com/photos/x/download",
        )


class FakeLinks:
    def __init__(self, crash=False):
        self.crash = crash
        self.calls = []

    async def fetch_link(self, text, category):
        self.calls.append((text, category))
        if self.crash:
            raise RuntimeError("search provider down")
        return ViewMoreLink(
            title=f"More on {category}",
            url=f"https://docs.python.org/{category}",
            snippet="Read more",
            source="docs.python.org",
        )


class CountingSender(ExpoPushSender):
    """Push sender that records every message instead of calling Expo."""

    def __init__(self, chunk_size=100, fail_chunks=(), error_tokens=()):
        super().__init__(access_token="", url="http://expo.invalid/push", chunk_size=chunk_size)
        self.fail_chunks = set(fail_chunks)
        self.error_tokens = set(error_tokens)
        self.sent = []
        self.chunk_calls = 0

    async def send_chunk(self, messages):
        index = self.chunk_calls
        self.chunk_calls += 1
        if index in self.fail_chunks:
            raise RuntimeError("Expo unavailable")
        tickets = []
        for m in messages:
            if m.to in self.error_tokens:
                tickets.append(PushTicket(status="error", message="DeviceNotRegistered"))
            else:
                self.sent.append(m)
                tickets.append(PushTicket(status="ok", id=f"ticket-{len(self.sent)}"))
        return tickets


@pytest.fixture
def sender():
    return CountingSender()
