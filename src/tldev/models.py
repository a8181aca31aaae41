import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class TipStatus(str, enum.Enum):
    draft = "draft"
    published = "published"


class TipSource(str, enum.Enum):
    ai = "ai"
    manual = "manual"


class ActionType(str, enum.Enum):
    like = "like"
    save = "save"
    share = "share"


class JobStatus(str, enum.Enum):
    running = "running"
    completed = "completed"
    failed = "failed"


class PushStatus(str, enum.Enum):
    sending = "sending"
    completed = "completed"
    failed = "failed"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (Index("ix_users_provider", "provider", "provider_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    provider: Mapped[str | None] = mapped_column(Text, nullable=True)
    provider_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar: Mapped[str | None] = mapped_column(Text, nullable=True)
    interests: Mapped[list] = mapped_column(JSONType, default=list)
    push_token: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    device_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus), nullable=False, default=JobStatus.running
    )
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    tips_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors: Mapped[list] = mapped_column(JSONType, default=list)
    summary: Mapped[dict] = mapped_column(JSONType, default=dict)

    tips: Mapped[list["Tip"]] = relationship(back_populates="job")


class Tip(Base):
    __tablename__ = "tips"
    __table_args__ = (
        Index("ix_tips_status_created", "status", "created_at"),
        Index("ix_tips_category", "category"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    headline: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    code_snippet: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    tags: Mapped[list] = mapped_column(JSONType, default=list)
    topic_slug: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    technology: Mapped[str | None] = mapped_column(Text, nullable=True)
    image: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    view_more: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    likes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    saves_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shares_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    views_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[TipStatus] = mapped_column(
        Enum(TipStatus), nullable=False, default=TipStatus.draft
    )
    source: Mapped[TipSource] = mapped_column(
        Enum(TipSource), nullable=False, default=TipSource.ai
    )
    ai_model: Mapped[str | None] = mapped_column(Text, nullable=True)
    job_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("jobs.id"), nullable=True)
    # Python-side default keeps microsecond ordering for feed cursors.
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    job: Mapped["Job | None"] = relationship(back_populates="tips")


class Action(Base):
    __tablename__ = "actions"
    __table_args__ = (
        UniqueConstraint("user_id", "tip_id", "action_type", name="uq_action_user_tip_type"),
        Index("ix_actions_tip_type", "tip_id", "action_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    tip_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tips.id"), nullable=False)
    action_type: Mapped[ActionType] = mapped_column(Enum(ActionType), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class DailyPush(Base):
    __tablename__ = "daily_pushes"
    __table_args__ = (UniqueConstraint("date", "slot", name="uq_daily_push_date_slot"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    date: Mapped[str] = mapped_column(Text, nullable=False)
    slot: Mapped[int] = mapped_column(Integer, nullable=False)
    tip_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("tips.id"), nullable=True)
    candidate_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[PushStatus] = mapped_column(Enum(PushStatus), nullable=False)
    claim_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    sent_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    summary: Mapped[dict] = mapped_column(JSONType, default=dict)

    tip: Mapped["Tip | None"] = relationship()
