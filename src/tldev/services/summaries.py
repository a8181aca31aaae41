"""Structured summaries stored on Job and DailyPush rows.

Each ledger keeps a tagged variant: a success summary or a failure summary,
discriminated by ``kind``. They are dumped to JSON at the storage boundary
and validated again when read back.
"""
from __future__ import annotations

import uuid
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter


class JobSuccessSummary(BaseModel):
    kind: Literal["success"] = "success"
    model: str
    success_count: int
    total_generated: int
    dropped_duplicates: int = 0
    duration_ms: int


class JobFailureSummary(BaseModel):
    kind: Literal["failure"] = "failure"
    model: str | None = None
    step: str
    error: str
    duration_ms: int


JobSummary = Annotated[JobSuccessSummary | JobFailureSummary, Field(discriminator="kind")]


class RecipientError(BaseModel):
    user_id: str
    error: str


class PushSuccessSummary(BaseModel):
    kind: Literal["success"] = "success"
    tip_id: uuid.UUID
    slot: int | None = None
    local_time: str | None = None
    candidate_count: int
    recipient_count: int
    sent_count: int
    error_count: int
    duration_ms: int
    errors: list[RecipientError] = Field(default_factory=list)


class PushFailureSummary(BaseModel):
    kind: Literal["failure"] = "failure"
    error: str
    duration_ms: int | None = None


PushSummary = Annotated[PushSuccessSummary | PushFailureSummary, Field(discriminator="kind")]

_job_summary = TypeAdapter(JobSummary)
_push_summary = TypeAdapter(PushSummary)


def parse_job_summary(data: dict | None) -> JobSuccessSummary | JobFailureSummary | None:
    if not data or "kind" not in data:
        return None
    return _job_summary.validate_python(data)


def parse_push_summary(data: dict | None) -> PushSuccessSummary | PushFailureSummary | None:
    if not data or "kind" not in data:
        return None
    return _push_summary.validate_python(data)
