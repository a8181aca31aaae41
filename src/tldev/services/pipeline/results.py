from __future__ import annotations

import enum
import time
import uuid
from dataclasses import asdict, dataclass, field


class Outcome(str, enum.Enum):
    success = "success"
    skipped = "skipped"
    failed = "failed"


class Stopwatch:
    def __init__(self):
        self._start = time.monotonic()

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)


@dataclass
class StageResult:
    outcome: Outcome
    reason: str | None = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome != Outcome.failed

    def to_dict(self) -> dict:
        data = asdict(self)
        data["outcome"] = self.outcome.value
        return {k: str(v) if isinstance(v, uuid.UUID) else v for k, v in data.items()}


@dataclass
class JobResult(StageResult):
    job_id: uuid.UUID | None = None
    model: str | None = None
    tip_ids: list[str] = field(default_factory=list)
    dropped_duplicates: int = 0
    error: str | None = None


@dataclass
class EnrichedItem:
    tip_id: str
    outcome: Outcome
    has_image: bool = False
    has_link: bool = False
    error: str | None = None


@dataclass
class EnrichmentResult(StageResult):
    items: list[EnrichedItem] = field(default_factory=list)

    @property
    def enriched(self) -> int:
        return sum(1 for i in self.items if i.outcome == Outcome.success)

    @property
    def failed(self) -> int:
        return sum(1 for i in self.items if i.outcome == Outcome.failed)

    def to_dict(self) -> dict:
        data = super().to_dict()
        for item in data["items"]:
            item["outcome"] = item["outcome"].value
        data["enriched"] = self.enriched
        data["failed"] = self.failed
        return data


@dataclass
class DispatchResult(StageResult):
    date: str | None = None
    slot: int | None = None
    tip_id: uuid.UUID | None = None
    candidate_count: int = 0
    recipient_count: int = 0
    sent_count: int = 0
    error_count: int = 0
    error: str | None = None
    previous: dict | None = None
