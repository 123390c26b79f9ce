"""Data model shared by the allocator, timeline assembler and compositor."""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

from pydantic import BaseModel, ConfigDict, Field, field_validator


def round_half_up(value: float, places: int = 2) -> float:
    """Round half away from zero to a fixed number of decimal places.

    Used for every reported timestamp and confidence so that 2.675 and -2.675
    come out as 2.68 and -2.68 regardless of binary float representation.
    """
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


class CandidateMatch(BaseModel):
    """A scored pairing of an A-roll segment with a B-roll, produced upstream."""

    model_config = ConfigDict(frozen=True)

    aroll_id: str = Field(min_length=1)
    segment_id: str
    broll_id: str = Field(min_length=1)
    start_sec: float = Field(ge=0)
    end_sec: float = Field(ge=0)
    confidence: float = Field(ge=0, le=1)
    text: str = ""
    broll_description: str = ""


class Allocation(CandidateMatch):
    """A candidate accepted by the allocator, tagged with its acceptance order."""

    order: int = Field(ge=0)


class AllocationStats(BaseModel):
    total_allocations: int = 0
    brolls_used: int = 0
    arolls_covered: int = 0


class AllocationResult(BaseModel):
    allocations: list[Allocation]
    stats: AllocationStats


class Insertion(BaseModel):
    """One scheduled B-roll appearance within a timeline."""

    model_config = ConfigDict(frozen=True)

    start_sec: float = Field(ge=0)
    duration_sec: float = Field(gt=0)
    broll_id: str = Field(min_length=1)
    confidence: float = Field(ge=0, le=1)
    reason: str = ""


class Timeline(BaseModel):
    """Ordered insertions for exactly one A-roll."""

    model_config = ConfigDict(frozen=True)

    aroll_id: str = Field(min_length=1)
    aroll_duration_sec: float = Field(ge=0)
    insertions: list[Insertion] = Field(default_factory=list)

    @field_validator("insertions")
    @classmethod
    def _sort_by_start(cls, insertions: list[Insertion]) -> list[Insertion]:
        # Stable, so equal start times keep their given order
        return sorted(insertions, key=lambda ins: ins.start_sec)


class MediaAsset(BaseModel):
    """A media file on disk, either the A-roll or a B-roll clip."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    file_path: str = Field(min_length=1)
    duration_sec: float = Field(default=0.0, ge=0)
    description: str = ""


class Artifact(BaseModel):
    """A rendered output file awaiting cleanup."""

    model_config = ConfigDict(frozen=True)

    path: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
