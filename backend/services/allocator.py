"""Global B-roll allocation across A-rolls.

Turns a confidence-sorted list of candidate matches into a conflict-free set of
allocations. Constraints, checked in order for every candidate:

1. B-roll not already used anywhere in this allocation run
2. Confidence at or above the threshold
3. A-roll has fewer than the maximum number of insertions
4. Start time at least the minimum gap away from every accepted insertion
   on the same A-roll

Selection is first-fit greedy: a rejected candidate is dropped and never
reconsidered.
"""

from dataclasses import dataclass, field

from config import Settings, get_settings
from services.models import (
    Allocation,
    AllocationResult,
    AllocationStats,
    CandidateMatch,
    round_half_up,
)


@dataclass
class _AllocationState:
    """Running state for one allocate() call."""

    used_brolls: set[str] = field(default_factory=set)
    by_aroll: dict[str, list[Allocation]] = field(default_factory=dict)
    allocations: list[Allocation] = field(default_factory=list)

    def rejection(self, match: CandidateMatch, config: Settings) -> str | None:
        """Return why a candidate cannot be allocated, or None if it can."""
        if match.broll_id in self.used_brolls:
            return "broll already used"

        if match.confidence < config.min_confidence:
            return f"confidence {match.confidence} below {config.min_confidence}"

        accepted = self.by_aroll.get(match.aroll_id, [])
        if len(accepted) >= config.max_insertions_per_aroll:
            return "aroll insertion limit reached"

        # Only start times are compared, not occupied intervals
        for existing in accepted:
            if abs(match.start_sec - existing.start_sec) < config.min_gap_seconds:
                return f"within {config.min_gap_seconds}s of {existing.broll_id}@{existing.start_sec}"

        return None

    def accept(self, match: CandidateMatch) -> Allocation:
        allocation = Allocation(**match.model_dump(), order=len(self.allocations))
        self.allocations.append(allocation)
        self.used_brolls.add(match.broll_id)
        self.by_aroll.setdefault(match.aroll_id, []).append(allocation)
        return allocation


def sort_candidates(candidates: list[CandidateMatch]) -> list[CandidateMatch]:
    """Sort candidates by descending confidence, keeping ties in input order."""
    return sorted(candidates, key=lambda c: c.confidence, reverse=True)


def allocate(
    candidates: list[CandidateMatch],
    config: Settings | None = None,
) -> AllocationResult:
    """Allocate B-rolls to A-roll segments in a single greedy sweep.

    Args:
        candidates: Matches already sorted by descending confidence
        config: Allocation thresholds (defaults to application settings)

    Returns:
        AllocationResult with allocations in acceptance order and stats
    """
    config = config or get_settings()
    state = _AllocationState()

    for match in candidates:
        reason = state.rejection(match, config)
        if reason is not None:
            if config.debug_allocation:
                print(f"[Allocator] Skipped {match.broll_id} for {match.aroll_id}@{match.start_sec}: {reason}")
            continue
        state.accept(match)

    stats = AllocationStats(
        total_allocations=len(state.allocations),
        brolls_used=len(state.used_brolls),
        arolls_covered=len(state.by_aroll),
    )
    return AllocationResult(allocations=state.allocations, stats=stats)


def group_by_aroll(allocations: list[Allocation]) -> dict[str, list[Allocation]]:
    """Group allocations by A-roll, each group sorted by start time."""
    grouped: dict[str, list[Allocation]] = {}
    for allocation in allocations:
        grouped.setdefault(allocation.aroll_id, []).append(allocation)

    return {
        aroll_id: sorted(group, key=lambda a: a.start_sec)
        for aroll_id, group in grouped.items()
    }


def summarize_confidence(allocations: list[Allocation]) -> dict:
    """Confidence summary for an allocation set."""
    if not allocations:
        return {
            "total": 0,
            "avg_confidence": 0.0,
            "min_confidence": 0.0,
            "max_confidence": 0.0,
        }

    confidences = [a.confidence for a in allocations]
    return {
        "total": len(allocations),
        "avg_confidence": round_half_up(sum(confidences) / len(confidences)),
        "min_confidence": round_half_up(min(confidences)),
        "max_confidence": round_half_up(max(confidences)),
    }
