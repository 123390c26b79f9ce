"""Timeline assembly: turns allocations into ordered per-A-roll insertions."""

import re
from typing import Callable

from config import get_settings
from services.errors import NotFoundError
from services.models import Allocation, Insertion, MediaAsset, Timeline, round_half_up

ReasonFormatter = Callable[[str, str], str]

STOP_WORDS = frozenset({
    "the", "a", "an", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "must", "shall", "can", "of", "at", "by",
    "for", "with", "about", "against", "between", "into", "through",
    "during", "before", "after", "above", "below", "to", "from", "up",
    "down", "in", "out", "on", "off", "over", "under", "again", "further",
    "then", "once", "here", "there", "when", "where", "why", "how", "all",
    "each", "few", "more", "most", "other", "some", "such", "no", "nor",
    "not", "only", "own", "same", "so", "than", "too", "very", "and", "but",
    "if", "or", "because", "as", "until", "while", "this", "that", "these",
    "those", "it", "its", "he", "she", "they", "them", "their", "what",
    "which", "who", "whom", "me", "him", "her", "us", "i", "you", "we",
})

# Characters of spoken text quoted in a reason
REASON_QUOTE_CHARS = 50


def extract_keywords(text: str | None) -> list[str]:
    """Lowercase, strip punctuation and drop short and stop words."""
    if not text:
        return []

    cleaned = re.sub(r"[^\w\s]", "", text.lower())
    return [w for w in cleaned.split() if len(w) > 2 and w not in STOP_WORDS]


def format_reason(segment_text: str, broll_description: str) -> str:
    """Explain why a B-roll was placed at a segment.

    Keywords overlap when one contains the other, so "mountains" in the
    speech matches "mountain" in the description.
    """
    segment_words = extract_keywords(segment_text)
    broll_words = extract_keywords(broll_description)

    overlap = [
        w for w in segment_words
        if any(bw in w or w in bw for bw in broll_words)
    ]

    if overlap:
        return f"Speaker discusses '{segment_text[:REASON_QUOTE_CHARS]}...'; matched with {broll_description}"

    return f"Semantic match: speaker content aligned with B-roll visuals ({broll_description})"


def build_timeline(
    aroll_id: str,
    aroll_duration_sec: float,
    allocations: list[Allocation],
    media_assets: dict[str, MediaAsset],
    reason_formatter: ReasonFormatter = format_reason,
    default_duration_sec: float | None = None,
) -> Timeline:
    """Build the timeline for a single A-roll.

    Args:
        aroll_id: A-roll the timeline belongs to
        aroll_duration_sec: Duration of the A-roll
        allocations: Accepted allocations; entries for other A-rolls are ignored
        media_assets: B-roll assets by id, used for clip duration and description
        reason_formatter: Callable producing the display reason
        default_duration_sec: Clip duration when the asset declares none

    Returns:
        Timeline with insertions sorted by start time
    """
    if default_duration_sec is None:
        default_duration_sec = get_settings().default_broll_duration_sec

    insertions = []
    for allocation in allocations:
        if allocation.aroll_id != aroll_id:
            continue

        broll = media_assets.get(allocation.broll_id)
        duration = broll.duration_sec if broll and broll.duration_sec else default_duration_sec
        description = broll.description if broll and broll.description else allocation.broll_description

        insertions.append(Insertion(
            start_sec=round_half_up(allocation.start_sec),
            duration_sec=round_half_up(duration),
            broll_id=allocation.broll_id,
            confidence=round_half_up(allocation.confidence),
            reason=reason_formatter(allocation.text, description),
        ))

    # Acceptance order is confidence order, not chronological
    insertions.sort(key=lambda ins: ins.start_sec)

    return Timeline(
        aroll_id=aroll_id,
        aroll_duration_sec=round_half_up(aroll_duration_sec),
        insertions=insertions,
    )


def build_timelines(
    allocations: list[Allocation],
    arolls: dict[str, MediaAsset],
    media_assets: dict[str, MediaAsset],
    reason_formatter: ReasonFormatter = format_reason,
    default_duration_sec: float | None = None,
) -> list[Timeline]:
    """Build one timeline per A-roll.

    Every A-roll in ``arolls`` gets a timeline, empty if nothing was allocated
    to it, so that a rebuild replaces stale insertions.

    Raises:
        NotFoundError: An allocation references an A-roll not in ``arolls``
    """
    for allocation in allocations:
        if allocation.aroll_id not in arolls:
            raise NotFoundError("A-roll", allocation.aroll_id)

    timelines = []
    for aroll_id in sorted(arolls):
        timeline = build_timeline(
            aroll_id,
            arolls[aroll_id].duration_sec,
            allocations,
            media_assets,
            reason_formatter=reason_formatter,
            default_duration_sec=default_duration_sec,
        )
        print(f"[Timeline] Built timeline for {aroll_id} with {len(timeline.insertions)} insertions")
        timelines.append(timeline)

    return timelines
