"""Timeline persistence keyed by A-roll id."""

import redis

from services.errors import NotFoundError
from services.models import Timeline
from services.redis_client import get_redis

KEY_PREFIX = "timeline:"


def _key(aroll_id: str) -> str:
    return f"{KEY_PREFIX}{aroll_id}"


class TimelineStore:
    """Stores one timeline document per A-roll.

    Saving replaces any prior timeline for the same A-roll wholesale; old and
    new insertions are never merged.
    """

    def __init__(self, client: redis.Redis | None = None):
        self.client = client if client is not None else get_redis()

    def save(self, timeline: Timeline) -> Timeline:
        self.client.set(_key(timeline.aroll_id), timeline.model_dump_json())
        return timeline

    def get(self, aroll_id: str) -> Timeline:
        raw = self.client.get(_key(aroll_id))
        if raw is None:
            raise NotFoundError("Timeline", aroll_id)
        return Timeline.model_validate_json(raw)

    def list_all(self) -> list[Timeline]:
        timelines = []
        for key in sorted(self.client.scan_iter(match=f"{KEY_PREFIX}*")):
            raw = self.client.get(key)
            # Deleted between scan and get
            if raw is not None:
                timelines.append(Timeline.model_validate_json(raw))
        return timelines

    def delete(self, aroll_id: str) -> bool:
        return bool(self.client.delete(_key(aroll_id)))
