"""Celery worker for allocation and render tasks."""

from functools import lru_cache

from celery import Celery
from celery.signals import worker_shutdown

from config import get_settings

settings = get_settings()

# Initialize Celery
celery = Celery(
    "broll_inserter",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=3600,  # 1 hour max per task
    worker_prefetch_multiplier=1,  # Process one task at a time
)


@lru_cache
def get_cleanup_scheduler():
    """Cleanup timers for artifacts rendered by this worker process."""
    from services.cleanup import CleanupScheduler

    return CleanupScheduler(get_settings().cleanup_ttl_seconds)


@lru_cache
def get_compositor():
    """Compositor shared by all render tasks in this worker process."""
    from services.render import Compositor

    return Compositor(get_settings(), cleanup=get_cleanup_scheduler())


@worker_shutdown.connect
def _drop_pending_cleanups(**kwargs):
    if get_cleanup_scheduler.cache_info().currsize:
        pending = get_cleanup_scheduler().pending()
        if pending:
            print(f"[Worker] Dropping {len(pending)} pending cleanups on shutdown")
        get_cleanup_scheduler().cancel_all()


@celery.task(bind=True, max_retries=0)
def build_timelines_task(self, candidates: list[dict], arolls: list[dict], brolls: list[dict]):
    """Allocate B-rolls across A-rolls and store one timeline per A-roll.

    Steps:
    1. Validate payloads
    2. Sort candidates by confidence (stable)
    3. Allocate under the global constraints
    4. Build and save timelines, replacing any previous ones
    """
    from services.allocator import allocate, sort_candidates, summarize_confidence
    from services.models import CandidateMatch, MediaAsset
    from services.timeline import build_timelines
    from services.timeline_store import TimelineStore

    matches = [CandidateMatch.model_validate(c) for c in candidates]
    aroll_assets = {a.id: a for a in (MediaAsset.model_validate(a) for a in arolls)}
    broll_assets = {b.id: b for b in (MediaAsset.model_validate(b) for b in brolls)}

    print(f"[Worker] Allocating {len(matches)} candidates across {len(aroll_assets)} A-rolls")
    result = allocate(sort_candidates(matches), settings)
    print(
        f"[Worker] Allocated {result.stats.total_allocations} insertions, "
        f"{result.stats.brolls_used} B-rolls, {result.stats.arolls_covered} A-rolls covered"
    )

    timelines = build_timelines(result.allocations, aroll_assets, broll_assets)

    store = TimelineStore()
    for timeline in timelines:
        store.save(timeline)

    return {
        "status": "success",
        "stats": result.stats.model_dump(),
        "confidence": summarize_confidence(result.allocations),
        "timelines": [t.model_dump() for t in timelines],
    }


@celery.task(bind=True, max_retries=0)
def render_timeline_task(self, aroll_id: str, primary: dict, brolls: list[dict]):
    """Render the stored timeline for an A-roll.

    Lifecycle events are mirrored into the task state so clients polling the
    result backend see STARTED / PROGRESS updates. The artifact is deleted
    automatically after the configured TTL.
    """
    from services.models import MediaAsset
    from services.render import RenderEventType
    from services.timeline_store import TimelineStore

    primary_asset = MediaAsset.model_validate(primary)
    broll_assets = {b.id: b for b in (MediaAsset.model_validate(b) for b in brolls)}
    timeline = TimelineStore().get(aroll_id)

    # Events arrive on the render thread, where self.request is not bound
    task_id = self.request.id

    def on_event(event):
        if event.type == RenderEventType.STARTED:
            self.update_state(task_id=task_id, state="STARTED", meta={"aroll_id": aroll_id, "graph": event.graph})
        elif event.type == RenderEventType.PROGRESS:
            self.update_state(task_id=task_id, state="PROGRESS", meta={"aroll_id": aroll_id, "percent": event.percent})

    job = get_compositor().render(timeline, broll_assets, primary_asset, on_event=on_event)
    artifact = job.result()

    return {
        "status": "success",
        "aroll_id": aroll_id,
        "output_path": artifact.path,
        "created_at": artifact.created_at.isoformat(),
        "expires_in": settings.cleanup_ttl_seconds,
    }
