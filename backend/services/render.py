"""FFmpeg compositing service: overlays timed B-roll clips onto an A-roll."""

import os
import re
import subprocess
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import Callable
from uuid import uuid4

import ffmpeg
from pydantic import BaseModel

from config import RenderConfig, Settings, get_settings
from services.cleanup import CleanupScheduler
from services.errors import EncodeError
from services.models import Artifact, Insertion, MediaAsset, Timeline, round_half_up
from services.render_graph import RenderGraph, build_render_graph, filter_complex_of

# key=value lines written by `-progress pipe:1`
_PROGRESS_LINE = re.compile(r"^(\w+)=(\S*)$")
_PROGRESS_TIME_KEYS = ("out_time_us", "out_time_ms")  # both are microseconds


class RenderState(str, Enum):
    IDLE = "idle"
    GRAPH_BUILT = "graph_built"
    ENCODING = "encoding"
    COMPLETED = "completed"
    FAILED = "failed"


class RenderEventType(str, Enum):
    STARTED = "started"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"


class RenderEvent(BaseModel):
    type: RenderEventType
    graph: str | None = None
    args: list[str] | None = None
    percent: float | None = None
    path: str | None = None
    error: str | None = None


EventCallback = Callable[[RenderEvent], None]


class RenderJob:
    """Handle on one render request.

    Wraps a Future resolving to the Artifact (or raising the failure) and
    records every lifecycle event. Use ``asyncio.wrap_future(job.future)`` to
    await it from async code. A started render is never cancelled.
    """

    def __init__(self, aroll_id: str, on_event: EventCallback | None = None):
        self.aroll_id = aroll_id
        self.future: Future = Future()
        self._on_event = on_event
        self._events: list[RenderEvent] = []
        self._state = RenderState.IDLE
        self._progress = 0.0
        self._lock = threading.Lock()

    @property
    def state(self) -> RenderState:
        return self._state

    @property
    def events(self) -> list[RenderEvent]:
        with self._lock:
            return list(self._events)

    @property
    def progress(self) -> float:
        return self._progress

    def result(self, timeout: float | None = None) -> Artifact:
        return self.future.result(timeout)

    def done(self) -> bool:
        return self.future.done()

    def _emit(self, event: RenderEvent) -> None:
        with self._lock:
            self._events.append(event)
        if self._on_event:
            # Listener errors never change the outcome of the render
            try:
                self._on_event(event)
            except Exception as e:
                print(f"[Render] WARNING: {event.type.value} listener failed for {self.aroll_id}: {e}")

    def _transition(self, state: RenderState) -> None:
        self._state = state

    def _report_progress(self, percent: float) -> None:
        percent = round_half_up(min(100.0, max(0.0, percent)))
        if percent <= self._progress:
            return
        self._progress = percent
        self._emit(RenderEvent(type=RenderEventType.PROGRESS, percent=percent))

    def _complete(self, artifact: Artifact) -> None:
        self._transition(RenderState.COMPLETED)
        self._emit(RenderEvent(type=RenderEventType.COMPLETED, path=artifact.path))

    def _fail(self, error: BaseException) -> None:
        self._transition(RenderState.FAILED)
        self._emit(RenderEvent(type=RenderEventType.FAILED, error=str(error)))


def resolve_placements(
    timeline: Timeline,
    media_assets: dict[str, MediaAsset],
) -> list[tuple[Insertion, MediaAsset]]:
    """Pair insertions with their B-roll assets, skipping unusable ones.

    An insertion whose asset record or file is missing is dropped and the
    rest of the render goes ahead without it.
    """
    placements = []
    for insertion in timeline.insertions:
        asset = media_assets.get(insertion.broll_id)
        if asset is None:
            print(f"[Render] WARNING: B-roll {insertion.broll_id} not found (skipping insertion at {insertion.start_sec}s)")
            continue
        if not os.path.exists(asset.file_path):
            print(f"[Render] WARNING: B-roll file missing: {asset.file_path} (skipping insertion at {insertion.start_sec}s)")
            continue
        placements.append((insertion, asset))
    return placements


def parse_progress_seconds(line: str) -> float | None:
    """Output time in seconds from an ffmpeg progress line, if it carries one."""
    match = _PROGRESS_LINE.match(line)
    if not match or match.group(1) not in _PROGRESS_TIME_KEYS:
        return None
    try:
        return int(match.group(2)) / 1_000_000
    except ValueError:
        # "N/A" before the first frame is written
        return None


def _get_video_duration(path: str) -> float:
    """Get video duration in seconds using ffprobe."""
    probe = ffmpeg.probe(path)
    return float(probe["format"]["duration"])


class Compositor:
    """Renders timelines by overlaying B-roll on the A-roll with ffmpeg.

    Each render runs as its own ffmpeg process on a thread pool, so several
    renders can be in flight at once. Output names are unique per render.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        cleanup: CleanupScheduler | None = None,
        executor: ThreadPoolExecutor | None = None,
    ):
        self.settings = settings or get_settings()
        self.cleanup = cleanup
        self.executor = executor or ThreadPoolExecutor(
            max_workers=self.settings.max_parallel_renders,
            thread_name_prefix="render",
        )

    def render(
        self,
        timeline: Timeline,
        media_assets: dict[str, MediaAsset],
        primary_asset: MediaAsset,
        on_event: EventCallback | None = None,
    ) -> RenderJob:
        """Start rendering a timeline.

        Args:
            timeline: Insertions to overlay
            media_assets: B-roll assets by id
            primary_asset: The A-roll asset
            on_event: Called with every lifecycle event, from the render thread

        Returns:
            RenderJob; its result is the Artifact, or it raises
            FileNotFoundError (missing A-roll), OSError (export directory
            unusable) or EncodeError
        """
        job = RenderJob(timeline.aroll_id, on_event)

        print(f"[Render] ========== STARTING RENDER: {timeline.aroll_id} ==========")
        if not os.path.exists(primary_asset.file_path):
            return self._reject(job, FileNotFoundError(f"A-roll file not found: {primary_asset.file_path}"))

        try:
            output_path = self._new_output_path()
        except OSError as e:
            return self._reject(job, e)

        duration_sec = primary_asset.duration_sec or self._probe_duration(primary_asset.file_path)

        print(f"[Render] Timeline has {len(timeline.insertions)} insertions")
        placements = resolve_placements(timeline, media_assets)
        graph = build_render_graph(primary_asset, placements)
        job._transition(RenderState.GRAPH_BUILT)

        print(f"[Render] Building {len(graph.overlays)} overlay operations:")
        for line in graph.describe():
            print(f"[Render]   {line}")

        job.future = self.executor.submit(self._encode, job, graph, output_path, duration_sec)
        return job

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)

    def _reject(self, job: RenderJob, error: Exception) -> RenderJob:
        """Fail a job before any encoding has started."""
        print(f"[Render] ERROR: {error}")
        job._fail(error)
        job.future.set_exception(error)
        return job

    def _new_output_path(self) -> str:
        export_dir = os.path.abspath(self.settings.export_dir)
        os.makedirs(export_dir, exist_ok=True)
        filename = f"{RenderConfig.OUTPUT_PREFIX}{uuid4().hex}{RenderConfig.OUTPUT_EXT}"
        return os.path.join(export_dir, filename)

    def _probe_duration(self, path: str) -> float:
        try:
            return _get_video_duration(path)
        except (ffmpeg.Error, OSError, KeyError, ValueError) as e:
            # ffprobe missing or unreadable output
            print(f"[Render] Could not probe duration of {path}, progress disabled: {e}")
            return 0.0

    def _encode(self, job: RenderJob, graph: RenderGraph, output_path: str, duration_sec: float) -> Artifact:
        try:
            artifact = self._run_ffmpeg(job, graph, output_path, duration_sec)
        except Exception as e:
            # Partial output, if any, is left for the caller
            print(f"[Render] ERROR: Render failed for {job.aroll_id}: {e}")
            job._fail(e)
            raise

        print(f"[Render] Render complete: {artifact.path}")

        if self.cleanup is not None:
            self.cleanup.schedule_cleanup(artifact.path, self.settings.cleanup_ttl_seconds)

        job._complete(artifact)
        return artifact

    def _run_ffmpeg(self, job: RenderJob, graph: RenderGraph, output_path: str, duration_sec: float) -> Artifact:
        job._transition(RenderState.ENCODING)
        args = graph.compile(output_path, cmd=self.settings.ffmpeg_cmd)

        job._emit(RenderEvent(type=RenderEventType.STARTED, graph=filter_complex_of(args), args=args))
        print(f"[Render] FFmpeg started, output: {output_path}")

        try:
            process = subprocess.Popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except OSError as e:
            raise EncodeError(f"Could not start {args[0]}: {e}") from e

        tail: deque[str] = deque(maxlen=RenderConfig.ERROR_TAIL_LINES)
        with process:
            for raw in process.stdout:
                line = raw.strip()
                if not line:
                    continue
                if not _PROGRESS_LINE.match(line):
                    tail.append(line)
                    continue

                seconds = parse_progress_seconds(line)
                if seconds is not None and duration_sec > 0:
                    job._report_progress(seconds / duration_sec * 100)

            returncode = process.wait()

        if returncode != 0:
            raise EncodeError(
                f"ffmpeg exited with code {returncode}",
                returncode=returncode,
                output="\n".join(tail),
            )

        return Artifact(path=output_path)
