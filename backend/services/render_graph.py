"""Typed overlay render graph.

The graph is built from plain nodes first and only turned into ffmpeg
arguments at process launch:

    [primary] -> base ----------------> overlay0 -> overlay1 -> ... -> video out
    [broll 0] -> delay0 (setpts +t0) -----^            ^
    [broll 1] -> delay1 (setpts +t1) ------------------'
    [primary] audio ------------------------------------------------> audio out

Every source is normalized to the same canvas, frame rate and pixel format
before overlaying, so clips of any resolution land full-screen.
"""

from dataclasses import dataclass, field

import ffmpeg

from config import RenderConfig
from services.models import Insertion, MediaAsset


@dataclass(frozen=True)
class BaseNode:
    """Normalized primary video."""

    asset_id: str
    file_path: str
    label: str = "base"


@dataclass(frozen=True)
class DelayNode:
    """Normalized B-roll shifted forward so it starts at ``start_sec``."""

    asset_id: str
    file_path: str
    start_sec: float
    label: str


@dataclass(frozen=True)
class OverlayNode:
    """Draws ``overlay`` on top of ``main`` until the overlay stream ends."""

    main: str
    overlay: str
    label: str


@dataclass
class RenderGraph:
    base: BaseNode
    delays: list[DelayNode] = field(default_factory=list)
    overlays: list[OverlayNode] = field(default_factory=list)

    @property
    def output_label(self) -> str:
        """Label of the stream mapped as the video output."""
        if self.overlays:
            return self.overlays[-1].label
        return self.base.label

    def describe(self) -> list[str]:
        """Human-readable filter lines, one per node."""
        normalize = _normalize_text()
        lines = [f"[0:v]{normalize}[{self.base.label}]"]
        for i, node in enumerate(self.delays):
            lines.append(f"[{i + 1}:v]{normalize},setpts=PTS+{node.start_sec}/TB[{node.label}]  # {node.asset_id}")
        for node in self.overlays:
            lines.append(f"[{node.main}][{node.overlay}]overlay=eof_action=pass[{node.label}]")
        return lines

    def to_ffmpeg(self, output_path: str):
        """Compile the graph into an ffmpeg-python output stream.

        The primary's original audio is mapped unchanged next to the final
        video stream. Output length is capped at the shortest mapped stream.
        """
        primary = ffmpeg.input(self.base.file_path)
        streams = {self.base.label: _normalize(primary.video)}

        for node in self.delays:
            clip = ffmpeg.input(node.file_path)
            streams[node.label] = _normalize(clip.video).filter("setpts", f"PTS+{node.start_sec}/TB")

        for node in self.overlays:
            streams[node.label] = streams[node.main].overlay(
                streams[node.overlay],
                eof_action="pass",
                shortest=0,
            )

        return (
            ffmpeg
            .output(
                streams[self.output_label],
                primary.audio,
                output_path,
                vcodec=RenderConfig.VIDEO_CODEC,
                acodec=RenderConfig.AUDIO_CODEC,
                pix_fmt=RenderConfig.PIX_FMT,
                shortest=None,
            )
            # Never overwrite; progress as key=value lines on stdout
            .global_args("-n", "-hide_banner", "-nostats", "-loglevel", "error", "-progress", "pipe:1")
        )

    def compile(self, output_path: str, cmd: str = "ffmpeg") -> list[str]:
        """Full ffmpeg argv for rendering to ``output_path``."""
        return self.to_ffmpeg(output_path).compile(cmd=cmd)


def _normalize(stream):
    return (
        stream
        .filter("scale", w=RenderConfig.WIDTH, h=RenderConfig.HEIGHT, force_original_aspect_ratio="decrease")
        .filter("pad", w=RenderConfig.WIDTH, h=RenderConfig.HEIGHT, x="(ow-iw)/2", y="(oh-ih)/2")
        .filter("setsar", 1)
        .filter("fps", fps=RenderConfig.FPS)
        .filter("format", pix_fmts=RenderConfig.PIX_FMT)
    )


def _normalize_text() -> str:
    w, h = RenderConfig.WIDTH, RenderConfig.HEIGHT
    return (
        f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
        f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2,setsar=1,"
        f"fps={RenderConfig.FPS},format={RenderConfig.PIX_FMT}"
    )


def build_render_graph(
    primary: MediaAsset,
    placements: list[tuple[Insertion, MediaAsset]],
) -> RenderGraph:
    """Build the overlay graph for a primary asset and resolved insertions.

    Args:
        primary: The A-roll asset
        placements: (insertion, B-roll asset) pairs whose files exist

    Returns:
        RenderGraph with delays and overlays chained in start time order
    """
    graph = RenderGraph(base=BaseNode(asset_id=primary.id, file_path=primary.file_path))

    ordered = sorted(placements, key=lambda p: p[0].start_sec)
    previous = graph.base.label
    for i, (insertion, asset) in enumerate(ordered):
        delay = DelayNode(
            asset_id=asset.id,
            file_path=asset.file_path,
            start_sec=float(insertion.start_sec),
            label=f"b{i}_delayed",
        )
        overlay = OverlayNode(main=previous, overlay=delay.label, label=f"v{i}")
        graph.delays.append(delay)
        graph.overlays.append(overlay)
        previous = overlay.label

    return graph


def filter_complex_of(args: list[str]) -> str:
    """Extract the -filter_complex value from compiled ffmpeg arguments."""
    if "-filter_complex" not in args:
        return ""
    return args[args.index("-filter_complex") + 1]
