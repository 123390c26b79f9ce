from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Allocation
    max_insertions_per_aroll: int = Field(default=5, ge=0)
    min_gap_seconds: float = Field(default=4.0, ge=0)
    min_confidence: float = Field(default=0.45, ge=0, le=1)
    debug_allocation: bool = False

    # Timeline
    default_broll_duration_sec: float = Field(default=5.0, gt=0)

    # Rendering
    export_dir: str = "exports"
    ffmpeg_cmd: str = "ffmpeg"
    max_parallel_renders: int = Field(default=2, ge=1)

    # Cleanup
    cleanup_ttl_seconds: int = Field(default=300, ge=0)

    # Redis
    redis_url: str = "redis://localhost:6379"

    @field_validator("min_confidence")
    @classmethod
    def _confidence_on_report_grid(cls, value: float) -> float:
        # Must lie on the two-decimal grid insertions report confidence on
        if round(value, 2) != value:
            raise ValueError("min_confidence must have at most two decimal places")
        return value

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()


class RenderConfig:
    """Fixed encode policy for overlay renders."""

    # Canvas
    WIDTH = 1920
    HEIGHT = 1080
    FPS = 30
    PIX_FMT = "yuv420p"

    # Codecs
    VIDEO_CODEC = "libx264"
    AUDIO_CODEC = "aac"

    # Output naming
    OUTPUT_PREFIX = "final_"
    OUTPUT_EXT = ".mp4"

    # Lines of ffmpeg output kept for error reports
    ERROR_TAIL_LINES = 20
