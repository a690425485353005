from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

OutputFormat = Literal["mp4", "webm", "mov"]
Quality = Literal["low", "medium", "high", "ultra"]

# Quality preset -> x264/vp9 CRF
QUALITY_CRF: dict[str, int] = {
    "low": 28,
    "medium": 23,
    "high": 18,
    "ultra": 15,
}

# Container -> (video codec, audio codec)
FORMAT_CODECS: dict[str, tuple[str, str]] = {
    "mp4": ("libx264", "aac"),
    "mov": ("libx264", "aac"),
    "webm": ("libvpx-vp9", "libopus"),
}

# Human-readable codec names for the job result
CODEC_NAMES: dict[str, str] = {
    "libx264": "H.264",
    "libvpx-vp9": "VP9",
}


class OutputOptions(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    format: OutputFormat = "mp4"
    quality: Quality = "high"

    @property
    def crf(self) -> int:
        return QUALITY_CRF[self.quality]

    @property
    def video_codec(self) -> str:
        return FORMAT_CODECS[self.format][0]

    @property
    def audio_codec(self) -> str:
        return FORMAT_CODECS[self.format][1]


class RenderRequest(BaseModel):
    """A render submission as received from the API layer."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    timeline: Any  # Raw decoded JSON, validated by the executor
    merge_fields: dict[str, str | int | float] = Field(default_factory=dict)
    output: OutputOptions = Field(default_factory=OutputOptions)


class RenderResult(BaseModel):
    path: str
    filename: str
    url: str
    size: int
    duration: float
    resolution: dict[str, int]
    fps: float
    codec: str
    format: str
    tracks: int = 0
    clips: int = 0


class ErrorInfo(BaseModel):
    code: str
    message: str
    detail: str | None = None  # Bounded encoder diagnostic tail
    retryable: bool = False
    suggested_fix: str | None = None


class JobState(str, Enum):
    """Render job lifecycle state."""

    CREATED = "created"
    VALIDATING = "validating"
    SUBSTITUTING = "substituting"
    RESOLVING = "resolving"
    COMPILING = "compiling"
    RENDERING = "rendering"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class JobSnapshot(BaseModel):
    """Immutable view of a job handed to callers."""

    model_config = ConfigDict(frozen=True)

    id: str
    state: JobState
    created_at: datetime
    updated_at: datetime
    progress: float = 0.0
    result: RenderResult | None = None
    error: ErrorInfo | None = None
    warnings: tuple[str, ...] = ()


class RenderStats(BaseModel):
    count: int = 0  # Jobs that reached rendering and terminated
    errors: int = 0
    rejected: int = 0  # Jobs that failed before rendering (or could not spawn)
    avg_time_ms: float = 0.0
    success_rate: float = 0.0
    last_rendered_at: datetime | None = None
