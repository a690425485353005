from timeline_render.schemas.render import (
    ErrorInfo,
    JobSnapshot,
    JobState,
    OutputOptions,
    RenderRequest,
    RenderResult,
    RenderStats,
)
from timeline_render.schemas.timeline import Clip, Timeline, Track

__all__ = [
    "Timeline",
    "Track",
    "Clip",
    "OutputOptions",
    "RenderRequest",
    "RenderResult",
    "ErrorInfo",
    "JobState",
    "JobSnapshot",
    "RenderStats",
]
