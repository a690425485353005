from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

from timeline_render.config import get_settings

# Minimum length of a timeline whose duration is derived from its clips
DEFAULT_MIN_DURATION_S = 10.0

ClipType = Literal["background", "text", "image", "video", "shape"]
CLIP_TYPES: tuple[str, ...] = ("background", "text", "image", "video", "shape")
MEDIA_CLIP_TYPES: tuple[str, ...] = ("image", "video")

NamedPosition = Literal[
    "center",
    "top",
    "bottom",
    "left",
    "right",
    "top-left",
    "top-right",
    "bottom-left",
    "bottom-right",
]

ColorFilter = Literal["grayscale", "greyscale", "sepia", "blur"]


def _id_to_str(value: Any) -> Any:
    # Existing producers send numeric ids
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


ObjectId = Annotated[str | None, BeforeValidator(_id_to_str)]


class TimelineModel(BaseModel):
    """Base for timeline models: camelCase on the wire, extra keys preserved."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class Resolution(TimelineModel):
    width: int = Field(default_factory=lambda: get_settings().render_output_width)
    height: int = Field(default_factory=lambda: get_settings().render_output_height)


class Background(TimelineModel):
    color: str | None = None
    src: str | None = None  # Background video/image instead of a solid colour


class Position(TimelineModel):
    x: float = 0
    y: float = 0


class TextStyle(TimelineModel):
    font_size: float = 48
    font_family: str = "Arial"
    color: str = "#ffffff"


class ShapeSpec(TimelineModel):
    type: str = "rectangle"
    width: float = 200
    height: float = 100
    fill_color: str | None = "#ff0000"
    stroke_color: str | None = None
    stroke_width: float = 2


class ChromaKey(TimelineModel):
    """Key out one colour of an image or video layer."""

    color: str = "0x00ff00"
    threshold: float = 0.1  # similarity to the key colour, 0-1
    halo: float = 0.1  # edge blend, 0-1


class ClipBase(TimelineModel):
    id: ObjectId = None
    start: float = 0
    duration: float
    position: Position | NamedPosition | None = None
    opacity: float = 100  # 0-100
    scale: float = 1.0

    @property
    def end(self) -> float:
        return self.start + self.duration


class BackgroundClip(ClipBase):
    type: Literal["background"] = "background"
    color: str | None = None
    src: str | None = None


class TextClip(ClipBase):
    type: Literal["text"] = "text"
    text: str
    style: TextStyle = Field(default_factory=TextStyle)


class MediaClip(ClipBase):
    source: str = Field(validation_alias=AliasChoices("source", "src"))
    original_width: float | None = None
    original_height: float | None = None
    filter: ColorFilter | None = None
    chroma_key: ChromaKey | None = None


class ImageClip(MediaClip):
    type: Literal["image"] = "image"


class VideoClip(MediaClip):
    type: Literal["video"] = "video"
    volume: float = 1.0


class ShapeClip(ClipBase):
    type: Literal["shape"] = "shape"
    shape: ShapeSpec = Field(default_factory=ShapeSpec)


Clip = Annotated[
    Union[BackgroundClip, TextClip, ImageClip, VideoClip, ShapeClip],
    Field(discriminator="type"),
]


class Track(TimelineModel):
    id: ObjectId = None
    clips: list[Clip] = Field(default_factory=list)


class Soundtrack(TimelineModel):
    src: str
    volume: float = 1.0


class Timeline(TimelineModel):
    duration: float | None = None
    fps: float = Field(default_factory=lambda: get_settings().render_fps)
    resolution: Resolution = Field(default_factory=Resolution)
    background: Background = Field(default_factory=Background)
    tracks: list[Track] = Field(default_factory=list)
    soundtrack: Soundtrack | None = None

    @property
    def clip_count(self) -> int:
        return sum(len(track.clips) for track in self.tracks)

    def content_end(self) -> float:
        """Latest clip end across all tracks (0 when there are no clips)."""
        return max((clip.end for track in self.tracks for clip in track.clips), default=0.0)

    def effective_duration(self, min_duration: float = DEFAULT_MIN_DURATION_S) -> float:
        """Explicit duration, else the content end floored at ``min_duration``."""
        if self.duration:
            return self.duration
        return max(self.content_end(), min_duration)


def clip_ref(track_index: int, clip_index: int, clip: ClipBase | None = None) -> str:
    """Stable reference to a clip used in logs, warnings and graph nodes."""
    if clip is not None and clip.id:
        return clip.id
    return f"tracks[{track_index}].clips[{clip_index}]"
