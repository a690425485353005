"""Intermediate representation of the encoder filter graph.

The compiler emits GraphNodes; only the emitter turns them into FFmpeg's
textual ``-filter_complex`` syntax.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

FINAL_VIDEO_LABEL = "final"
FINAL_AUDIO_LABEL = "aout"
BASE_VIDEO_LABEL = "0:v"

OptionValue = str | int | float


def fmt_number(value: float) -> str:
    """Format a number for filter options: integers without a decimal point."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.6f}".rstrip("0").rstrip(".")


@dataclass
class GraphNode:
    """One filter application: inputs -> operation(options) -> output."""

    operation: str
    options: dict[str, OptionValue] = field(default_factory=dict)
    input_labels: list[str] = field(default_factory=list)
    output_label: str = ""
    media: Literal["video", "audio"] = "video"
    clip_ref: str | None = None
    # Sub-nodes (trim, scale, colour filters) that feed this node
    prelude: list["GraphNode"] = field(default_factory=list)

    def flatten(self) -> list["GraphNode"]:
        """This node preceded by its prelude, in serialization order."""
        nodes: list[GraphNode] = []
        for sub in self.prelude:
            nodes.extend(sub.flatten())
        nodes.append(self)
        return nodes


@dataclass
class InputSpec:
    """One ``-i`` input with the options that precede it."""

    path: str
    options: list[str] = field(default_factory=list)
    clip_ref: str | None = None

    def to_args(self) -> list[str]:
        return [*self.options, "-i", self.path]


@dataclass
class CompiledCommand:
    """Everything the emitter needs to build one encoder invocation."""

    inputs: list[InputSpec]
    filter_graph: list[GraphNode]
    output_path: str
    duration: float
    width: int
    height: int
    fps: float
    format: str = "mp4"
    final_video_label: str = FINAL_VIDEO_LABEL
    final_audio_label: str = FINAL_AUDIO_LABEL
    global_options: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @property
    def video_nodes(self) -> list[GraphNode]:
        return [node for node in self.filter_graph if node.media == "video"]

    @property
    def audio_nodes(self) -> list[GraphNode]:
        return [node for node in self.filter_graph if node.media == "audio"]

    def nodes_for_clip(self, clip_ref: str) -> list[GraphNode]:
        return [node for node in self.filter_graph if node.clip_ref == clip_ref]

    @property
    def resolution(self) -> dict[str, int]:
        return {"width": self.width, "height": self.height}
