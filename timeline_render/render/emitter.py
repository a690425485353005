"""Turn a CompiledCommand into an FFmpeg argument list.

Option values are escaped on two levels, matching how FFmpeg parses a
``-filter_complex`` string:

1. option level: ``\\``, ``'`` and ``:`` are backslash-escaped so the filter's
   own option parser keeps them literal;
2. graph level: values containing graph punctuation (``,;[]=``, quotes,
   backslashes, whitespace) are wrapped in single quotes.
"""

import logging
import re

from timeline_render.config import get_settings
from timeline_render.render.graph import CompiledCommand, GraphNode, OptionValue, fmt_number

logger = logging.getLogger(__name__)

_OPTION_SPECIALS = re.compile(r"([\\':])")
_GRAPH_SPECIALS = re.compile(r"[\\':,;\[\]=\s]")

# Containers that benefit from moving the moov atom to the front
FASTSTART_FORMATS = ("mp4", "mov")


def escape_option_value(value: OptionValue) -> str:
    """Escape a single filter option value for use inside -filter_complex."""
    if isinstance(value, bool):
        text = "1" if value else "0"
    else:
        text = str(value)

    text = _OPTION_SPECIALS.sub(r"\\\1", text)
    if not _GRAPH_SPECIALS.search(text):
        return text
    # Inside single quotes nothing is special except the quote itself
    return "'" + text.replace("'", "'\\''") + "'"


def serialize_node(node: GraphNode) -> str:
    """``[in0][in1]operation=k=v:k=v[out]``"""
    inputs = "".join(f"[{label}]" for label in node.input_labels)
    options = ":".join(f"{key}={escape_option_value(value)}" for key, value in node.options.items())
    body = f"{node.operation}={options}" if options else node.operation
    return f"{inputs}{body}[{node.output_label}]"


def serialize_graph(nodes: list[GraphNode]) -> str:
    """Serialize nodes (preludes first) into one filter_complex expression."""
    return ";".join(serialize_node(sub) for node in nodes for sub in node.flatten())


class CommandEmitter:
    """Builds the encoder argv for a compiled command."""

    def __init__(self, ffmpeg_path: str | None = None):
        self.ffmpeg_path = ffmpeg_path or get_settings().ffmpeg_path

    def emit(self, command: CompiledCommand) -> list[str]:
        opts = command.global_options
        video_codec = opts.get("video_codec", "libx264")

        args = [self.ffmpeg_path, "-y", "-hide_banner"]
        for spec in command.inputs:
            args.extend(spec.to_args())

        args.extend(["-filter_complex", serialize_graph(command.filter_graph)])
        args.extend(["-map", f"[{command.final_video_label}]"])
        args.extend(["-map", f"[{command.final_audio_label}]"])

        args.extend(["-c:v", video_codec])
        if video_codec == "libvpx-vp9":
            # Constant quality mode for VP9 needs a zero bitrate target
            args.extend(["-b:v", "0"])
        else:
            args.extend(["-preset", str(opts.get("preset", "medium"))])
        args.extend(["-crf", str(opts.get("crf", 18))])
        args.extend(["-pix_fmt", str(opts.get("pix_fmt", "yuv420p"))])
        args.extend(["-r", fmt_number(command.fps)])

        args.extend(["-c:a", str(opts.get("audio_codec", "aac"))])
        args.extend(["-b:a", str(opts.get("audio_bitrate", "192k"))])
        args.extend(["-ar", str(opts.get("audio_sample_rate", 48000))])

        args.extend(["-t", _format_seconds(command.duration)])
        if command.format in FASTSTART_FORMATS:
            args.extend(["-movflags", "+faststart"])
        args.append(command.output_path)

        logger.debug(f"[RENDER] FFmpeg argv: {args}")
        return args


def _format_seconds(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.3f}"
