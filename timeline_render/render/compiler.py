"""
Timeline to filter-graph compiler.

Walks tracks, then clips within a track, in array order and chains one
GraphNode per visual clip onto a running "current stream" label:

    [0:v] --text--> [stream1] --overlay(image)--> [stream2] ... --> [final]

Array order is the compositing order: later tracks and later clips are
drawn on top. Audio is compiled independently into ``[aout]``.
"""

import logging
from dataclasses import dataclass

from timeline_render.config import Settings, get_settings
from timeline_render.exceptions import AssetMissingError, CompileError
from timeline_render.render.asset_resolver import ResolvedAsset
from timeline_render.render.fonts import resolve_font
from timeline_render.render.graph import (
    BASE_VIDEO_LABEL,
    FINAL_AUDIO_LABEL,
    FINAL_VIDEO_LABEL,
    CompiledCommand,
    GraphNode,
    InputSpec,
    fmt_number,
)
from timeline_render.schemas.render import OutputOptions
from timeline_render.schemas.timeline import (
    BackgroundClip,
    MediaClip,
    Position,
    ShapeClip,
    TextClip,
    Timeline,
    VideoClip,
    clip_ref,
)

logger = logging.getLogger(__name__)

# Canvas centre that older producers use to mean "centred" on 1920x1080
COMPAT_CENTER = (960, 540)
COMPAT_CANVAS = (1920, 1080)

DEFAULT_SHAPE_POSITION = (100, 100)

# Named anchors as (x, y) templates over container/item sizes
ANCHORS: dict[str, tuple[str, str]] = {
    "center": ("({cw}-{iw})/2", "({ch}-{ih})/2"),
    "top": ("({cw}-{iw})/2", "0"),
    "bottom": ("({cw}-{iw})/2", "{ch}-{ih}"),
    "left": ("0", "({ch}-{ih})/2"),
    "right": ("{cw}-{iw}", "({ch}-{ih})/2"),
    "top-left": ("0", "0"),
    "top-right": ("{cw}-{iw}", "0"),
    "bottom-left": ("0", "{ch}-{ih}"),
    "bottom-right": ("{cw}-{iw}", "{ch}-{ih}"),
}

# Size variables per filter: container width, item width, container height, item height
TEXT_VARS = {"cw": "w", "iw": "tw", "ch": "h", "ih": "th"}
OVERLAY_VARS = {"cw": "main_w", "iw": "overlay_w", "ch": "main_h", "ih": "overlay_h"}
DRAWBOX_VARS = {"cw": "iw", "iw": "w", "ch": "ih", "ih": "h"}

# chromakey rejects a similarity of 0
MIN_CHROMA_SIMILARITY = 0.00001

COLOR_FILTERS: dict[str, tuple[str, dict[str, str | int | float]]] = {
    "grayscale": ("hue", {"s": 0}),
    "greyscale": ("hue", {"s": 0}),
    "sepia": (
        "colorchannelmixer",
        {
            "rr": 0.393, "rg": 0.769, "rb": 0.189,
            "gr": 0.349, "gg": 0.686, "gb": 0.168,
            "br": 0.272, "bg": 0.534, "bb": 0.131,
        },
    ),
    "blur": ("gblur", {"sigma": 2}),
}


def enable_expr(start: float, end: float) -> str:
    """Time window predicate, inclusive at both ends."""
    return f"between(t,{fmt_number(start)},{fmt_number(end)})"


def anchor_xy(name: str, variables: dict[str, str]) -> tuple[str, str]:
    x_tpl, y_tpl = ANCHORS[name]
    return x_tpl.format(**variables), y_tpl.format(**variables)


class _Labels:
    """Per-compile label counter. Never shared between jobs."""

    def __init__(self) -> None:
        self._counters: dict[str, int] = {}

    def next(self, prefix: str) -> str:
        self._counters[prefix] = self._counters.get(prefix, 0) + 1
        return f"{prefix}{self._counters[prefix]}"


@dataclass
class _AudioSource:
    asset: ResolvedAsset
    start: float
    duration: float
    volume: float = 1.0


class GraphCompiler:
    """Compiles a validated timeline plus resolved assets into a CompiledCommand."""

    def __init__(
        self,
        min_duration: float | None = None,
        audio_sample_rate: int | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.min_duration = settings.render_min_duration_s if min_duration is None else min_duration
        self.audio_sample_rate = audio_sample_rate or settings.render_audio_sample_rate
        self.settings = settings

    def compile(
        self,
        timeline: Timeline,
        assets: list[ResolvedAsset],
        output_path: str,
        output: OutputOptions | None = None,
        background: ResolvedAsset | None = None,
    ) -> CompiledCommand:
        output = output or OutputOptions()
        duration = timeline.effective_duration(self.min_duration)
        width, height = timeline.resolution.width, timeline.resolution.height
        fps = timeline.fps
        labels = _Labels()
        warnings: list[str] = []

        # Clip assets are keyed by position so no clip id can shadow another asset
        by_slot = {asset.slot: asset for asset in assets if asset.slot is not None}
        soundtrack = next((asset for asset in assets if asset.is_soundtrack), None)

        # Step 1: base stream
        inputs: list[InputSpec] = []
        nodes: list[GraphNode] = []
        current = BASE_VIDEO_LABEL
        if background is not None and background.found:
            inputs.append(self._background_input(background))
            label = labels.next("bg")
            nodes.append(
                GraphNode(
                    "scale",
                    {"w": width, "h": height},
                    [BASE_VIDEO_LABEL],
                    label,
                    clip_ref=background.clip_ref,
                )
            )
            current = label
        else:
            if background is not None:
                warnings.append(str(AssetMissingError(background.logical_source, background.clip_ref)))
            color = self._base_color(timeline)
            inputs.append(
                InputSpec(
                    f"color=c={color}:s={width}x{height}:r={fmt_number(fps)}:d={fmt_number(duration)}",
                    options=["-f", "lavfi"],
                )
            )

        # Step 2: one input per found asset, in registration order
        for asset in sorted((a for a in assets if a.found), key=lambda a: a.input_index or 0):
            if asset.input_index != len(inputs):
                raise CompileError(
                    f"Asset {asset.clip_ref} registered as input {asset.input_index}, expected {len(inputs)}"
                )
            inputs.append(self._asset_input(asset))

        # Steps 3-4: one node per visual clip, in array order
        for track_index, track in enumerate(timeline.tracks):
            for clip_index, clip in enumerate(track.clips):
                ref = clip_ref(track_index, clip_index, clip)

                if isinstance(clip, BackgroundClip):
                    logger.info(f"[COMPILE] {ref}: background clip folded into base stream")
                    continue

                output_label = labels.next("stream")
                if isinstance(clip, TextClip):
                    node = self._text_node(clip, ref, current, output_label, width, height)
                elif isinstance(clip, MediaClip):
                    asset = by_slot.get((track_index, clip_index))
                    if asset is None or not asset.found:
                        warning = str(AssetMissingError(clip.source, ref))
                        warnings.append(warning)
                        logger.warning(f"[COMPILE] {warning}, skipping clip")
                        continue
                    node = self._media_node(clip, ref, asset, current, output_label, labels)
                elif isinstance(clip, ShapeClip):
                    node = self._shape_node(clip, ref, current, output_label, labels)
                else:
                    raise CompileError(f"{ref}: unsupported clip type {clip.type!r}")

                nodes.append(node)
                current = output_label

        # Step 5: canonical final label
        if nodes:
            nodes[-1].output_label = FINAL_VIDEO_LABEL
        else:
            nodes.append(GraphNode("null", {}, [current], FINAL_VIDEO_LABEL))

        # Step 6: audio
        nodes.extend(self._audio_nodes(timeline, by_slot, soundtrack, duration, labels))

        command = CompiledCommand(
            inputs=inputs,
            filter_graph=nodes,
            output_path=output_path,
            duration=duration,
            width=width,
            height=height,
            fps=fps,
            format=output.format,
            global_options={
                "video_codec": output.video_codec,
                "audio_codec": output.audio_codec,
                "crf": output.crf,
                "preset": self.settings.render_preset,
                "pix_fmt": self.settings.render_pix_fmt,
                "audio_bitrate": self.settings.render_audio_bitrate,
                "audio_sample_rate": self.audio_sample_rate,
            },
            warnings=warnings,
        )
        logger.info(
            f"[COMPILE] {len(inputs)} inputs, {len(command.video_nodes)} video nodes, "
            f"{len(command.audio_nodes)} audio nodes, duration={fmt_number(duration)}s"
        )
        return command

    # ------------------------------------------------------------------
    # Inputs

    def _base_color(self, timeline: Timeline) -> str:
        if timeline.background.color:
            return timeline.background.color
        color = "black"
        for track in timeline.tracks:
            for clip in track.clips:
                if isinstance(clip, BackgroundClip) and clip.color:
                    color = clip.color
        return color

    def _background_input(self, background: ResolvedAsset) -> InputSpec:
        loop = ["-loop", "1"] if background.kind == "image" else ["-stream_loop", "-1"]
        return InputSpec(background.absolute_path, options=loop, clip_ref=background.clip_ref)

    def _asset_input(self, asset: ResolvedAsset) -> InputSpec:
        options = ["-loop", "1"] if asset.kind == "image" else []
        return InputSpec(asset.absolute_path, options=options, clip_ref=asset.clip_ref)

    # ------------------------------------------------------------------
    # Visual nodes

    def _text_node(
        self,
        clip: TextClip,
        ref: str,
        current: str,
        output_label: str,
        width: int,
        height: int,
    ) -> GraphNode:
        x, y = self._text_position(clip.position, width, height)
        alpha = clip.opacity / 100
        options: dict[str, str | int | float] = {
            "text": clip.text,
            "fontsize": round(clip.style.font_size * clip.scale),
            "fontcolor": f"{clip.style.color}@{fmt_number(alpha)}",
            "x": x,
            "y": y,
        }
        font = resolve_font(clip.style.font_family)
        if font:
            options["fontfile"] = font
        options["expansion"] = "none"
        options["enable"] = enable_expr(clip.start, clip.end)

        logger.info(f"[COMPILE] {ref}: text {clip.text[:20]!r} @ ({x},{y})")
        return GraphNode("drawtext", options, [current], output_label, clip_ref=ref)

    def _text_position(self, position: Position | str | None, width: int, height: int) -> tuple[str, str]:
        if position is None:
            return anchor_xy("center", TEXT_VARS)
        if isinstance(position, str):
            return anchor_xy(position, TEXT_VARS)

        center_x, center_y = anchor_xy("center", TEXT_VARS)
        # Compatibility: the 1920x1080 canvas centre means "centred", per axis
        x = center_x if (position.x, width) == (COMPAT_CENTER[0], COMPAT_CANVAS[0]) else fmt_number(position.x)
        y = center_y if (position.y, height) == (COMPAT_CENTER[1], COMPAT_CANVAS[1]) else fmt_number(position.y)
        return x, y

    def _media_node(
        self,
        clip: MediaClip,
        ref: str,
        asset: ResolvedAsset,
        current: str,
        output_label: str,
        labels: _Labels,
    ) -> GraphNode:
        if asset.input_index is None:
            raise CompileError(f"{ref}: resolved asset has no input index")

        prelude: list[GraphNode] = []
        layer = f"{asset.input_index}:v"

        def chain(operation: str, options: dict, prefix: str) -> None:
            nonlocal layer
            label = labels.next(prefix)
            prelude.append(GraphNode(operation, options, [layer], label, clip_ref=ref))
            layer = label

        if isinstance(clip, VideoClip):
            # Play the source from its first frame when the clip starts
            chain("trim", {"start": 0, "duration": fmt_number(clip.duration)}, "trim")
            chain("setpts", {"expr": f"PTS-STARTPTS+{fmt_number(clip.start)}/TB"}, "pts")

        if clip.filter:
            operation, options = COLOR_FILTERS[clip.filter]
            chain(operation, dict(options), "filtered")

        if clip.chroma_key is not None:
            key = clip.chroma_key
            chain(
                "chromakey",
                {
                    "color": key.color,
                    "similarity": fmt_number(max(MIN_CHROMA_SIMILARITY, key.threshold)),
                    "blend": fmt_number(key.halo),
                },
                "chroma",
            )

        if clip.scale != 1:
            chain("scale", self._scale_options(clip, asset), "scaled")

        if clip.opacity < 100:
            chain("format", {"pix_fmts": "rgba"}, "rgba")
            chain("colorchannelmixer", {"aa": fmt_number(clip.opacity / 100)}, "faded")

        x, y = self._overlay_position(clip.position)
        logger.info(f"[COMPILE] {ref}: {clip.type} {clip.source} @ ({x},{y}) input {asset.input_index}")
        return GraphNode(
            "overlay",
            {"x": x, "y": y, "enable": enable_expr(clip.start, clip.end)},
            [current, layer],
            output_label,
            clip_ref=ref,
            prelude=prelude,
        )

    def _scale_options(self, clip: MediaClip, asset: ResolvedAsset) -> dict[str, str | int]:
        source_w = clip.original_width or asset.width
        source_h = clip.original_height or asset.height
        if source_w and source_h:
            return {
                "w": max(1, round(source_w * clip.scale)),
                "h": max(1, round(source_h * clip.scale)),
            }
        factor = fmt_number(clip.scale)
        return {"w": f"iw*{factor}", "h": f"ih*{factor}"}

    def _overlay_position(self, position: Position | str | None) -> tuple[str, str]:
        if position is None:
            return "0", "0"
        if isinstance(position, str):
            return anchor_xy(position, OVERLAY_VARS)
        return fmt_number(position.x), fmt_number(position.y)

    def _shape_node(
        self,
        clip: ShapeClip,
        ref: str,
        current: str,
        output_label: str,
        labels: _Labels,
    ) -> GraphNode:
        shape = clip.shape
        if shape.type != "rectangle":
            logger.info(f"[COMPILE] {ref}: shape {shape.type!r} drawn as its bounding rectangle")

        if clip.position is None:
            x, y = (str(v) for v in DEFAULT_SHAPE_POSITION)
        elif isinstance(clip.position, str):
            x, y = anchor_xy(clip.position, DRAWBOX_VARS)
        else:
            x, y = fmt_number(clip.position.x), fmt_number(clip.position.y)

        alpha = fmt_number(clip.opacity / 100)
        box = {
            "x": x,
            "y": y,
            "w": max(1, round(shape.width * clip.scale)),
            "h": max(1, round(shape.height * clip.scale)),
        }
        enable = enable_expr(clip.start, clip.end)

        boxes: list[dict[str, str | int | float]] = []
        if shape.fill_color:
            boxes.append({**box, "color": f"{shape.fill_color}@{alpha}", "t": "fill", "enable": enable})
        if shape.stroke_color and shape.stroke_width > 0:
            boxes.append(
                {**box, "color": f"{shape.stroke_color}@{alpha}", "t": fmt_number(shape.stroke_width), "enable": enable}
            )

        logger.info(f"[COMPILE] {ref}: shape {shape.type} {box['w']}x{box['h']} @ ({x},{y})")
        if not boxes:
            return GraphNode("null", {}, [current], output_label, clip_ref=ref)

        prelude: list[GraphNode] = []
        layer = current
        for options in boxes[:-1]:
            label = labels.next("box")
            prelude.append(GraphNode("drawbox", options, [layer], label, clip_ref=ref))
            layer = label
        return GraphNode("drawbox", boxes[-1], [layer], output_label, clip_ref=ref, prelude=prelude)

    # ------------------------------------------------------------------
    # Audio

    def _audio_sources(
        self,
        timeline: Timeline,
        by_slot: dict[tuple[int, int], ResolvedAsset],
        soundtrack: ResolvedAsset | None,
        duration: float,
    ) -> list[_AudioSource]:
        sources: list[_AudioSource] = []
        for track_index, track in enumerate(timeline.tracks):
            for clip_index, clip in enumerate(track.clips):
                if not isinstance(clip, VideoClip):
                    continue
                asset = by_slot.get((track_index, clip_index))
                if asset is not None and asset.found and asset.has_audio:
                    sources.append(_AudioSource(asset, clip.start, clip.duration, clip.volume))

        if timeline.soundtrack is not None and soundtrack is not None and soundtrack.found:
            sources.append(_AudioSource(soundtrack, 0, duration, timeline.soundtrack.volume))
        return sources

    def _audio_nodes(
        self,
        timeline: Timeline,
        by_slot: dict[tuple[int, int], ResolvedAsset],
        soundtrack: ResolvedAsset | None,
        duration: float,
        labels: _Labels,
    ) -> list[GraphNode]:
        sources = self._audio_sources(timeline, by_slot, soundtrack, duration)
        total = fmt_number(duration)

        if not sources:
            silence = GraphNode(
                "anullsrc",
                {"channel_layout": "stereo", "sample_rate": self.audio_sample_rate},
                [],
                labels.next("silence"),
                media="audio",
            )
            return [
                GraphNode(
                    "atrim",
                    {"duration": total},
                    [silence.output_label],
                    FINAL_AUDIO_LABEL,
                    media="audio",
                    prelude=[silence],
                )
            ]

        nodes: list[GraphNode] = []
        mix_inputs: list[str] = []
        for source in sources:
            ref = source.asset.clip_ref
            trimmed = GraphNode(
                "atrim",
                {"start": 0, "duration": fmt_number(source.duration)},
                [f"{source.asset.input_index}:a"],
                labels.next("atrim"),
                media="audio",
                clip_ref=ref,
            )
            reset = GraphNode(
                "asetpts",
                {"expr": "PTS-STARTPTS"},
                [trimmed.output_label],
                labels.next("apts"),
                media="audio",
                clip_ref=ref,
            )
            prelude = [trimmed, reset]
            layer = reset.output_label
            if source.volume != 1:
                gain = GraphNode(
                    "volume",
                    {"volume": fmt_number(source.volume)},
                    [layer],
                    labels.next("avol"),
                    media="audio",
                    clip_ref=ref,
                )
                prelude.append(gain)
                layer = gain.output_label

            delay_ms = int(round(source.start * 1000))
            delayed = GraphNode(
                "adelay",
                {"delays": str(delay_ms), "all": 1},
                [layer],
                labels.next("a"),
                media="audio",
                clip_ref=ref,
                prelude=prelude,
            )
            nodes.append(delayed)
            mix_inputs.append(delayed.output_label)

        mixed = labels.next("amix")
        nodes.append(
            GraphNode(
                "amix",
                {"inputs": len(mix_inputs), "duration": "longest", "dropout_transition": 0},
                mix_inputs,
                mixed,
                media="audio",
            )
        )
        nodes.append(GraphNode("apad", {"whole_dur": total}, [mixed], FINAL_AUDIO_LABEL, media="audio"))
        logger.info(f"[COMPILE] Mixing {len(sources)} audio sources")
        return nodes
