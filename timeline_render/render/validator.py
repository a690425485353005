"""Structural timeline validation.

Checks a raw timeline (decoded JSON) before anything else touches it and
collects every violation instead of stopping at the first one:

- tracks present and non-empty
- every track has at least one clip
- every clip has a known type
- start >= 0 and duration > 0
- type-specific fields (text needs text, image/video need a source and a sane chroma key)
- opacity/scale ranges, fps and resolution
- clip ids unique across the timeline

The input is never mutated.
"""

import logging
from dataclasses import dataclass, field
from numbers import Real
from typing import Any

from pydantic import ValidationError

from timeline_render.exceptions import TimelineValidationError, ValidationIssue
from timeline_render.schemas.timeline import CLIP_TYPES, MEDIA_CLIP_TYPES, Timeline

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


@dataclass
class ValidationReport:
    """Outcome of a validation pass."""

    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def error(self, path: str, message: str) -> None:
        self.errors.append(ValidationIssue(path=path, message=message))

    def warn(self, path: str, message: str) -> None:
        self.warnings.append(ValidationIssue(path=path, message=message, severity="warning"))


class TimelineValidator:
    """Validates timeline structure without rendering."""

    def check(self, data: Any) -> ValidationReport:
        """Run every structural check and return all issues found."""
        report = ValidationReport()

        if not isinstance(data, dict):
            report.error("", "timeline must be an object")
            return report

        tracks = data.get("tracks")
        if not isinstance(tracks, list):
            report.error("tracks", "tracks must be an array")
            tracks = []
        elif not tracks:
            report.error("tracks", "timeline must contain at least one track")

        for track_index, track in enumerate(tracks):
            self._check_track(report, track_index, track)

        self._check_clip_ids(report, tracks)
        self._check_globals(report, data, tracks)
        return report

    def validate(self, data: Any) -> Timeline:
        """Validate and parse a raw timeline.

        Raises:
            TimelineValidationError: With every issue found, if any.
        """
        report = self.check(data)
        for warning in report.warnings:
            logger.warning(f"[VALIDATE] {warning}")

        if not report.valid:
            logger.info(f"[VALIDATE] Rejected timeline with {len(report.errors)} errors")
            raise TimelineValidationError(report.errors)

        try:
            timeline = Timeline.model_validate(data)
        except ValidationError as e:
            issues = [
                ValidationIssue(path=_format_loc(err["loc"]), message=err["msg"])
                for err in e.errors()
            ]
            raise TimelineValidationError(issues) from e

        logger.info(
            f"[VALIDATE] Timeline ok: {len(timeline.tracks)} tracks, {timeline.clip_count} clips"
        )
        return timeline

    # ------------------------------------------------------------------

    def _check_track(self, report: ValidationReport, track_index: int, track: Any) -> None:
        path = f"tracks[{track_index}]"
        if not isinstance(track, dict):
            report.error(path, "track must be an object")
            return

        clips = track.get("clips")
        if not isinstance(clips, list):
            report.error(f"{path}.clips", "clips must be an array")
            return
        if not clips:
            report.error(f"{path}.clips", "track must contain at least one clip")
            return

        for clip_index, clip in enumerate(clips):
            self._check_clip(report, f"{path}.clips[{clip_index}]", clip)

    def _check_clip(self, report: ValidationReport, path: str, clip: Any) -> None:
        if not isinstance(clip, dict):
            report.error(path, "clip must be an object")
            return

        clip_type = clip.get("type")
        if clip_type not in CLIP_TYPES:
            report.error(f"{path}.type", f"unknown clip type {clip_type!r}")

        start = clip.get("start", 0)
        if not _is_number(start) or start < 0:
            report.error(f"{path}.start", "start must be a number >= 0")

        duration = clip.get("duration")
        if not _is_number(duration) or duration <= 0:
            report.error(f"{path}.duration", "duration must be a number > 0")

        if clip_type == "text":
            text = clip.get("text")
            if not isinstance(text, str) or not text:
                report.error(f"{path}.text", "text is required for text clips")
        elif clip_type in MEDIA_CLIP_TYPES:
            source = clip.get("source", clip.get("src"))
            if not isinstance(source, str) or not source:
                report.error(f"{path}.source", f"source is required for {clip_type} clips")
            self._check_chroma_key(report, f"{path}.chromaKey", clip.get("chromaKey", clip.get("chroma_key")))

        opacity = clip.get("opacity", 100)
        if not _is_number(opacity) or not 0 <= opacity <= 100:
            report.error(f"{path}.opacity", "opacity must be between 0 and 100")

        scale = clip.get("scale", 1)
        if not _is_number(scale) or scale <= 0:
            report.error(f"{path}.scale", "scale must be > 0")

    def _check_chroma_key(self, report: ValidationReport, path: str, key: Any) -> None:
        if key is None:
            return
        if not isinstance(key, dict):
            report.error(path, "chromaKey must be an object")
            return
        for name in ("threshold", "halo"):
            value = key.get(name)
            if value is not None and (not _is_number(value) or not 0 <= value <= 1):
                report.error(f"{path}.{name}", f"{name} must be between 0 and 1")

    def _check_clip_ids(self, report: ValidationReport, tracks: list[Any]) -> None:
        # Clip ids name graph nodes and assets, so they must be unique
        seen: dict[str, str] = {}
        for track_index, track in enumerate(tracks):
            if not isinstance(track, dict) or not isinstance(track.get("clips"), list):
                continue
            for clip_index, clip in enumerate(track["clips"]):
                if not isinstance(clip, dict) or not clip.get("id"):
                    continue
                path = f"tracks[{track_index}].clips[{clip_index}].id"
                clip_id = str(clip["id"])
                if clip_id in seen:
                    report.error(path, f"duplicate clip id {clip_id!r} (first used at {seen[clip_id]})")
                else:
                    seen[clip_id] = path

    def _check_globals(self, report: ValidationReport, data: dict[str, Any], tracks: list[Any]) -> None:
        fps = data.get("fps", 30)
        if not _is_number(fps) or fps <= 0:
            report.error("fps", "fps must be a number > 0")

        resolution = data.get("resolution")
        if resolution is not None:
            if not isinstance(resolution, dict):
                report.error("resolution", "resolution must be an object")
            else:
                for key in ("width", "height"):
                    value = resolution.get(key)
                    if value is not None and (not _is_number(value) or value <= 0):
                        report.error(f"resolution.{key}", f"{key} must be a positive number")

        soundtrack = data.get("soundtrack")
        if soundtrack is not None and not (isinstance(soundtrack, dict) and soundtrack.get("src")):
            report.error("soundtrack.src", "soundtrack must define src")

        duration = data.get("duration")
        if duration is None:
            return
        if not _is_number(duration) or duration <= 0:
            report.error("duration", "duration must be a number > 0")
            return

        # Clips running past an explicit duration are cut, not rejected
        for track_index, track in enumerate(tracks):
            if not isinstance(track, dict) or not isinstance(track.get("clips"), list):
                continue
            for clip_index, clip in enumerate(track["clips"]):
                if not isinstance(clip, dict):
                    continue
                start, length = clip.get("start", 0), clip.get("duration")
                if _is_number(start) and _is_number(length) and start + length > duration:
                    report.warn(
                        f"tracks[{track_index}].clips[{clip_index}]",
                        f"clip ends at {start + length}s, after timeline duration {duration}s",
                    )


def _format_loc(loc: tuple[Any, ...]) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


def validate_timeline(data: Any) -> Timeline:
    """Validate a raw timeline with the default validator."""
    return TimelineValidator().validate(data)
