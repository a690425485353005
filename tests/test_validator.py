"""Tests for structural timeline validation."""

import copy

import pytest

from timeline_render.config import get_settings
from timeline_render.exceptions import TimelineValidationError
from timeline_render.render.validator import TimelineValidator, validate_timeline
from timeline_render.schemas.timeline import ImageClip, TextClip, Timeline


@pytest.fixture
def validator() -> TimelineValidator:
    return TimelineValidator()


def _paths(report) -> list[str]:
    return [issue.path for issue in report.errors]


class TestValidTimelines:
    """Timelines that should pass."""

    def test_text_timeline_parses(self, validator, text_timeline):
        """A minimal text timeline becomes a Timeline model."""
        timeline = validator.validate(text_timeline)
        assert isinstance(timeline, Timeline)
        assert isinstance(timeline.tracks[0].clips[0], TextClip)
        assert timeline.tracks[0].clips[0].text == "Hello {{name}}"

    def test_camel_case_keys(self, validator):
        """Wire format uses camelCase keys."""
        timeline = validator.validate(
            {
                "tracks": [
                    {
                        "clips": [
                            {
                                "type": "text",
                                "text": "Hi",
                                "duration": 2,
                                "style": {"fontSize": 72, "fontFamily": "Impact"},
                            }
                        ]
                    }
                ]
            }
        )
        style = timeline.tracks[0].clips[0].style
        assert style.font_size == 72
        assert style.font_family == "Impact"

    def test_src_is_alias_for_source(self, validator):
        """Media clips accept either source or src."""
        timeline = validator.validate(
            {"tracks": [{"clips": [{"type": "image", "src": "logo.png", "duration": 3}]}]}
        )
        clip = timeline.tracks[0].clips[0]
        assert isinstance(clip, ImageClip)
        assert clip.source == "logo.png"

    def test_input_not_mutated(self, validator, layered_timeline):
        """Validation never modifies the raw timeline."""
        before = copy.deepcopy(layered_timeline)
        validator.validate(layered_timeline)
        assert layered_timeline == before

    def test_clip_past_duration_is_warning(self, validator):
        """A clip ending after an explicit duration only warns."""
        report = validator.check(
            {"duration": 4, "tracks": [{"clips": [{"type": "text", "text": "x", "start": 2, "duration": 5}]}]}
        )
        assert report.valid
        assert len(report.warnings) == 1
        assert report.warnings[0].path == "tracks[0].clips[0]"

    def test_module_function(self, text_timeline):
        """validate_timeline uses a default validator."""
        assert validate_timeline(text_timeline).clip_count == 1

    def test_fractional_fps(self, validator, text_timeline):
        """Broadcast rates such as 29.97 are kept as given."""
        timeline = validator.validate({**text_timeline, "fps": 29.97})
        assert timeline.fps == 29.97

    def test_numeric_ids(self, validator):
        """Numeric clip and track ids are accepted as strings."""
        timeline = validator.validate(
            {"tracks": [{"id": 2, "clips": [{"id": 5, "type": "text", "text": "x", "duration": 1}]}]}
        )
        assert timeline.tracks[0].id == "2"
        assert timeline.tracks[0].clips[0].id == "5"

    def test_defaults_come_from_settings(self, validator, monkeypatch):
        """A timeline without fps or resolution takes the configured defaults."""
        monkeypatch.setenv("RENDER_FPS", "24")
        monkeypatch.setenv("RENDER_OUTPUT_WIDTH", "1280")
        get_settings.cache_clear()
        try:
            timeline = validator.validate({"tracks": [{"clips": [{"type": "text", "text": "x", "duration": 1}]}]})
        finally:
            get_settings.cache_clear()
        assert timeline.fps == 24
        assert (timeline.resolution.width, timeline.resolution.height) == (1280, 1080)

    def test_chroma_key(self, validator):
        timeline = validator.validate(
            {
                "tracks": [
                    {
                        "clips": [
                            {"type": "video", "src": "intro.mp4", "duration": 2, "chromaKey": {"threshold": 0.2}},
                        ]
                    }
                ]
            }
        )
        key = timeline.tracks[0].clips[0].chroma_key
        assert (key.color, key.threshold, key.halo) == ("0x00ff00", 0.2, 0.1)


class TestInvalidTimelines:
    """Structural defects are rejected with their location."""

    def test_not_an_object(self, validator):
        report = validator.check(["tracks"])
        assert not report.valid
        assert _paths(report) == [""]

    def test_missing_tracks(self, validator):
        report = validator.check({"fps": 30})
        assert "tracks" in _paths(report)

    def test_empty_tracks(self, validator):
        """A timeline with no tracks is rejected."""
        with pytest.raises(TimelineValidationError) as exc_info:
            validator.validate({"tracks": []})
        assert exc_info.value.issues[0].path == "tracks"
        assert exc_info.value.code == "TIMELINE_VALIDATION_ERROR"

    def test_track_without_clips(self, validator):
        """A track with an empty clip list is rejected."""
        report = validator.check({"tracks": [{"clips": []}]})
        assert _paths(report) == ["tracks[0].clips"]

    def test_collects_every_issue(self, validator):
        """All violations are reported, not just the first."""
        report = validator.check(
            {
                "tracks": [
                    {"clips": [{"type": "text", "text": "ok", "start": -1, "duration": 0}]},
                    {"clips": [{"type": "image", "duration": 2}]},
                ]
            }
        )
        assert _paths(report) == [
            "tracks[0].clips[0].start",
            "tracks[0].clips[0].duration",
            "tracks[1].clips[0].source",
        ]

    def test_unknown_clip_type(self, validator):
        report = validator.check({"tracks": [{"clips": [{"type": "sticker", "duration": 1}]}]})
        assert _paths(report) == ["tracks[0].clips[0].type"]

    def test_text_clip_requires_text(self, validator):
        report = validator.check({"tracks": [{"clips": [{"type": "text", "duration": 1}]}]})
        assert _paths(report) == ["tracks[0].clips[0].text"]

    def test_opacity_and_scale_ranges(self, validator):
        report = validator.check(
            {"tracks": [{"clips": [{"type": "text", "text": "x", "duration": 1, "opacity": 150, "scale": 0}]}]}
        )
        assert _paths(report) == ["tracks[0].clips[0].opacity", "tracks[0].clips[0].scale"]

    def test_bool_is_not_a_number(self, validator):
        report = validator.check({"tracks": [{"clips": [{"type": "text", "text": "x", "duration": True}]}]})
        assert _paths(report) == ["tracks[0].clips[0].duration"]

    def test_global_fields(self, validator):
        report = validator.check(
            {
                "fps": 0,
                "resolution": {"width": -1},
                "soundtrack": {"volume": 1},
                "duration": -5,
                "tracks": [{"clips": [{"type": "text", "text": "x", "duration": 1}]}],
            }
        )
        assert _paths(report) == ["fps", "resolution.width", "soundtrack.src", "duration"]

    def test_error_message_lists_issues(self, validator):
        with pytest.raises(TimelineValidationError) as exc_info:
            validator.validate({"tracks": [{"clips": []}]})
        assert "tracks[0].clips" in str(exc_info.value)
        assert exc_info.value.counts_as_render is False

    def test_duplicate_clip_ids(self, validator):
        report = validator.check(
            {
                "tracks": [
                    {"clips": [{"id": "logo", "type": "image", "src": "a.png", "duration": 1}]},
                    {"clips": [{"id": "logo", "type": "image", "src": "b.png", "duration": 1}]},
                ]
            }
        )
        assert _paths(report) == ["tracks[1].clips[0].id"]
        assert "tracks[0].clips[0].id" in report.errors[0].message

    def test_chroma_key_ranges(self, validator):
        report = validator.check(
            {
                "tracks": [
                    {
                        "clips": [
                            {"type": "image", "src": "a.png", "duration": 1, "chromaKey": {"threshold": 2, "halo": -1}},
                            {"type": "image", "src": "b.png", "duration": 1, "chromaKey": "green"},
                        ]
                    }
                ]
            }
        )
        assert _paths(report) == [
            "tracks[0].clips[0].chromaKey.threshold",
            "tracks[0].clips[0].chromaKey.halo",
            "tracks[0].clips[1].chromaKey",
        ]
