"""Tests for asset resolution and input index assignment."""

import pytest

from timeline_render.render.asset_resolver import (
    BACKGROUND_REF,
    SOUNDTRACK_REF,
    AssetResolver,
)
from timeline_render.render.validator import validate_timeline


@pytest.fixture
def resolver(assets_dir) -> AssetResolver:
    return AssetResolver(str(assets_dir), probe=False)


class TestFind:
    """Search order over the asset roots."""

    def test_root_first(self, resolver, assets_dir):
        assert resolver.find("logo.png") == str(assets_dir / "logo.png")

    def test_images_subdir(self, resolver, assets_dir):
        assert resolver.find("photo.jpg") == str(assets_dir / "images" / "photo.jpg")

    def test_videos_subdir(self, resolver, assets_dir):
        assert resolver.find("intro.mp4") == str(assets_dir / "videos" / "intro.mp4")

    def test_unsplash_subdir(self, resolver, assets_dir):
        assert resolver.find("mountain.jpg") == str(assets_dir / "unsplash" / "images" / "mountain.jpg")

    def test_earlier_root_wins(self, resolver, assets_dir):
        """A file present in several roots resolves to the first one."""
        (assets_dir / "videos" / "logo.png").write_bytes(b"other")
        assert resolver.find("logo.png") == str(assets_dir / "logo.png")

    def test_absolute_path(self, resolver, tmp_path):
        path = tmp_path / "elsewhere.png"
        path.write_bytes(b"x")
        assert resolver.find(str(path)) == str(path)

    def test_missing(self, resolver, tmp_path):
        assert resolver.find("nope.png") is None
        assert resolver.find(str(tmp_path / "nope.png")) is None
        assert resolver.find("") is None

    def test_search_roots_order(self, resolver, assets_dir):
        assert resolver.search_roots[0] == str(assets_dir)
        assert resolver.search_roots[1].endswith("images")
        assert len(resolver.search_roots) == 5


class TestResolveTimeline:
    """Input indices and missing-asset handling."""

    def test_indices_start_at_one_in_clip_order(self, resolver):
        timeline = validate_timeline(
            {
                "tracks": [
                    {"clips": [{"id": "a", "type": "image", "source": "logo.png", "duration": 2}]},
                    {
                        "clips": [
                            {"id": "b", "type": "video", "source": "intro.mp4", "duration": 2},
                            {"id": "c", "type": "image", "source": "photo.jpg", "duration": 2},
                        ]
                    },
                ],
                "soundtrack": {"src": "music.mp3"},
            }
        )
        assets = resolver.resolve_timeline(timeline)
        assert [(a.clip_ref, a.input_index) for a in assets] == [
            ("a", 1),
            ("b", 2),
            ("c", 3),
            (SOUNDTRACK_REF, 4),
        ]
        assert [a.slot for a in assets] == [(0, 0), (1, 0), (1, 1), None]
        assert [a.is_soundtrack for a in assets] == [False, False, False, True]

    def test_missing_asset_gets_no_index(self, resolver):
        """Missing sources are returned unresolved and do not consume an input."""
        timeline = validate_timeline(
            {
                "tracks": [
                    {
                        "clips": [
                            {"type": "image", "source": "ghost.png", "duration": 2},
                            {"type": "image", "source": "logo.png", "duration": 2},
                        ]
                    }
                ]
            }
        )
        missing, found = resolver.resolve_timeline(timeline)
        assert not missing.found
        assert missing.input_index is None
        assert missing.clip_ref == "tracks[0].clips[0]"
        assert found.input_index == 1

    def test_text_clips_have_no_assets(self, resolver, text_timeline):
        assert resolver.resolve_timeline(validate_timeline(text_timeline)) == []

    def test_without_probing_media_has_audio(self, resolver):
        timeline = validate_timeline(
            {"tracks": [{"clips": [{"type": "video", "source": "intro.mp4", "duration": 2}]}]}
        )
        (asset,) = resolver.resolve_timeline(timeline)
        assert asset.kind == "video"
        assert asset.has_audio is True

    def test_probing_images_reads_dimensions(self, assets_dir):
        """Image size comes from Pillow when probing is on."""
        resolver = AssetResolver(str(assets_dir), probe=True)
        timeline = validate_timeline(
            {"tracks": [{"clips": [{"type": "image", "source": "logo.png", "duration": 2}]}]}
        )
        (asset,) = resolver.resolve_timeline(timeline)
        assert (asset.width, asset.height) == (400, 300)
        assert asset.has_audio is False

    def test_unreadable_image_probe_is_not_fatal(self, assets_dir):
        resolver = AssetResolver(str(assets_dir), probe=True)
        timeline = validate_timeline(
            {"tracks": [{"clips": [{"type": "image", "source": "mountain.jpg", "duration": 2}]}]}
        )
        (asset,) = resolver.resolve_timeline(timeline)
        assert asset.found
        assert asset.width is None


class TestResolveBackground:
    def test_background_source_is_input_zero(self, resolver):
        timeline = validate_timeline(
            {"background": {"src": "photo.jpg"}, "tracks": [{"clips": [{"type": "text", "text": "x", "duration": 1}]}]}
        )
        background = resolver.resolve_background(timeline)
        assert background.clip_ref == BACKGROUND_REF
        assert background.kind == "image"
        assert background.input_index == 0

    def test_no_background_source(self, resolver, text_timeline):
        assert resolver.resolve_background(validate_timeline(text_timeline)) is None
