"""
Pytest fixtures for timeline renderer tests.

The encoder is replaced by small executable shell scripts written into
tmp_path, so the executor tests need no real FFmpeg. Tests that do run the
real encoder are marked with @pytest.mark.requires_ffmpeg.

Run `pytest -m "not requires_ffmpeg"` to skip them.
"""

import os
import shutil
import stat
import sys
from pathlib import Path

import pytest
from PIL import Image

from timeline_render.config import Settings
from timeline_render.render.asset_resolver import AssetResolver
from timeline_render.render.emitter import CommandEmitter
from timeline_render.render.executor import RenderJobExecutor
from timeline_render.render.output_dir import OutputDirGuard
from timeline_render.services.job_registry import JobRegistry


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "requires_ffmpeg: mark test as requiring a real ffmpeg binary on PATH",
    )


def pytest_collection_modifyitems(config, items):
    """Skip real-encoder tests when ffmpeg is not on PATH."""
    if shutil.which("ffmpeg") is not None:
        return
    skip = pytest.mark.skip(reason="ffmpeg not installed")
    for item in items:
        if "requires_ffmpeg" in item.keywords:
            item.add_marker(skip)


# =============================================================================
# Fake encoders
# =============================================================================

# Sets $out to the last argument (the output path)
_LAST_ARG = 'for out in "$@"; do :; done\n'

FFMPEG_SUCCESS = (
    _LAST_ARG
    + "printf 'frame=   10 fps=0.0 time=00:00:02.50 bitrate=N/A speed=5x\\r' >&2\n"
    + "printf 'frame=   20 fps=0.0 time=00:00:05.00 bitrate=N/A speed=5x\\r' >&2\n"
    + "printf 'fake video data' > \"$out\"\n"
    + "exit 0\n"
)

FFMPEG_FAILURE = (
    "printf 'frame=    1 time=00:00:00.50 bitrate=N/A\\r' >&2\n"
    + "printf '[AVFilterGraph] No such filter: bogus\\n' >&2\n"
    + "printf 'Error initializing complex filters.\\n' >&2\n"
    + "exit 1\n"
)

FFMPEG_NO_OUTPUT = "printf 'time=00:00:10.00\\n' >&2\nexit 0\n"

FFMPEG_EMPTY_OUTPUT = _LAST_ARG + ': > "$out"\nexit 0\n'

FFMPEG_HANG = "printf 'time=00:00:01.00\\r' >&2\nexec sleep 30\n"

FAKE_ENCODERS = {
    "success": FFMPEG_SUCCESS,
    "failure": FFMPEG_FAILURE,
    "no_output": FFMPEG_NO_OUTPUT,
    "empty_output": FFMPEG_EMPTY_OUTPUT,
    "hang": FFMPEG_HANG,
}


@pytest.fixture
def make_ffmpeg(tmp_path: Path):
    """Factory writing an executable fake encoder script. Returns its path.

    Pass a key of FAKE_ENCODERS or a raw shell script body.
    """

    def _make(behaviour: str, name: str = "ffmpeg") -> str:
        if sys.platform == "win32":
            pytest.skip("Fake encoder scripts need a POSIX shell")
        body = FAKE_ENCODERS.get(behaviour, behaviour)
        path = tmp_path / "bin" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("#!/bin/sh\n" + body)
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return _make


# =============================================================================
# Assets and settings
# =============================================================================


@pytest.fixture
def assets_dir(tmp_path: Path) -> Path:
    """Asset root laid out like a real deployment."""
    root = tmp_path / "assets"
    for sub in ("images", "videos", os.path.join("unsplash", "images"), os.path.join("unsplash", "videos")):
        (root / sub).mkdir(parents=True)

    Image.new("RGB", (400, 300), color=(255, 0, 0)).save(root / "logo.png")
    Image.new("RGB", (640, 480), color=(0, 0, 255)).save(root / "images" / "photo.jpg")
    (root / "videos" / "intro.mp4").write_bytes(b"not really a video")
    (root / "unsplash" / "images" / "mountain.jpg").write_bytes(b"jpeg")
    (root / "music.mp3").write_bytes(b"not really audio")
    return root


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    return tmp_path / "output"


@pytest.fixture
def settings(assets_dir: Path, output_dir: Path) -> Settings:
    return Settings(
        assets_dir=str(assets_dir),
        output_dir=str(output_dir),
        probe_media=False,
        render_timeout_s=0,
        progress_report_step=1.0,
    )


@pytest.fixture
def registry() -> JobRegistry:
    return JobRegistry(max_detail_chars=500)


@pytest.fixture
def make_executor(settings: Settings, registry: JobRegistry, assets_dir: Path, output_dir: Path):
    """Factory for executors wired to a fake encoder and tmp directories."""

    def _make(ffmpeg_path: str, **kwargs) -> RenderJobExecutor:
        kwargs.setdefault("output_guard", OutputDirGuard([".mp4", ".mov", ".webm"]))
        return RenderJobExecutor(
            registry=registry,
            settings=settings,
            asset_resolver=AssetResolver(str(assets_dir), probe=False),
            emitter=CommandEmitter(ffmpeg_path),
            output_dir=str(output_dir),
            **kwargs,
        )

    return _make


# =============================================================================
# Timelines
# =============================================================================


@pytest.fixture
def text_timeline() -> dict:
    return {
        "tracks": [
            {"clips": [{"type": "text", "text": "Hello {{name}}", "start": 0, "duration": 5}]},
        ],
    }


@pytest.fixture
def layered_timeline() -> dict:
    """Two tracks with overlapping clips plus an image and a shape."""
    return {
        "fps": 25,
        "resolution": {"width": 1280, "height": 720},
        "background": {"color": "#112233"},
        "tracks": [
            {
                "id": "base",
                "clips": [
                    {"id": "photo", "type": "image", "source": "photo.jpg", "start": 0, "duration": 5},
                ],
            },
            {
                "id": "overlay",
                "clips": [
                    {"id": "title", "type": "text", "text": "Title", "start": 0, "duration": 5},
                    {
                        "id": "box",
                        "type": "shape",
                        "start": 1,
                        "duration": 2,
                        "shape": {"type": "rectangle", "width": 300, "height": 150, "fillColor": "#00ff00"},
                    },
                ],
            },
        ],
    }
