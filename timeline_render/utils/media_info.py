"""Media file information utilities using FFprobe and Pillow."""

import json
import subprocess
from dataclasses import dataclass

from PIL import Image

from timeline_render.config import get_settings


def _get_settings():
    """Get settings lazily to avoid import issues in tests."""
    return get_settings()


@dataclass
class MediaInfo:
    """Media file information."""

    duration_ms: int | None = None
    width: int | None = None
    height: int | None = None
    fps: float | None = None
    video_codec: str | None = None
    audio_codec: str | None = None
    has_video: bool = False
    has_audio: bool = False


def _run_ffprobe(file_path: str, *args) -> dict:
    """Run ffprobe and return parsed JSON."""
    settings = _get_settings()
    cmd = [
        settings.ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        *args,
        file_path,
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        raise RuntimeError(f"ffprobe could not be started: {e}") from e
    if result.returncode != 0:
        raise RuntimeError(f"ffprobe failed: {result.stderr}")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"Failed to parse ffprobe output: {e}")


def probe_media(file_path: str) -> MediaInfo:
    """
    Get video/audio stream information for a media file.

    Args:
        file_path: Path to media file

    Returns:
        MediaInfo for the first video and audio streams

    Raises:
        RuntimeError: If ffprobe fails
    """
    data = _run_ffprobe(file_path, "-show_format", "-show_streams")
    info = MediaInfo()

    format_info = data.get("format", {})
    if "duration" in format_info:
        info.duration_ms = int(float(format_info["duration"]) * 1000)

    for stream in data.get("streams", []):
        codec_type = stream.get("codec_type")

        if codec_type == "video" and not info.has_video:
            info.has_video = True
            info.width = stream.get("width")
            info.height = stream.get("height")
            info.video_codec = stream.get("codec_name")

            r_frame_rate = stream.get("r_frame_rate", "0/1")
            if "/" in r_frame_rate:
                num, den = r_frame_rate.split("/")
                if int(den) > 0:
                    info.fps = int(num) / int(den)

        elif codec_type == "audio" and not info.has_audio:
            info.has_audio = True
            info.audio_codec = stream.get("codec_name")

    return info


def get_image_dimensions(file_path: str) -> tuple[int, int]:
    """
    Get image width and height.

    Raises:
        RuntimeError: If the file is not a readable image
    """
    try:
        with Image.open(file_path) as img:
            return img.size
    except OSError as e:
        raise RuntimeError(f"Cannot read image {file_path}: {e}") from e
