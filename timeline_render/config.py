from functools import lru_cache

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Logging
    log_level: str = "INFO"

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Filesystem layout
    assets_dir: str = "./assets"
    output_dir: str = "./output"
    output_url_prefix: str = "/output"
    # Previous render artifacts removed from output_dir once per process
    output_cleanup_extensions_raw: str = ".mp4,.mov,.webm,.avi,.json"

    @computed_field
    @property
    def output_cleanup_extensions(self) -> list[str]:
        """Parse cleanup extensions from a comma-separated string."""
        return [ext.strip().lower() for ext in self.output_cleanup_extensions_raw.split(",") if ext.strip()]

    # Render defaults for timelines that omit resolution or fps
    render_output_width: int = 1920
    render_output_height: int = 1080
    render_fps: float = 30
    render_min_duration_s: float = 10.0
    render_preset: str = "medium"
    render_pix_fmt: str = "yuv420p"
    render_audio_bitrate: str = "192k"
    render_audio_sample_rate: int = 48000

    # Media probing (ffprobe / Pillow) while resolving assets
    probe_media: bool = True

    # Process supervision
    # Characters of FFmpeg stderr kept for error details
    diagnostic_tail_chars: int = 500
    # Wall-clock ceiling per job in seconds. 0 = no timeout.
    render_timeout_s: float = 3600
    # Minimum progress delta (percent) between progress notifications
    progress_report_step: float = 1.0


@lru_cache
def get_settings() -> Settings:
    return Settings()
