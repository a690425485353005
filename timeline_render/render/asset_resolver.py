"""Resolve clip sources to files on disk.

Absolute sources are taken as-is. Relative sources are searched in a fixed
order of asset roots:

    <assets_dir>/
    <assets_dir>/images/
    <assets_dir>/videos/
    <assets_dir>/unsplash/images/
    <assets_dir>/unsplash/videos/

A source that cannot be found is not an error: the asset comes back with
``absolute_path=None`` and the compiler leaves that clip out of the render.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from timeline_render.config import get_settings
from timeline_render.schemas.timeline import MEDIA_CLIP_TYPES, MediaClip, Timeline, clip_ref
from timeline_render.utils.media_info import get_image_dimensions, probe_media

logger = logging.getLogger(__name__)

ASSET_SUBDIRS: tuple[str, ...] = (
    "",
    "images",
    "videos",
    os.path.join("unsplash", "images"),
    os.path.join("unsplash", "videos"),
)

SOUNDTRACK_REF = "soundtrack"
BACKGROUND_REF = "background"


@dataclass
class ResolvedAsset:
    """A clip source mapped to a filesystem path (or to nothing)."""

    clip_ref: str
    logical_source: str
    absolute_path: Optional[str]
    kind: str  # image, video, audio
    input_index: Optional[int] = None
    has_audio: bool = False
    width: Optional[int] = None
    height: Optional[int] = None
    # (track index, clip index) of the owning clip; None for the soundtrack and background
    slot: Optional[tuple[int, int]] = None

    @property
    def found(self) -> bool:
        return self.absolute_path is not None

    @property
    def is_soundtrack(self) -> bool:
        return self.slot is None and self.kind == "audio"


class AssetResolver:
    """Maps logical sources to files under a fixed list of asset roots."""

    def __init__(self, assets_dir: str | None = None, probe: bool | None = None):
        settings = get_settings()
        self.assets_dir = os.path.abspath(assets_dir or settings.assets_dir)
        self.probe = settings.probe_media if probe is None else probe

    @property
    def search_roots(self) -> list[str]:
        return [os.path.join(self.assets_dir, sub) if sub else self.assets_dir for sub in ASSET_SUBDIRS]

    def find(self, source: str) -> str | None:
        """Return the first existing path for ``source``, or None."""
        if not source:
            return None

        if os.path.isabs(source):
            return source if os.path.isfile(source) else None

        for root in self.search_roots:
            candidate = os.path.join(root, source)
            if os.path.isfile(candidate):
                return candidate
        return None

    def resolve(
        self,
        ref: str,
        source: str,
        kind: str,
        slot: Optional[tuple[int, int]] = None,
    ) -> ResolvedAsset:
        """Resolve a single source. Missing files produce ``absolute_path=None``."""
        path = self.find(source)
        asset = ResolvedAsset(clip_ref=ref, logical_source=source, absolute_path=path, kind=kind, slot=slot)
        if path is None:
            logger.warning(f"[ASSETS] Asset not found: {source} ({ref})")
            return asset

        if self.probe:
            self._probe(asset)
        elif kind in ("video", "audio"):
            # Without probing, assume media files carry sound
            asset.has_audio = True
        logger.info(f"[ASSETS] {ref}: {source} -> {path}")
        return asset

    def resolve_clip(self, clip: MediaClip, ref: str, slot: Optional[tuple[int, int]] = None) -> ResolvedAsset:
        return self.resolve(ref, clip.source, clip.type, slot)

    def resolve_timeline(self, timeline: Timeline) -> list[ResolvedAsset]:
        """Resolve every asset the timeline references and assign encoder inputs.

        Input 0 is the base stream (solid colour or background source), so
        found assets are numbered from 1 in track/clip order, followed by the
        soundtrack.
        """
        assets: list[ResolvedAsset] = []
        next_index = 1

        for track_index, track in enumerate(timeline.tracks):
            for clip_index, clip in enumerate(track.clips):
                if clip.type not in MEDIA_CLIP_TYPES:
                    continue
                asset = self.resolve_clip(
                    clip, clip_ref(track_index, clip_index, clip), (track_index, clip_index)
                )
                if asset.found:
                    asset.input_index = next_index
                    next_index += 1
                assets.append(asset)

        if timeline.soundtrack is not None:
            asset = self.resolve(SOUNDTRACK_REF, timeline.soundtrack.src, "audio")
            if asset.found:
                asset.input_index = next_index
                next_index += 1
            assets.append(asset)

        found = sum(1 for asset in assets if asset.found)
        logger.info(f"[ASSETS] Resolved {found}/{len(assets)} assets")
        return assets

    def resolve_background(self, timeline: Timeline) -> ResolvedAsset | None:
        """Resolve the timeline background source, if it has one."""
        src = timeline.background.src
        if not src:
            return None
        kind = "image" if _looks_like_image(src) else "video"
        asset = self.resolve(BACKGROUND_REF, src, kind)
        if asset.found:
            asset.input_index = 0
        return asset

    def _probe(self, asset: ResolvedAsset) -> None:
        try:
            if asset.kind == "image":
                asset.width, asset.height = get_image_dimensions(asset.absolute_path)
                return
            info = probe_media(asset.absolute_path)
        except RuntimeError as e:
            logger.warning(f"[ASSETS] Could not probe {asset.absolute_path}: {e}")
            return

        asset.has_audio = info.has_audio
        asset.width = info.width
        asset.height = info.height


IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp")


def _looks_like_image(source: str) -> bool:
    return source.lower().endswith(IMAGE_EXTENSIONS)
