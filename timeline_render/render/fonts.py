"""Font family lookup for text clips."""

import logging
import os

logger = logging.getLogger(__name__)

DEFAULT_FONT_FAMILY = "Arial"

FONT_FILES: dict[str, str] = {
    "Arial": "/System/Library/Fonts/Arial.ttf",
    "Arial Black": "/System/Library/Fonts/Arial Black.ttf",
    "Arial Bold": "/System/Library/Fonts/Arial Bold.ttf",
    "Helvetica": "/System/Library/Fonts/Helvetica.ttc",
    "Times": "/System/Library/Fonts/Times.ttc",
    "Times New Roman": "/Library/Fonts/Times New Roman.ttf",
    "Courier": "/System/Library/Fonts/Courier.ttc",
    "Impact": "/System/Library/Fonts/Impact.ttf",
    "Comic Sans MS": "/Library/Fonts/Comic Sans MS.ttf",
    "Papyrus": "/System/Library/Fonts/Papyrus.ttc",
}


def font_path_for(family: str | None) -> str:
    """Table lookup with fallback to the default family."""
    return FONT_FILES.get(family or DEFAULT_FONT_FAMILY, FONT_FILES[DEFAULT_FONT_FAMILY])


def resolve_font(family: str | None) -> str | None:
    """Font file to pass to drawtext, or None to let FFmpeg pick its default face.

    None is returned when the mapped file is not installed on this host.
    """
    path = font_path_for(family)
    if os.path.isfile(path):
        return path
    logger.debug(f"[FONTS] {path} not installed for {family!r}, using encoder default face")
    return None
