"""Parsing of FFmpeg's diagnostic stream."""

import re

# time=00:01:02.50 in the periodic stats line
_TIME_PATTERN = re.compile(r"time=\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
# -progress output; out_time_ms is in microseconds as well
_OUT_TIME_PATTERN = re.compile(r"out_time_(?:us|ms)=(\d+)")


def parse_progress_time(line: str) -> float | None:
    """Seconds of output encoded so far, or None if the line has no time marker."""
    matches = _TIME_PATTERN.findall(line)
    if matches:
        hours, minutes, seconds = matches[-1]
        return int(hours) * 3600 + int(minutes) * 60 + float(seconds)

    matches = _OUT_TIME_PATTERN.findall(line)
    if matches:
        return int(matches[-1]) / 1_000_000
    return None


def progress_percent(seconds: float, duration: float) -> float:
    """Clamp ``seconds / duration`` to 0..100."""
    if duration <= 0:
        return 0.0
    return max(0.0, min(100.0, seconds / duration * 100))


def split_lines(buffer: str) -> tuple[list[str], str]:
    """Split on ``\\r`` or ``\\n``; returns complete lines and the unfinished rest."""
    parts = re.split(r"[\r\n]", buffer)
    return [part for part in parts[:-1] if part], parts[-1]


class DiagnosticTail:
    """Keeps only the last ``max_chars`` characters of the diagnostic stream."""

    def __init__(self, max_chars: int = 500):
        self.max_chars = max_chars
        self._text = ""

    def append(self, chunk: str) -> None:
        self._text = (self._text + chunk)[-self.max_chars :]

    @property
    def text(self) -> str:
        return self._text

    def __str__(self) -> str:
        return self._text

    def __len__(self) -> int:
        return len(self._text)
