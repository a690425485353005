"""Output directory preparation.

Leftover artifacts from earlier runs are removed the first time a directory
is used in this process. Later jobs writing to the same directory leave it
alone, so concurrent renders never delete each other's files.
"""

import logging
import os
import threading
from functools import lru_cache

from timeline_render.config import get_settings

logger = logging.getLogger(__name__)


class OutputDirGuard:
    """Clears each output directory at most once per process."""

    def __init__(self, extensions: list[str] | None = None) -> None:
        if extensions is None:
            extensions = get_settings().output_cleanup_extensions
        self.extensions = tuple(ext.lower() for ext in extensions)
        self._cleared: set[str] = set()
        self._lock = threading.Lock()

    def prepare(self, directory: str) -> int:
        """Create ``directory`` and clear it if not done yet. Returns files removed."""
        path = os.path.abspath(directory)
        with self._lock:
            os.makedirs(path, exist_ok=True)
            if path in self._cleared:
                return 0
            self._cleared.add(path)
            removed = self._clear(path)

        if removed:
            logger.info(f"[OUTPUT] Removed {removed} previous artifacts from {path}")
        return removed

    def is_cleared(self, directory: str) -> bool:
        with self._lock:
            return os.path.abspath(directory) in self._cleared

    def _clear(self, path: str) -> int:
        if not self.extensions:
            return 0
        removed = 0
        for name in os.listdir(path):
            file_path = os.path.join(path, name)
            if not os.path.isfile(file_path) or not name.lower().endswith(self.extensions):
                continue
            try:
                os.remove(file_path)
                removed += 1
            except OSError as e:
                logger.warning(f"[OUTPUT] Could not remove {file_path}: {e}")
        return removed


@lru_cache
def get_output_guard() -> OutputDirGuard:
    return OutputDirGuard()
