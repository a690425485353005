"""Render JSON video timelines to files with FFmpeg."""

__version__ = "0.1.0"
