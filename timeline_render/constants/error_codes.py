"""Error codes dictionary for render failures.

This is the single source of truth for all error codes, their retryability,
and suggested fixes. Used by RenderError.to_error_info() to produce the
structured failure handed back to the API layer.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    fatal: bool
    suggested_fix: str


# Error codes dictionary - single source of truth
ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Input errors (not retryable, fix the timeline)
    # ==========================================================================
    "TIMELINE_VALIDATION_ERROR": {
        "retryable": False,
        "fatal": True,
        "suggested_fix": "Fix every listed timeline issue and resubmit",
    },
    "ASSET_MISSING": {
        "retryable": False,
        "fatal": False,
        "suggested_fix": "Upload the asset or use an absolute path to an existing file",
    },
    # ==========================================================================
    # Internal errors
    # ==========================================================================
    "COMPILE_ERROR": {
        "retryable": False,
        "fatal": True,
    },
    "INVALID_JOB_TRANSITION": {
        "retryable": False,
        "fatal": True,
    },
    "JOB_NOT_FOUND": {
        "retryable": False,
        "fatal": True,
    },
    # ==========================================================================
    # Environment errors
    # ==========================================================================
    "PROCESS_SPAWN_ERROR": {
        "retryable": False,
        "fatal": True,
        "suggested_fix": "Install FFmpeg or set FFMPEG_PATH to an executable binary",
    },
    # ==========================================================================
    # Encoding errors
    # ==========================================================================
    "ENCODING_ERROR": {
        "retryable": True,
        "fatal": True,
        "suggested_fix": "Inspect the encoder diagnostic tail",
    },
    "OUTPUT_VERIFICATION_ERROR": {
        "retryable": True,
        "fatal": True,
        "suggested_fix": "Check free disk space and permissions of the output directory",
    },
    "RENDER_CANCELLED": {
        "retryable": True,
        "fatal": True,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and suggested fix
    """
    return ERROR_CODES.get(code, {"retryable": False, "fatal": True})
