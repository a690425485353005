"""Custom exceptions for the timeline renderer.

Every failure that can end a render job is a RenderError subclass with a
stable machine-readable code, a human-readable message and, for encoder
failures, a bounded diagnostic tail.
"""

from dataclasses import dataclass

from timeline_render.constants.error_codes import get_error_spec
from timeline_render.schemas.render import ErrorInfo


class RenderError(Exception):
    """Base exception for all render errors."""

    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"
    # Failures of this kind count as processed renders in the stats
    counts_as_render: bool = True

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        detail: str | None = None,
        suggested_fix: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        self.detail = detail
        self.suggested_fix = suggested_fix
        super().__init__(self.message)

    def to_error_info(self, max_detail_chars: int | None = None) -> ErrorInfo:
        """Convert exception to ErrorInfo for the job result."""
        spec = get_error_spec(self.code)
        detail = self.detail
        if detail is not None and max_detail_chars is not None and len(detail) > max_detail_chars:
            detail = detail[-max_detail_chars:]
        return ErrorInfo(
            code=self.code,
            message=self.message,
            detail=detail,
            retryable=spec.get("retryable", False),
            suggested_fix=self.suggested_fix or spec.get("suggested_fix"),
        )


# =============================================================================
# Timeline errors
# =============================================================================


@dataclass
class ValidationIssue:
    """A single structural defect (or warning) found in a timeline."""

    path: str  # e.g. "tracks[0].clips[2].duration"
    message: str
    severity: str = "error"  # "error" or "warning"

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


class TimelineValidationError(RenderError):
    """The timeline is structurally invalid. Always fatal, raised before rendering."""

    code = "TIMELINE_VALIDATION_ERROR"
    message = "Timeline validation failed"
    counts_as_render = False

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        summary = "; ".join(str(issue) for issue in issues)
        super().__init__(f"Timeline validation failed ({len(issues)} issues): {summary}")


class AssetMissingError(RenderError):
    """A clip's asset could not be resolved. Non-fatal: the clip is skipped."""

    code = "ASSET_MISSING"
    message = "Asset not found"

    def __init__(self, source: str, clip_ref: str | None = None):
        self.source = source
        self.clip_ref = clip_ref
        where = f" (clip {clip_ref})" if clip_ref else ""
        super().__init__(f"Asset not found: {source}{where}")


class CompileError(RenderError):
    """Internal invariant violated while building the filter graph."""

    code = "COMPILE_ERROR"
    message = "Failed to compile timeline"
    counts_as_render = False


# =============================================================================
# Process errors
# =============================================================================


class ProcessSpawnError(RenderError):
    """The encoder binary is missing or not executable."""

    code = "PROCESS_SPAWN_ERROR"
    message = "Failed to start encoder"
    counts_as_render = False

    def __init__(self, binary: str, reason: str):
        self.binary = binary
        super().__init__(f"Failed to start encoder '{binary}': {reason}")


class EncodingError(RenderError):
    """The encoder exited with a non-zero code."""

    code = "ENCODING_ERROR"
    message = "Encoder failed"

    def __init__(self, exit_code: int, diagnostic_tail: str):
        self.exit_code = exit_code
        super().__init__(f"Encoder exited with code {exit_code}", detail=diagnostic_tail)


class OutputVerificationError(RenderError):
    """The encoder reported success but the output file is missing or empty."""

    code = "OUTPUT_VERIFICATION_ERROR"
    message = "Rendered output is missing or empty"

    def __init__(self, output_path: str, reason: str):
        self.output_path = output_path
        super().__init__(f"Rendered output {output_path} is unusable: {reason}")


class RenderCancelledError(RenderError):
    """The job was cancelled (explicitly or by timeout)."""

    code = "RENDER_CANCELLED"
    message = "Render cancelled"

    def __init__(self, reason: str = "cancelled"):
        self.reason = reason
        super().__init__(f"Render cancelled: {reason}")


# =============================================================================
# Registry errors
# =============================================================================


class JobNotFoundError(RenderError):
    """Job not found in the registry."""

    code = "JOB_NOT_FOUND"
    message = "Job not found"

    def __init__(self, job_id: str | None = None):
        message = f"Job not found: {job_id}" if job_id else self.message
        super().__init__(message)


class InvalidJobTransitionError(RenderError):
    """A state transition not allowed by the job lifecycle."""

    code = "INVALID_JOB_TRANSITION"
    message = "Invalid job state transition"

    def __init__(self, job_id: str, current: str, target: str):
        super().__init__(f"Job {job_id} cannot move from {current} to {target}")
