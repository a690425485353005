"""In-memory registry of render jobs and aggregate render statistics.

The registry is the single owner of job records. Callers get frozen
JobSnapshot copies, never the live record. Safe to use from several
threads and from several asyncio tasks.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from timeline_render.config import get_settings
from timeline_render.exceptions import InvalidJobTransitionError, JobNotFoundError, RenderError
from timeline_render.schemas.render import ErrorInfo, JobSnapshot, JobState, RenderResult, RenderStats

logger = logging.getLogger(__name__)

# Forward path through the lifecycle. FAILED is reachable from any non-terminal state.
NEXT_STATE: dict[JobState, JobState] = {
    JobState.CREATED: JobState.VALIDATING,
    JobState.VALIDATING: JobState.SUBSTITUTING,
    JobState.SUBSTITUTING: JobState.RESOLVING,
    JobState.RESOLVING: JobState.COMPILING,
    JobState.COMPILING: JobState.RENDERING,
    JobState.RENDERING: JobState.COMPLETED,
}


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass
class RenderJob:
    """Mutable job record. Only the registry touches it."""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: JobState = JobState.CREATED
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    progress: float = 0.0
    result: RenderResult | None = None
    error: ErrorInfo | None = None
    warnings: list[str] = field(default_factory=list)
    # Monotonic clock reading when the encoder phase began
    rendering_started: float | None = None

    def snapshot(self) -> JobSnapshot:
        return JobSnapshot(
            id=self.id,
            state=self.state,
            created_at=self.created_at,
            updated_at=self.updated_at,
            progress=self.progress,
            result=self.result,
            error=self.error,
            warnings=tuple(self.warnings),
        )


class JobRegistry:
    """Thread-safe job store with render statistics."""

    def __init__(self, max_detail_chars: int | None = None) -> None:
        self._jobs: dict[str, RenderJob] = {}
        self._stats = RenderStats()
        self._lock = threading.Lock()
        self._max_detail_chars = max_detail_chars or get_settings().diagnostic_tail_chars

    # ------------------------------------------------------------------
    # Job lifecycle

    def create(self, job_id: str | None = None) -> JobSnapshot:
        """Create and record a new job in CREATED state."""
        job = RenderJob(id=job_id) if job_id else RenderJob()
        return self.record(job)

    def record(self, job: RenderJob) -> JobSnapshot:
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job {job.id} is already registered")
            self._jobs[job.id] = job
            return job.snapshot()

    def transition(self, job_id: str, target: JobState) -> JobSnapshot:
        """Advance a job one step along the forward path."""
        with self._lock:
            job = self._get(job_id)
            if target.is_terminal or NEXT_STATE.get(job.state) != target:
                raise InvalidJobTransitionError(job_id, job.state.value, target.value)
            job.state = target
            job.updated_at = _now()
            if target == JobState.RENDERING:
                job.rendering_started = time.monotonic()
            return job.snapshot()

    def update_progress(self, job_id: str, percent: float) -> JobSnapshot:
        """Record encoder progress. Progress never moves backwards."""
        with self._lock:
            job = self._get(job_id)
            if job.state != JobState.RENDERING:
                raise InvalidJobTransitionError(job_id, job.state.value, "progress update")
            job.progress = max(job.progress, min(100.0, max(0.0, percent)))
            job.updated_at = _now()
            return job.snapshot()

    def add_warning(self, job_id: str, message: str) -> None:
        with self._lock:
            job = self._get(job_id)
            if job.state.is_terminal:
                raise InvalidJobTransitionError(job_id, job.state.value, "warning")
            job.warnings.append(message)

    def complete(self, job_id: str, result: RenderResult) -> JobSnapshot:
        with self._lock:
            job = self._get(job_id)
            if job.state != JobState.RENDERING:
                raise InvalidJobTransitionError(job_id, job.state.value, JobState.COMPLETED.value)
            job.state = JobState.COMPLETED
            job.progress = 100.0
            job.result = result
            job.updated_at = _now()
            self._record_outcome(job, success=True, counted=True)
            return job.snapshot()

    def fail(self, job_id: str, error: RenderError) -> JobSnapshot:
        """Move a job to FAILED.

        Only jobs that reached RENDERING with a failure that counts as a
        processed render touch count/errors/avg_time_ms. Everything else
        (validation, compile and spawn failures) is counted as rejected.
        """
        with self._lock:
            job = self._get(job_id)
            if job.state.is_terminal:
                raise InvalidJobTransitionError(job_id, job.state.value, JobState.FAILED.value)
            counted = job.state == JobState.RENDERING and error.counts_as_render
            job.state = JobState.FAILED
            job.error = error.to_error_info(self._max_detail_chars)
            job.updated_at = _now()
            self._record_outcome(job, success=False, counted=counted)
            return job.snapshot()

    # ------------------------------------------------------------------
    # Queries

    def get(self, job_id: str) -> JobSnapshot:
        with self._lock:
            return self._get(job_id).snapshot()

    def list(self, state: JobState | None = None) -> list[JobSnapshot]:
        with self._lock:
            jobs = [job for job in self._jobs.values() if state is None or job.state == state]
            return [job.snapshot() for job in sorted(jobs, key=lambda j: j.created_at)]

    def stats(self) -> RenderStats:
        with self._lock:
            return self._stats.model_copy()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    # ------------------------------------------------------------------
    # Internals (called under lock)

    def _get(self, job_id: str) -> RenderJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def _record_outcome(self, job: RenderJob, success: bool, counted: bool) -> None:
        stats = self._stats
        if not counted:
            stats.rejected += 1
            logger.info(f"[STATS] Job {job.id} rejected before rendering (rejected={stats.rejected})")
            return

        elapsed_ms = 0.0
        if job.rendering_started is not None:
            elapsed_ms = (time.monotonic() - job.rendering_started) * 1000

        stats.count += 1
        if not success:
            stats.errors += 1
        stats.avg_time_ms += (elapsed_ms - stats.avg_time_ms) / stats.count
        stats.success_rate = (stats.count - stats.errors) / stats.count * 100
        stats.last_rendered_at = job.updated_at
        logger.info(
            f"[STATS] Job {job.id} {'completed' if success else 'failed'} in {elapsed_ms:.0f}ms "
            f"(count={stats.count}, errors={stats.errors}, success_rate={stats.success_rate:.1f}%)"
        )
