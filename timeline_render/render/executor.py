"""Render job executor.

Drives one job through its lifecycle:

    CREATED -> VALIDATING -> SUBSTITUTING -> RESOLVING -> COMPILING
            -> RENDERING -> COMPLETED | FAILED

Each job runs as its own asyncio task and supervises exactly one FFmpeg
process. Any failure moves the job straight to FAILED; nothing is retried.
"""

import asyncio
import logging
import os
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from timeline_render.config import Settings, get_settings
from timeline_render.exceptions import (
    EncodingError,
    OutputVerificationError,
    ProcessSpawnError,
    RenderCancelledError,
    RenderError,
)
from timeline_render.render.asset_resolver import AssetResolver
from timeline_render.render.compiler import GraphCompiler
from timeline_render.render.emitter import CommandEmitter
from timeline_render.render.graph import CompiledCommand
from timeline_render.render.merge_fields import MergeFieldResolver, MergeFieldValue
from timeline_render.render.output_dir import OutputDirGuard, get_output_guard
from timeline_render.render.progress import DiagnosticTail, parse_progress_time, progress_percent, split_lines
from timeline_render.render.validator import TimelineValidator
from timeline_render.schemas.render import (
    CODEC_NAMES,
    JobSnapshot,
    JobState,
    OutputOptions,
    RenderRequest,
    RenderResult,
    RenderStats,
)
from timeline_render.schemas.timeline import Timeline
from timeline_render.services import render_events
from timeline_render.services.job_registry import JobRegistry
from timeline_render.services.render_events import RenderEvent, RenderEventBus

logger = logging.getLogger(__name__)

# (job_id, percent) -> None
ProgressObserver = Callable[[str, float], None]

STDERR_CHUNK_SIZE = 4096
# Longest partial line kept between stderr chunks
MAX_PENDING_LINE = 4096


@dataclass
class _JobContext:
    request: RenderRequest
    on_progress: ProgressObserver | None = None
    task: asyncio.Task | None = None
    process: asyncio.subprocess.Process | None = None
    cancel_reason: str | None = None
    last_reported: float = -1.0


class RenderJobExecutor:
    """Runs render jobs and records their outcome in a JobRegistry.

    Every collaborator can be injected, so tests can run independent
    executors with their own registry, fake encoder binary and directories.
    """

    def __init__(
        self,
        registry: JobRegistry | None = None,
        event_bus: RenderEventBus | None = None,
        settings: Settings | None = None,
        validator: TimelineValidator | None = None,
        merge_resolver: MergeFieldResolver | None = None,
        asset_resolver: AssetResolver | None = None,
        compiler: GraphCompiler | None = None,
        emitter: CommandEmitter | None = None,
        output_guard: OutputDirGuard | None = None,
        output_dir: str | None = None,
        timeout: float | None = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry or JobRegistry(self.settings.diagnostic_tail_chars)
        self.event_bus = event_bus or RenderEventBus()
        self.validator = validator or TimelineValidator()
        self.merge_resolver = merge_resolver or MergeFieldResolver()
        self.asset_resolver = asset_resolver or AssetResolver(self.settings.assets_dir, self.settings.probe_media)
        self.compiler = compiler or GraphCompiler(settings=self.settings)
        self.emitter = emitter or CommandEmitter(self.settings.ffmpeg_path)
        self.output_guard = output_guard or get_output_guard()
        self.output_dir = os.path.abspath(output_dir or self.settings.output_dir)
        if timeout is None:
            timeout = self.settings.render_timeout_s
        self.timeout = timeout or None  # 0 disables the timeout
        self._contexts: dict[str, _JobContext] = {}

    # ------------------------------------------------------------------
    # Public API

    def submit(
        self,
        timeline: dict[str, Any] | RenderRequest,
        merge_fields: Mapping[str, MergeFieldValue] | None = None,
        output: OutputOptions | None = None,
        on_progress: ProgressObserver | None = None,
    ) -> str:
        """Register a job and start it in the background. Returns the job id.

        Must be called from a running event loop.
        """
        if isinstance(timeline, RenderRequest):
            request = timeline
        else:
            request = RenderRequest(
                timeline=timeline,
                merge_fields=dict(merge_fields or {}),
                output=output or OutputOptions(),
            )

        job_id = self.registry.create().id
        ctx = _JobContext(request=request, on_progress=on_progress)
        self._contexts[job_id] = ctx
        ctx.task = asyncio.create_task(self._run(job_id, ctx), name=f"render-{job_id}")
        logger.info(f"[RENDER] Job {job_id} submitted")
        return job_id

    async def render(
        self,
        timeline: dict[str, Any] | RenderRequest,
        merge_fields: Mapping[str, MergeFieldValue] | None = None,
        output: OutputOptions | None = None,
        on_progress: ProgressObserver | None = None,
    ) -> JobSnapshot:
        """Submit a job and wait for its terminal snapshot."""
        job_id = self.submit(timeline, merge_fields, output, on_progress)
        return await self.wait(job_id)

    async def wait(self, job_id: str) -> JobSnapshot:
        """Wait until the job is terminal and return its final snapshot."""
        ctx = self._contexts.get(job_id)
        if ctx is not None and ctx.task is not None:
            await asyncio.wait([ctx.task])
        return self.registry.get(job_id)

    async def cancel(self, job_id: str, reason: str = "cancelled") -> bool:
        """Cancel a running job, killing its encoder process.

        Returns:
            False if the job had already finished.
        """
        snapshot = self.registry.get(job_id)
        ctx = self._contexts.get(job_id)
        if snapshot.state.is_terminal or ctx is None or ctx.task is None:
            return False

        ctx.cancel_reason = reason
        ctx.task.cancel()
        await asyncio.wait([ctx.task])

        # A task cancelled before its first step never ran its handlers
        if not self.registry.get(job_id).state.is_terminal:
            await self._fail(job_id, RenderCancelledError(reason))
        self._contexts.pop(job_id, None)
        return True

    async def events(self, job_id: str) -> AsyncIterator[RenderEvent]:
        """Iterate over a job's events. Ends after the terminal event."""
        queue = await self.event_bus.register(job_id)
        try:
            snapshot = self.registry.get(job_id)
            if snapshot.state.is_terminal:
                yield self._terminal_event(snapshot)
                return
            async for event in self.event_bus.drain(queue):
                yield event
        finally:
            await self.event_bus.unregister(job_id, queue)

    def get(self, job_id: str) -> JobSnapshot:
        return self.registry.get(job_id)

    def stats(self) -> RenderStats:
        return self.registry.stats()

    @property
    def active_jobs(self) -> int:
        """Jobs submitted here that have not finished yet."""
        return len(self._contexts)

    # ------------------------------------------------------------------
    # Job driver

    async def _run(self, job_id: str, ctx: _JobContext) -> None:
        try:
            if self.timeout:
                await asyncio.wait_for(self._execute(job_id, ctx), self.timeout)
            else:
                await self._execute(job_id, ctx)
        except asyncio.TimeoutError:
            logger.warning(f"[RENDER] Job {job_id} timed out after {self.timeout}s")
            await self._fail(job_id, RenderCancelledError("timeout"))
        except asyncio.CancelledError:
            if ctx.cancel_reason is None:
                # Not ours (e.g. event loop shutdown): record and propagate
                await self._fail(job_id, RenderCancelledError("interrupted"))
                raise
            current = asyncio.current_task()
            if current is not None:
                current.uncancel()
            logger.info(f"[RENDER] Job {job_id} cancelled: {ctx.cancel_reason}")
            await self._fail(job_id, RenderCancelledError(ctx.cancel_reason))
        except RenderError as e:
            logger.error(f"[RENDER] Job {job_id} failed: [{e.code}] {e.message}")
            await self._fail(job_id, e)
        except Exception as e:
            logger.exception(f"[RENDER] Job {job_id} failed unexpectedly: {e}")
            await self._fail(job_id, RenderError(str(e) or e.__class__.__name__))
        finally:
            # Terminal jobs live on in the registry only
            self._contexts.pop(job_id, None)

    async def _execute(self, job_id: str, ctx: _JobContext) -> None:
        request = ctx.request

        await self._advance(job_id, JobState.VALIDATING)
        timeline = self.validator.validate(request.timeline)

        await self._advance(job_id, JobState.SUBSTITUTING)
        timeline = self.merge_resolver.resolve(timeline, request.merge_fields)

        await self._advance(job_id, JobState.RESOLVING)
        assets = await asyncio.to_thread(self.asset_resolver.resolve_timeline, timeline)
        background = await asyncio.to_thread(self.asset_resolver.resolve_background, timeline)

        await self._advance(job_id, JobState.COMPILING)
        await asyncio.to_thread(self.output_guard.prepare, self.output_dir)
        output_path = os.path.join(self.output_dir, self._output_filename(job_id, request.output))
        command = self.compiler.compile(timeline, assets, output_path, request.output, background)
        for warning in command.warnings:
            self.registry.add_warning(job_id, warning)
        argv = self.emitter.emit(command)

        await self._advance(job_id, JobState.RENDERING)
        await self._encode(job_id, ctx, argv, command.duration)

        result = self._verify_output(command, timeline)
        await self._report_progress(job_id, ctx, 100.0)
        self.registry.complete(job_id, result)
        logger.info(f"[RENDER] Job {job_id} completed: {result.filename} ({result.size} bytes)")
        await self.event_bus.publish(job_id, render_events.COMPLETED, {"result": result.model_dump()})

    async def _encode(self, job_id: str, ctx: _JobContext, argv: list[str], duration: float) -> None:
        """Run the encoder to completion, reporting progress from its stderr."""
        logger.info(f"[RENDER] Job {job_id} starting encoder ({len(argv)} args, {duration}s)")
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProcessSpawnError(argv[0], str(e)) from e

        ctx.process = process
        tail = DiagnosticTail(self.settings.diagnostic_tail_chars)
        pending = ""
        try:
            while True:
                chunk = await process.stderr.read(STDERR_CHUNK_SIZE)
                if not chunk:
                    break
                text = chunk.decode("utf-8", errors="replace")
                tail.append(text)
                lines, pending = split_lines(pending + text)
                pending = pending[-MAX_PENDING_LINE:]
                for line in lines:
                    seconds = parse_progress_time(line)
                    if seconds is not None:
                        await self._report_progress(job_id, ctx, progress_percent(seconds, duration))
            seconds = parse_progress_time(pending)
            if seconds is not None:
                await self._report_progress(job_id, ctx, progress_percent(seconds, duration))
            exit_code = await process.wait()
        except BaseException:
            # Cancellation, timeout or any error while reading: never leave the encoder running
            await self._kill(job_id, process)
            raise
        finally:
            ctx.process = None

        logger.info(f"[RENDER] Job {job_id} encoder exited with code {exit_code}")
        if exit_code != 0:
            raise EncodingError(exit_code, tail.text)

    async def _kill(self, job_id: str, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        logger.info(f"[RENDER] Job {job_id} killing encoder pid={process.pid}")
        try:
            process.kill()
        except ProcessLookupError:
            pass  # Already gone
        await process.wait()

    def _verify_output(self, command: CompiledCommand, timeline: Timeline) -> RenderResult:
        path = command.output_path
        if not os.path.isfile(path):
            raise OutputVerificationError(path, "file does not exist")
        size = os.path.getsize(path)
        if size == 0:
            raise OutputVerificationError(path, "file is empty")

        filename = os.path.basename(path)
        video_codec = command.global_options.get("video_codec", "libx264")
        return RenderResult(
            path=path,
            filename=filename,
            url=f"{self.settings.output_url_prefix.rstrip('/')}/{filename}",
            size=size,
            duration=command.duration,
            resolution=command.resolution,
            fps=command.fps,
            codec=CODEC_NAMES.get(video_codec, video_codec),
            format=command.format,
            tracks=len(timeline.tracks),
            clips=timeline.clip_count,
        )

    @staticmethod
    def _output_filename(job_id: str, output: OutputOptions) -> str:
        stamp = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
        return f"video_{stamp}_{job_id[:8]}.{output.format}"

    # ------------------------------------------------------------------
    # State and notifications

    async def _advance(self, job_id: str, state: JobState) -> None:
        self.registry.transition(job_id, state)
        logger.debug(f"[RENDER] Job {job_id} -> {state.value}")
        await self.event_bus.publish(job_id, render_events.STATE, {"state": state.value})

    async def _report_progress(self, job_id: str, ctx: _JobContext, percent: float) -> None:
        if percent <= ctx.last_reported:
            return
        if percent < 100 and percent - ctx.last_reported < self.settings.progress_report_step:
            return
        ctx.last_reported = percent
        snapshot = self.registry.update_progress(job_id, percent)
        self._notify_progress(job_id, ctx, snapshot.progress)
        await self.event_bus.publish(job_id, render_events.PROGRESS, {"progress": snapshot.progress})

    def _notify_progress(self, job_id: str, ctx: _JobContext, percent: float) -> None:
        if ctx.on_progress is None:
            return
        try:
            ctx.on_progress(job_id, percent)
        except Exception as e:
            # Observer errors are the caller's problem, not the render's
            logger.exception(f"[RENDER] Job {job_id} progress observer failed: {e}")

    async def _fail(self, job_id: str, error: RenderError) -> None:
        if self.registry.get(job_id).state.is_terminal:
            logger.warning(f"[RENDER] Job {job_id} already finished, ignoring [{error.code}] {error.message}")
            return
        snapshot = self.registry.fail(job_id, error)
        await self.event_bus.publish(job_id, render_events.FAILED, {"error": snapshot.error.model_dump()})

    @staticmethod
    def _terminal_event(snapshot: JobSnapshot) -> RenderEvent:
        if snapshot.state == JobState.COMPLETED:
            return RenderEvent(render_events.COMPLETED, snapshot.id, data={"result": snapshot.result.model_dump()})
        return RenderEvent(render_events.FAILED, snapshot.id, data={"error": snapshot.error.model_dump()})
