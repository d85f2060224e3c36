"""
Background job orchestrator.

Each submitted job runs as its own asyncio task and walks its steps in order:
    pending → running → (paused ⇄ running) → completed | failed | stopped

Pause and stop are cooperative flags checked at step boundaries; a step in
flight always finishes. Observers register handlers per job and are called
from inside the job task, so progress events arrive in step order.
"""
from __future__ import annotations

import asyncio
import functools
import inspect
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from jobalerts.errors import (
    GateDenied,
    JobFatalError,
    SourceError,
    StepTimeoutError,
    StoreError,
    UnknownJobError,
)
from jobalerts.log import get_logger
from jobalerts.models import ExecutionProgress, IngestResult
from jobalerts.retry import retry_async
from jobalerts.storage import KeyValueStore

log = get_logger(__name__)

DEFAULT_STEP_TIMEOUT_S = 60.0
DEFAULT_STEP_RETRIES = 2

# Failures that cost one step, not the whole job.
STEP_FAILURES: tuple[type[Exception], ...] = (StepTimeoutError, StoreError, GateDenied, SourceError)


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.STOPPED)


@dataclass
class Step:
    name: str
    run: Callable[[], Any]


@dataclass
class JobSpec:
    name: str
    steps: list[Step] = field(default_factory=list)
    step_timeout_s: float | None = None


@dataclass
class JobResult:
    job_id: str
    name: str
    status: JobStatus
    totals: IngestResult
    total_steps: int
    steps_completed: int
    steps_failed: int
    errors: list[str] = field(default_factory=list)

    @property
    def results_found(self) -> int:
        return self.totals.found


@dataclass
class _Job:
    id: str
    spec: JobSpec | None
    status: JobStatus = JobStatus.PENDING
    progress: ExecutionProgress | None = None
    totals: IngestResult = field(default_factory=IngestResult)
    steps_completed: int = 0
    steps_failed: int = 0
    errors: list[str] = field(default_factory=list)
    stop_requested: bool = False
    resume_event: asyncio.Event = field(default_factory=asyncio.Event)
    done: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task | None = None
    progress_handlers: list[Callable] = field(default_factory=list)
    completion_handlers: list[Callable] = field(default_factory=list)
    error_handlers: list[Callable] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.resume_event.set()

    @property
    def name(self) -> str:
        return self.spec.name if self.spec else "<missing spec>"

    @property
    def total_steps(self) -> int:
        return len(self.spec.steps) if self.spec else 0


def _as_result(outcome: Any) -> IngestResult:
    if outcome is None:
        return IngestResult()
    if isinstance(outcome, IngestResult):
        return outcome
    raise TypeError(f"step returned {type(outcome).__name__}, expected IngestResult")


class BackgroundOrchestrator:
    def __init__(
        self,
        *,
        step_timeout_s: float = DEFAULT_STEP_TIMEOUT_S,
        step_retries: int = DEFAULT_STEP_RETRIES,
        retry_base_delay_s: float = 0.5,
        status_store: KeyValueStore | None = None,
    ) -> None:
        self.step_timeout_s = step_timeout_s
        self.step_retries = max(0, step_retries)
        self.retry_base_delay_s = retry_base_delay_s
        self.status_store = status_store
        self._jobs: dict[str, _Job] = {}

    # --- registration ---------------------------------------------------

    def submit(self, spec: JobSpec | None) -> str:
        job = _Job(id=uuid.uuid4().hex[:12], spec=spec)
        self._jobs[job.id] = job
        self._mirror(job)
        log.info("[%s] submitted job %r (%d step(s))", job.id, job.name, job.total_steps)
        return job.id

    def on_progress(self, job_id: str, handler: Callable[[ExecutionProgress], Any]) -> None:
        self._get(job_id).progress_handlers.append(handler)

    def on_completion(self, job_id: str, handler: Callable[[JobResult], Any]) -> None:
        self._get(job_id).completion_handlers.append(handler)

    def on_error(self, job_id: str, handler: Callable[[BaseException], Any]) -> None:
        self._get(job_id).error_handlers.append(handler)

    # --- control ----------------------------------------------------------

    def start(self, job_id: str) -> asyncio.Task | None:
        """pending → running. Must be called from inside a running event loop."""
        job = self._get(job_id)
        if job.status is not JobStatus.PENDING:
            log.warning("[%s] start ignored in state %s", job.id, job.status.value)
            return job.task
        job.status = JobStatus.RUNNING
        self._mirror(job)
        job.task = asyncio.get_running_loop().create_task(self._execute(job), name=f"job-{job.id}")
        return job.task

    def run(self, spec: JobSpec | None) -> str:
        job_id = self.submit(spec)
        self.start(job_id)
        return job_id

    def pause(self, job_id: str) -> bool:
        job = self._get(job_id)
        if job.status is not JobStatus.RUNNING:
            return False
        job.status = JobStatus.PAUSED
        job.resume_event.clear()
        self._mirror(job)
        log.info("[%s] pause requested", job.id)
        return True

    def resume(self, job_id: str) -> bool:
        job = self._get(job_id)
        if job.status is not JobStatus.PAUSED or job.stop_requested:
            return False
        job.status = JobStatus.RUNNING
        job.resume_event.set()
        self._mirror(job)
        log.info("[%s] resumed", job.id)
        return True

    def stop(self, job_id: str) -> bool:
        job = self._get(job_id)
        if job.status.terminal:
            return False
        job.stop_requested = True
        if job.status is JobStatus.PENDING:
            job.status = JobStatus.STOPPED
            job.done.set()
            self._mirror(job)
        else:
            job.resume_event.set()
        log.info("[%s] stop requested", job.id)
        return True

    # --- inspection -------------------------------------------------------

    def status(self, job_id: str) -> JobStatus:
        return self._get(job_id).status

    def progress(self, job_id: str) -> ExecutionProgress | None:
        return self._get(job_id).progress

    def result(self, job_id: str) -> JobResult:
        job = self._get(job_id)
        return JobResult(
            job_id=job.id,
            name=job.name,
            status=job.status,
            totals=job.totals,
            total_steps=job.total_steps,
            steps_completed=job.steps_completed,
            steps_failed=job.steps_failed,
            errors=list(job.errors),
        )

    async def wait(self, job_id: str) -> JobResult:
        await self._get(job_id).done.wait()
        return self.result(job_id)

    def active_jobs(self) -> list[str]:
        return [j.id for j in self._jobs.values() if not j.status.terminal]

    # --- execution --------------------------------------------------------

    def _get(self, job_id: str) -> _Job:
        try:
            return self._jobs[job_id]
        except KeyError:
            raise UnknownJobError(job_id) from None

    async def _execute(self, job: _Job) -> None:
        try:
            spec = self._validate(job)
            for index, step in enumerate(spec.steps):
                if not await self._checkpoint(job):
                    break
                try:
                    outcome = await self._run_step(job, spec, step)
                except STEP_FAILURES as exc:
                    partial = getattr(exc, "partial", None)
                    if partial is not None:
                        job.totals += _as_result(partial)
                    job.steps_failed += 1
                    job.errors.append(f"{step.name}: {exc}")
                    log.error("[%s] step %r failed: %s", job.id, step.name, exc)
                else:
                    job.steps_completed += 1
                    job.totals += _as_result(outcome)

                job.progress = ExecutionProgress(
                    job_id=job.id,
                    current_step=step.name,
                    completed_steps=index + 1,
                    total_steps=len(spec.steps),
                    results_found=job.totals.found,
                )
                self._mirror(job)
                await self._notify(job, job.progress_handlers, job.progress)

            # a pause that landed during the last step holds here too
            await self._checkpoint(job)
            if job.stop_requested:
                job.status = JobStatus.STOPPED
                self._mirror(job)
                log.info("[%s] stopped after %d step(s)", job.id, job.steps_completed + job.steps_failed)
                return

            job.status = JobStatus.COMPLETED
            self._mirror(job)
            result = self.result(job.id)
            log.info(
                "[%s] completed — steps=%d, failed=%d, found=%d, added=%d",
                job.id, result.steps_completed, result.steps_failed,
                result.totals.found, result.totals.added,
            )
            await self._notify(job, job.completion_handlers, result)
        except asyncio.CancelledError:
            job.status = JobStatus.STOPPED
            self._mirror(job)
            raise
        except Exception as exc:
            job.status = JobStatus.FAILED
            job.errors.append(str(exc))
            self._mirror(job)
            log.error("[%s] job failed: %s", job.id, exc)
            await self._notify(job, job.error_handlers, exc)
        finally:
            job.done.set()

    @staticmethod
    def _validate(job: _Job) -> JobSpec:
        if job.spec is None:
            raise JobFatalError("no job spec supplied")
        if not job.spec.steps:
            raise JobFatalError(f"job {job.spec.name!r} has no steps")
        return job.spec

    async def _checkpoint(self, job: _Job) -> bool:
        """Step boundary: wait out a pause, report whether to continue."""
        if job.stop_requested:
            return False
        if not job.resume_event.is_set():
            log.info("[%s] paused before next step", job.id)
            await job.resume_event.wait()
        return not job.stop_requested

    async def _run_step(self, job: _Job, spec: JobSpec, step: Step) -> Any:
        timeout = spec.step_timeout_s or self.step_timeout_s

        async def attempt() -> Any:
            try:
                return await asyncio.wait_for(self._invoke(step), timeout)
            except asyncio.TimeoutError as exc:
                raise StepTimeoutError(f"exceeded {timeout:.1f}s") from exc

        log.debug("[%s] starting step %r", job.id, step.name)
        return await retry_async(
            attempt,
            label=f"[{job.id}] {step.name}",
            max_attempts=self.step_retries + 1,
            base_delay=self.retry_base_delay_s,
            retryable=(StoreError,),
        )

    @staticmethod
    async def _invoke(step: Step) -> Any:
        target = step.run.func if isinstance(step.run, functools.partial) else step.run
        if inspect.iscoroutinefunction(target):
            return await step.run()
        result = await asyncio.to_thread(step.run)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _notify(self, job: _Job, handlers: list[Callable], payload: Any) -> None:
        for handler in list(handlers):
            try:
                ret = handler(payload)
                if inspect.isawaitable(ret):
                    await ret
            except Exception as exc:
                log.error("[%s] handler %r raised: %s", job.id, handler, exc)

    def _mirror(self, job: _Job) -> None:
        if self.status_store is None:
            return
        snapshot: dict[str, Any] = {"name": job.name, "status": job.status.value}
        if job.progress is not None:
            snapshot.update(
                current_step=job.progress.current_step,
                completed_steps=job.progress.completed_steps,
                total_steps=job.progress.total_steps,
                results_found=job.progress.results_found,
            )
        try:
            self.status_store.set(f"jobs.{job.id}", snapshot)
        except StoreError as exc:
            log.warning("[%s] could not persist job status: %s", job.id, exc)
