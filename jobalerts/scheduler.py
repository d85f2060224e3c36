"""
Run a job repeatedly on a fixed interval.

A tick is skipped while the previous job from the same scheduler is still
active, so slow runs never stack up.
"""
from __future__ import annotations

import asyncio
from typing import Callable

from jobalerts.log import get_logger
from jobalerts.orchestrator import BackgroundOrchestrator, JobResult, JobSpec

log = get_logger(__name__)


class IntervalScheduler:
    def __init__(
        self,
        orchestrator: BackgroundOrchestrator,
        make_job: Callable[[], JobSpec],
        interval_s: float,
        on_submit: Callable[[str], None] | None = None,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self.orchestrator = orchestrator
        self.make_job = make_job
        self.interval_s = interval_s
        self.on_submit = on_submit
        self.current: str | None = None
        self.runs = 0
        self.skipped = 0
        self._stopped = asyncio.Event()

    def tick(self) -> str | None:
        """Start one job unless the previous one is still running; return its id."""
        if self.current is not None and self.current in self.orchestrator.active_jobs():
            log.info("Previous run %s still active — skipping this tick", self.current)
            self.skipped += 1
            return None
        spec = self.make_job()
        if not spec.steps:
            log.info("Nothing to do this tick")
            return None
        job_id = self.orchestrator.submit(spec)
        if self.on_submit is not None:
            self.on_submit(job_id)
        self.orchestrator.start(job_id)
        self.current = job_id
        self.runs += 1
        return job_id

    async def run(self, max_runs: int | None = None) -> list[JobResult]:
        log.info("Scheduler: running every %.0fs", self.interval_s)
        results: list[JobResult] = []
        while not self._stopped.is_set():
            job_id = self.tick()
            if job_id is not None:
                self.orchestrator.on_completion(job_id, results.append)
            if max_runs is not None and self.runs >= max_runs:
                if self.current is not None:
                    await self.orchestrator.wait(self.current)
                break
            try:
                await asyncio.wait_for(self._stopped.wait(), self.interval_s)
            except asyncio.TimeoutError:
                continue
        return results

    def stop(self) -> None:
        self._stopped.set()
        if self.current is not None:
            self.orchestrator.stop(self.current)
