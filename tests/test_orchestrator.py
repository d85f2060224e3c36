from __future__ import annotations

import asyncio

import pytest

from conftest import SCENARIO_BODY
from jobalerts.errors import JobFatalError, SourceError, StoreUnavailableError, UnknownJobError
from jobalerts.models import IngestResult
from jobalerts.orchestrator import BackgroundOrchestrator, JobSpec, JobStatus, Step
from jobalerts.storage import MemoryKeyValueStore

pytestmark = pytest.mark.unit


def orchestrator(**kwargs) -> BackgroundOrchestrator:
    kwargs.setdefault("retry_base_delay_s", 0)
    return BackgroundOrchestrator(**kwargs)


def found_step(name: str, found: int = 1) -> Step:
    async def run() -> IngestResult:
        return IngestResult(processed=1, found=found)

    return Step(name, run)


def three_steps() -> JobSpec:
    return JobSpec("three", [found_step("step 1"), found_step("step 2", 2), found_step("step 3", 3)])


@pytest.mark.asyncio
async def test_runs_steps_in_order_and_reports_progress():
    orch = orchestrator()
    events = []
    completed = []
    job_id = orch.submit(three_steps())
    orch.on_progress(job_id, events.append)
    orch.on_completion(job_id, completed.append)
    orch.start(job_id)
    result = await orch.wait(job_id)

    assert result.status is JobStatus.COMPLETED
    assert [e.completed_steps for e in events] == [1, 2, 3]
    assert [e.current_step for e in events] == ["step 1", "step 2", "step 3"]
    assert [e.results_found for e in events] == [1, 3, 6]
    assert all(e.total_steps == 3 for e in events)
    assert result.results_found == 6
    assert completed == [result]


@pytest.mark.asyncio
async def test_pipeline_job_end_to_end(pipeline, preferences, make_message):
    preferences.set_threshold(70)
    orch = orchestrator()
    job_id = orch.run(pipeline.job("u1", [make_message("linkedin", SCENARIO_BODY)]))
    result = await orch.wait(job_id)
    assert result.status is JobStatus.COMPLETED
    assert (result.totals.found, result.totals.added, result.totals.duplicates) == (3, 2, 1)


@pytest.mark.asyncio
async def test_pause_holds_next_step_until_resume():
    orch = orchestrator()
    events = []
    job_id = orch.submit(three_steps())

    def on_progress(progress):
        events.append(progress.completed_steps)
        if progress.completed_steps == 1:
            assert orch.pause(job_id)

    orch.on_progress(job_id, on_progress)
    orch.start(job_id)

    await asyncio.sleep(0.05)
    assert events == [1]
    assert orch.status(job_id) is JobStatus.PAUSED
    assert orch.progress(job_id).completed_steps == 1

    assert orch.resume(job_id)
    result = await orch.wait(job_id)
    assert events == [1, 2, 3]
    assert result.status is JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_pause_during_last_step_waits_for_resume():
    orch = orchestrator()
    completed = []
    job_id = orch.submit(three_steps())
    orch.on_progress(job_id, lambda p: p.completed_steps == 3 and orch.pause(job_id))
    orch.on_completion(job_id, completed.append)
    orch.start(job_id)

    await asyncio.sleep(0.05)
    assert orch.status(job_id) is JobStatus.PAUSED
    assert orch.progress(job_id).completed_steps == 3
    assert completed == []

    assert orch.resume(job_id)
    result = await orch.wait(job_id)
    assert result.status is JobStatus.COMPLETED
    assert len(completed) == 1


@pytest.mark.asyncio
async def test_stop_while_paused_never_completes():
    orch = orchestrator()
    completed = []
    job_id = orch.submit(three_steps())
    orch.on_progress(job_id, lambda p: p.completed_steps == 1 and orch.pause(job_id))
    orch.on_completion(job_id, completed.append)
    orch.start(job_id)

    await asyncio.sleep(0.05)
    assert orch.status(job_id) is JobStatus.PAUSED
    assert orch.stop(job_id)
    result = await orch.wait(job_id)

    assert result.status is JobStatus.STOPPED
    assert result.steps_completed == 1
    assert completed == []
    assert not orch.resume(job_id)


@pytest.mark.asyncio
async def test_stop_pending_job():
    orch = orchestrator()
    job_id = orch.submit(three_steps())
    assert orch.stop(job_id)
    assert orch.status(job_id) is JobStatus.STOPPED
    assert orch.start(job_id) is None
    assert (await orch.wait(job_id)).steps_completed == 0


@pytest.mark.asyncio
async def test_step_timeout_fails_only_that_step():
    async def slow() -> IngestResult:
        await asyncio.sleep(5)
        return IngestResult(found=100)

    orch = orchestrator(step_timeout_s=0.05)
    job_id = orch.run(JobSpec("slow", [Step("slow", slow), found_step("fast", 2)]))
    result = await orch.wait(job_id)

    assert result.status is JobStatus.COMPLETED
    assert result.steps_failed == 1
    assert result.steps_completed == 1
    assert result.results_found == 2
    assert "slow" in result.errors[0]


@pytest.mark.asyncio
async def test_store_errors_are_retried():
    calls = []

    def flaky() -> IngestResult:
        calls.append(1)
        if len(calls) < 3:
            raise StoreUnavailableError("busy")
        return IngestResult(found=1)

    orch = orchestrator(step_retries=2)
    result = await orch.wait(orch.run(JobSpec("flaky", [Step("flaky", flaky)])))
    assert len(calls) == 3
    assert result.status is JobStatus.COMPLETED
    assert result.steps_failed == 0


@pytest.mark.asyncio
async def test_store_errors_exhausting_retries_fail_the_step():
    def broken() -> IngestResult:
        raise StoreUnavailableError("down")

    orch = orchestrator(step_retries=1)
    result = await orch.wait(orch.run(JobSpec("broken", [Step("broken", broken), found_step("next")])))
    assert result.status is JobStatus.COMPLETED
    assert result.steps_failed == 1
    assert result.results_found == 1


@pytest.mark.asyncio
async def test_source_errors_are_not_retried():
    calls = []

    async def rate_limited() -> IngestResult:
        calls.append(1)
        raise SourceError("remotive", "HTTP 429", status="rate_limited")

    orch = orchestrator(step_retries=3)
    result = await orch.wait(orch.run(JobSpec("live", [Step("search", rate_limited)])))
    assert len(calls) == 1
    assert result.steps_failed == 1


@pytest.mark.asyncio
async def test_missing_spec_is_fatal():
    orch = orchestrator()
    errors = []
    job_id = orch.submit(None)
    orch.on_error(job_id, errors.append)
    orch.start(job_id)
    result = await orch.wait(job_id)
    assert result.status is JobStatus.FAILED
    assert isinstance(errors[0], JobFatalError)


@pytest.mark.asyncio
async def test_empty_job_is_fatal():
    orch = orchestrator()
    result = await orch.wait(orch.run(JobSpec("empty", [])))
    assert result.status is JobStatus.FAILED


@pytest.mark.asyncio
async def test_unexpected_error_fails_job():
    ran = []

    def explode() -> IngestResult:
        raise ValueError("bug")

    orch = orchestrator()
    errors = []
    job_id = orch.submit(JobSpec("bad", [Step("explode", explode), Step("after", lambda: ran.append(1))]))
    orch.on_error(job_id, errors.append)
    orch.start(job_id)
    result = await orch.wait(job_id)
    assert result.status is JobStatus.FAILED
    assert ran == []
    assert isinstance(errors[0], ValueError)


@pytest.mark.asyncio
async def test_handler_errors_do_not_break_job():
    def bad_handler(_):
        raise RuntimeError("observer bug")

    orch = orchestrator()
    job_id = orch.submit(three_steps())
    orch.on_progress(job_id, bad_handler)
    orch.start(job_id)
    assert (await orch.wait(job_id)).status is JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_async_handlers_are_awaited():
    orch = orchestrator()
    seen = []

    async def handler(progress):
        await asyncio.sleep(0)
        seen.append(progress.completed_steps)

    job_id = orch.submit(three_steps())
    orch.on_progress(job_id, handler)
    orch.start(job_id)
    await orch.wait(job_id)
    assert seen == [1, 2, 3]


@pytest.mark.asyncio
async def test_cancelled_task_counts_as_stopped():
    gate = asyncio.Event()

    async def blocked() -> IngestResult:
        await gate.wait()
        return IngestResult()

    orch = orchestrator()
    job_id = orch.submit(JobSpec("blocked", [Step("blocked", blocked)]))
    task = orch.start(job_id)
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert orch.status(job_id) is JobStatus.STOPPED


@pytest.mark.asyncio
async def test_status_is_mirrored_to_store():
    store = MemoryKeyValueStore()
    orch = orchestrator(status_store=store)
    job_id = orch.run(three_steps())
    await orch.wait(job_id)
    snapshot = store.get(f"jobs.{job_id}")
    assert snapshot["status"] == "completed"
    assert snapshot["completed_steps"] == 3
    assert snapshot["results_found"] == 6


@pytest.mark.asyncio
async def test_active_jobs_and_unknown_ids():
    orch = orchestrator()
    job_id = orch.run(three_steps())
    assert job_id in orch.active_jobs()
    await orch.wait(job_id)
    assert orch.active_jobs() == []
    with pytest.raises(UnknownJobError):
        orch.status("nope")
    with pytest.raises(KeyError):
        orch.pause("nope")
