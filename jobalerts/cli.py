"""
Command line entry point.

  jobalerts inbox alerts.yaml             process an exported alert inbox
  jobalerts live "agile coach" -l London  search the live job boards
  jobalerts ... --every 3600              repeat every hour until interrupted
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

import yaml

from jobalerts.config import Settings, ensure_dirs, load_settings
from jobalerts.errors import ConfigError, PipelineError
from jobalerts.filestore import CsvMatchStore, CsvRequestLog, YamlKeyValueStore
from jobalerts.gate import AccessGate, SourceThrottle
from jobalerts.live import LiveSearch
from jobalerts.log import get_logger, set_level
from jobalerts.matches import MatchRepository
from jobalerts.models import RawMessage, SourceKind, utcnow
from jobalerts.orchestrator import BackgroundOrchestrator, JobResult, JobSpec, JobStatus
from jobalerts.pipeline import IngestPipeline
from jobalerts.preferences import PreferenceStore
from jobalerts.scheduler import IntervalScheduler
from jobalerts.sources import get_sources

log = get_logger(__name__)


def load_inbox(path: str | Path) -> list[RawMessage]:
    """Read alert messages from a YAML file (a list, or a mapping with ``messages``)."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or []
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read inbox file {path}: {exc}") from exc
    if isinstance(data, dict):
        data = data.get("messages") or []

    messages: list[RawMessage] = []
    for i, item in enumerate(data):
        if not isinstance(item, dict) or not item.get("body"):
            log.warning("Skipping inbox entry %d: no body", i)
            continue
        received = item.get("received_at") or utcnow()
        if not isinstance(received, datetime):
            try:
                received = datetime.fromisoformat(str(received))
            except ValueError as exc:
                raise ConfigError(f"Inbox entry {i}: bad received_at {received!r}") from exc
        if received.tzinfo is None:
            received = received.replace(tzinfo=utcnow().tzinfo)
        messages.append(
            RawMessage(
                source_kind=SourceKind.coerce(item.get("source")),
                body=str(item["body"]),
                received_at=received,
                subject=str(item.get("subject", "")),
                sender=str(item.get("sender", "")),
                message_id=str(item["id"]) if item.get("id") is not None else None,
            )
        )
    return messages


class App:
    """Wires the file-backed stores to the pipeline, live search and orchestrator."""

    def __init__(self, settings: Settings) -> None:
        ensure_dirs(settings)
        self.settings = settings
        self.state = YamlKeyValueStore(settings.data_dir / "state.yaml")
        self.preferences = PreferenceStore(self.state, settings)
        self.repository = MatchRepository(CsvMatchStore(settings.data_dir / "matches.csv"))
        self.gate = AccessGate(CsvRequestLog(settings.data_dir / "requests.csv"))
        self.pipeline = IngestPipeline(self.repository, self.preferences)
        self.orchestrator = BackgroundOrchestrator(
            step_timeout_s=settings.step_timeout_s,
            step_retries=settings.step_retries,
            retry_base_delay_s=settings.retry_base_delay_s,
            status_store=self.state,
        )

    def inbox_job(self, path: str) -> JobSpec:
        since = self.preferences.default_since()
        messages = [m for m in load_inbox(path) if m.received_at > since]
        log.info("%d new message(s) since %s", len(messages), since.isoformat())
        return self.pipeline.job("cli", messages, batch_size=self.settings.batch_size)

    def finish_inbox(self, started_at: datetime) -> Callable[[JobResult], None]:
        def handler(result: JobResult) -> None:
            if result.steps_failed:
                # keep the marker so the failed batches are read again next run
                log.warning(
                    "%d batch(es) failed; last processed marker left at %s",
                    result.steps_failed, self.preferences.default_since().isoformat(),
                )
            else:
                self.preferences.set_last_processed(started_at)
            self.preferences.record_run(
                result.totals.processed, result.totals, self.preferences.get_threshold()
            )
        return handler

    def live_search(self, source_names: list[str] | None) -> LiveSearch:
        return LiveSearch(
            self.gate, SourceThrottle(), self.preferences, self.repository, get_sources(source_names)
        )


def _report(result: JobResult) -> None:
    t = result.totals
    log.info("Run %s (%s): %s", result.job_id, result.name, result.status.value)
    log.info("  Messages/requests processed: %d", t.processed)
    log.info("  Listings found: %d", t.found)
    log.info("  Matches added: %d", t.added)
    log.info("  Duplicates: %d | Below threshold: %d | Failed: %d", t.duplicates, t.below_threshold, t.failed)
    for err in result.errors:
        log.warning("  %s", err)


def _progress(progress: Any) -> None:
    log.info(
        "  [%d/%d] %s (found so far: %d)",
        progress.completed_steps, progress.total_steps, progress.current_step, progress.results_found,
    )


async def _run_once(app: App, spec: JobSpec, on_done: Callable[[JobResult], None] | None = None) -> JobResult:
    job_id = app.orchestrator.submit(spec)
    app.orchestrator.on_progress(job_id, _progress)
    if on_done is not None:
        app.orchestrator.on_completion(job_id, on_done)
    app.orchestrator.start(job_id)
    result = await app.orchestrator.wait(job_id)
    _report(result)
    return result


async def _run(args: argparse.Namespace, app: App) -> int:
    if args.command == "inbox":
        def make_job() -> JobSpec:
            return app.inbox_job(args.file)
    else:
        search = app.live_search(args.source)

        def make_job() -> JobSpec:
            return search.job("cli", args.query, args.location)

    if not args.every:
        started = utcnow()
        spec = make_job()
        if not spec.steps:
            log.info("Nothing to do")
            return 0
        on_done = app.finish_inbox(started) if args.command == "inbox" else None
        result = await _run_once(app, spec, on_done)
        return 0 if result.status is JobStatus.COMPLETED else 1

    def on_submit(job_id: str) -> None:
        app.orchestrator.on_progress(job_id, _progress)
        app.orchestrator.on_completion(job_id, _report)
        if args.command == "inbox":
            app.orchestrator.on_completion(job_id, app.finish_inbox(utcnow()))

    scheduler = IntervalScheduler(app.orchestrator, make_job, args.every, on_submit=on_submit)
    try:
        await scheduler.run()
    finally:
        scheduler.stop()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="jobalerts", description="Job alert ingestion and matching")
    parser.add_argument("--config", help="Path to settings.yaml")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log per-listing decisions")
    parser.add_argument("--threshold", type=int, help="Store a new match threshold (0-100) before running")
    parser.add_argument("--every", type=float, metavar="SECONDS", help="Repeat the run on this interval")
    sub = parser.add_subparsers(dest="command", required=True)

    inbox = sub.add_parser("inbox", help="Process alert messages from a YAML file")
    inbox.add_argument("file")

    live = sub.add_parser("live", help="Search the live job boards")
    live.add_argument("query")
    live.add_argument("-l", "--location", action="append", default=[], help="Repeatable")
    live.add_argument("-s", "--source", action="append", help="remotive or mock (repeatable)")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.verbose:
        set_level("DEBUG")
    try:
        app = App(load_settings(args.config))
        if args.threshold is not None:
            app.preferences.set_threshold(args.threshold)
        return asyncio.run(_run(args, app))
    except KeyboardInterrupt:
        log.info("Interrupted")
        return 130
    except PipelineError as exc:
        log.error("%s", exc)
        return 2


if __name__ == "__main__":
    sys.exit(main())
