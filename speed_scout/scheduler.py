# speed_scout/scheduler.py
"""
Batch scheduler: analyzes a URL set with a leaky-bucket launcher.

One unit of work is launched per URL, then the scheduler waits a fixed
interval before launching the next one, however many earlier units are still
running. ``pause()`` and ``abort()`` only stop future launches; a launched
unit always runs to completion. Exactly one terminal event is emitted per
batch and the scheduler is idle again once :meth:`BatchScheduler.start`
returns.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Set

from speed_scout.errors import AnalysisError, ErrorKind
from speed_scout.events import (
    AuthAlert,
    BatchAborted,
    BatchCompleted,
    BatchPaused,
    BatchProgress,
    BatchStarted,
    EventSink,
    SystemErrorEvent,
)
from speed_scout.gateway.models import AnalysisGateway, DeviceReports
from speed_scout.logger import get_logger
from speed_scout.registry import PageRegistry, PageStatus

AUTH_ALERT_MESSAGE = "API key is invalid or expired, check your settings"


@dataclass(frozen=True, slots=True)
class AnalysisSettings:
    """Per-batch settings; an API key switches to authenticated mode."""

    api_key: Optional[str] = None

    @property
    def pro_mode(self) -> bool:
        return bool(self.api_key)


@dataclass(slots=True)
class BatchJob:
    urls: List[str]
    cursor: int = 0
    completed: int = 0
    failed: int = 0
    paused: bool = False
    # cooperative cancellation token, shared by the launcher and abort()
    cancel: asyncio.Event = field(default_factory=asyncio.Event)
    wakeup: asyncio.Event = field(default_factory=asyncio.Event)
    in_flight: Set[asyncio.Task] = field(default_factory=set)

    @property
    def total(self) -> int:
        return len(self.urls)

    @property
    def aborted(self) -> bool:
        return self.cancel.is_set()

    @property
    def stopped(self) -> bool:
        return self.aborted or self.paused


class BatchScheduler:
    """Runs analyses for a URL set and reports progress to an event sink."""

    def __init__(
        self,
        registry: PageRegistry,
        gateway: AnalysisGateway,
        events: EventSink,
        *,
        launch_interval: float = 1.0,
    ) -> None:
        self.registry = registry
        self.gateway = gateway
        self.events = events
        self.launch_interval = launch_interval
        self.logger = get_logger("scheduler")
        self._job: Optional[BatchJob] = None
        self._processing = False

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def job(self) -> Optional[BatchJob]:
        return self._job

    # ------------------------------------------------------------------ #
    # public API                                                         #
    # ------------------------------------------------------------------ #

    async def start(self, settings: AnalysisSettings, urls: Sequence[str]) -> None:
        """Analyze *urls*; returns once the batch has completed, aborted or errored out."""
        if not urls:
            self.logger.warning("No URLs to analyze")
            return
        if self._processing:
            self.logger.warning("Batch already running, start() ignored")
            return

        self._processing = True
        try:
            if len(urls) == 1:
                await self._run_single(settings, urls[0])
            else:
                self._job = BatchJob(urls=list(urls))
                await self._run_batch(settings, self._job)
        except Exception as exc:
            self.logger.exception("Batch analysis error: %s", exc)
            self.events.emit(SystemErrorEvent(message="Batch analysis failed", details=str(exc)))
        finally:
            self._processing = False
            self._job = None

    def pause(self) -> None:
        job = self._job
        if job is None:
            self.logger.warning("No batch processing to pause")
            return
        job.paused = True
        job.wakeup.set()
        has_processing_url = any(not t.done() for t in job.in_flight)
        self.events.emit(
            BatchPaused(
                has_processing_url=has_processing_url,
                timestamp=datetime.now(timezone.utc).isoformat(),
            )
        )
        self.logger.info("Batch paused (in flight: %s)", has_processing_url)

    def abort(self) -> None:
        job = self._job
        if job is None:
            self.logger.warning("No batch processing to abort")
            return
        self.logger.info("Aborting batch")
        job.cancel.set()
        job.wakeup.set()

    # ------------------------------------------------------------------ #
    # orchestration                                                      #
    # ------------------------------------------------------------------ #

    async def _run_single(self, settings: AnalysisSettings, url: str) -> None:
        self.logger.debug("Single URL analysis, starting immediately: %s", url)
        self.events.emit(BatchStarted(total=1))
        try:
            ok = await self.analyze_url(url, settings)
        except Exception as exc:
            # a lone URL always ends with a completed/failed pair
            self.logger.exception("Single URL analysis error for %s: %s", url, exc)
            ok = False
        self.events.emit(BatchCompleted(total=1, completed=int(ok), failed=int(not ok)))

    async def _run_batch(self, settings: AnalysisSettings, job: BatchJob) -> None:
        self.logger.info("Batch analysis started: %d URLs (pro mode: %s)", job.total, settings.pro_mode)
        self.events.emit(BatchStarted(total=job.total))
        await self._launch_all(settings, job)
        if job.aborted:
            remaining = job.total - job.completed
            self.logger.info("Batch aborted: %d completed, %d remaining", job.completed, remaining)
            self.events.emit(BatchAborted(completed=job.completed, remaining=remaining))
        else:
            self.logger.info("Batch completed: %d ok, %d failed", job.completed, job.failed)
            self.events.emit(
                BatchCompleted(total=job.completed + job.failed, completed=job.completed, failed=job.failed)
            )

    async def _launch_all(self, settings: AnalysisSettings, job: BatchJob) -> None:
        tasks: List[asyncio.Task] = []
        for index, url in enumerate(job.urls):
            if job.stopped:
                break
            job.cursor = index + 1
            task = asyncio.create_task(self._process_url(url, settings, job), name=f"analyze:{url}")
            job.in_flight.add(task)
            task.add_done_callback(job.in_flight.discard)
            tasks.append(task)
            if job.cursor < job.total:
                await self._wait_interval(job)

        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                raise result

    async def _wait_interval(self, job: BatchJob) -> None:
        """Sleep for the launch interval; pause() or abort() cut it short."""
        if job.stopped:
            return
        try:
            await asyncio.wait_for(job.wakeup.wait(), timeout=self.launch_interval)
        except asyncio.TimeoutError:
            pass

    async def _process_url(self, url: str, settings: AnalysisSettings, job: BatchJob) -> None:
        if await self.analyze_url(url, settings):
            job.completed += 1
        else:
            job.failed += 1
        self.events.emit(
            BatchProgress(current=job.cursor, total=job.total, completed=job.completed, failed=job.failed)
        )

    # ------------------------------------------------------------------ #
    # unit of work                                                       #
    # ------------------------------------------------------------------ #

    async def analyze_url(self, url: str, settings: AnalysisSettings) -> bool:
        """Analyze one URL for both device classes and record the outcome.

        Returns True on success. Analysis failures are recorded on the page,
        never raised.
        """
        self.registry.update_status(url, PageStatus.PROCESSING)
        try:
            reports = await self._fetch_reports(url, settings)
        except AnalysisError as exc:
            self.logger.error("Analysis failed for %s: %s", url, exc)
            self.registry.update_status(url, PageStatus.FAILED, error=str(exc))
            if exc.kind is ErrorKind.UNAUTHORIZED:
                self.events.emit(AuthAlert(url=url, message=AUTH_ALERT_MESSAGE))
            return False
        except Exception as exc:
            self.logger.error("Analysis failed for %s: %r", url, exc)
            self.registry.update_status(url, PageStatus.FAILED, error=str(exc) or type(exc).__name__)
            return False

        self.registry.update_status(url, PageStatus.SUCCESS, reports=reports)
        self.logger.debug("All analyses completed: %s", url)
        return True

    async def _fetch_reports(self, url: str, settings: AnalysisSettings) -> DeviceReports:
        if settings.pro_mode:
            mobile, desktop = await asyncio.gather(
                self.gateway.analyze(url, "mobile", settings.api_key),
                self.gateway.analyze(url, "desktop", settings.api_key),
            )
            return {"mobile": mobile, "desktop": desktop}
        return await self.gateway.analyze_both(url)


__all__ = ["AnalysisSettings", "BatchJob", "BatchScheduler", "AUTH_ALERT_MESSAGE"]
