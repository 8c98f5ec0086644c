# File: tests/test_scheduler.py
from __future__ import annotations

import asyncio

import pytest

from conftest import FakeGateway
from speed_scout.errors import ErrorKind
from speed_scout.events import (
    AuthAlert,
    BatchAborted,
    BatchCompleted,
    BatchPaused,
    BatchProgress,
    BatchStarted,
    PageEvent,
    SystemErrorEvent,
)
from speed_scout.registry import PageRegistry, PageStatus
from speed_scout.scheduler import AnalysisSettings, BatchScheduler

URLS = [f"https://example.com/page{i}" for i in range(1, 6)]


def make_scheduler(registry, gateway, recorder, interval: float = 0.01) -> BatchScheduler:
    return BatchScheduler(registry, gateway, recorder, launch_interval=interval)


def terminal_events(recorder):
    return [e for e in recorder.events if isinstance(e, (BatchCompleted, BatchAborted, SystemErrorEvent))]


@pytest.mark.asyncio()
async def test_batch_with_one_failure(registry, recorder):
    registry.add_many(URLS)
    gateway = FakeGateway(failures={URLS[2]: ErrorKind.UPSTREAM})
    scheduler = make_scheduler(registry, gateway, recorder)

    await scheduler.start(AnalysisSettings(), URLS)

    assert recorder.of_type(BatchStarted) == [BatchStarted(total=5)]
    assert terminal_events(recorder) == [BatchCompleted(total=5, completed=4, failed=1)]
    assert len(recorder.of_type(BatchProgress)) == 5

    failed = registry.get(URLS[2])
    assert failed.status is PageStatus.FAILED
    assert failed.error
    for url in URLS[:2] + URLS[3:]:
        page = registry.get(url)
        assert page.status is PageStatus.SUCCESS
        assert page.reports["mobile"]["lighthouseResult"]["finalUrl"] == url
        assert page.reports["desktop"] is not None


@pytest.mark.asyncio()
async def test_second_start_while_running_is_noop(registry, recorder):
    other = ["https://other.org/a", "https://other.org/b"]
    registry.add_many(URLS + other)
    gateway = FakeGateway(default_delay=0.05)
    scheduler = make_scheduler(registry, gateway, recorder)

    first = asyncio.create_task(scheduler.start(AnalysisSettings(), URLS))
    await asyncio.sleep(0.01)
    assert scheduler.is_processing

    await scheduler.start(AnalysisSettings(), other)
    await first

    assert len(recorder.of_type(BatchStarted)) == 1
    assert len(terminal_events(recorder)) == 1
    assert all(registry.get(u).status is PageStatus.PENDING for u in other)
    assert not any(url in other for url in gateway.started)


@pytest.mark.asyncio()
async def test_single_url_skips_progress(registry, recorder):
    registry.add(URLS[0])
    scheduler = make_scheduler(registry, FakeGateway(), recorder)

    await scheduler.start(AnalysisSettings(), [URLS[0]])

    batch_events = [e for e in recorder.events if not isinstance(e, PageEvent)]
    assert batch_events == [BatchStarted(total=1), BatchCompleted(total=1, completed=1, failed=0)]
    assert registry.get(URLS[0]).status is PageStatus.SUCCESS


@pytest.mark.asyncio()
async def test_single_url_failure_reported_as_failed(registry, recorder):
    registry.add(URLS[0])
    gateway = FakeGateway(failures={URLS[0]: ErrorKind.UPSTREAM})
    scheduler = make_scheduler(registry, gateway, recorder)

    await scheduler.start(AnalysisSettings(), [URLS[0]])

    assert terminal_events(recorder) == [BatchCompleted(total=1, completed=0, failed=1)]
    assert not recorder.of_type(BatchProgress)
    assert registry.get(URLS[0]).status is PageStatus.FAILED


@pytest.mark.asyncio()
async def test_abort_right_after_start(registry, recorder):
    urls = [f"https://example.com/p{i}" for i in range(10)]
    registry.add_many(urls)
    gateway = FakeGateway()
    scheduler = make_scheduler(registry, gateway, recorder, interval=1.0)

    loop = asyncio.get_running_loop()
    started = loop.time()
    task = asyncio.create_task(scheduler.start(AnalysisSettings(), urls))
    await asyncio.sleep(0.01)
    scheduler.abort()
    await task

    # launcher stopped without waiting out the interval
    assert loop.time() - started < 0.9
    assert 0 < len(gateway.started) < 10
    [aborted] = terminal_events(recorder)
    assert isinstance(aborted, BatchAborted)
    assert aborted.completed + aborted.remaining == 10
    assert aborted.completed == len(gateway.started)
    assert not scheduler.is_processing


@pytest.mark.asyncio()
async def test_progress_in_completion_order(registry, recorder):
    slow, fast = "https://example.com/slow", "https://example.com/fast"
    registry.add_many([slow, fast])
    gateway = FakeGateway(delays={slow: 0.2, fast: 0.0})
    scheduler = make_scheduler(registry, gateway, recorder)

    await scheduler.start(AnalysisSettings(), [slow, fast])

    finished = [e.url for e in recorder.of_type(PageEvent) if e.status == "success"]
    assert finished == [fast, slow]
    progress = recorder.of_type(BatchProgress)
    assert [(p.completed, p.failed) for p in progress] == [(1, 0), (2, 0)]


@pytest.mark.asyncio()
async def test_leaky_bucket_does_not_cap_concurrency(registry, recorder):
    registry.add_many(URLS)
    gateway = FakeGateway(default_delay=0.3)
    scheduler = make_scheduler(registry, gateway, recorder, interval=0.01)

    await scheduler.start(AnalysisSettings(), URLS)

    assert gateway.max_in_flight == len(URLS)
    assert gateway.started == URLS


@pytest.mark.asyncio()
async def test_pause_stops_launching_but_finishes_in_flight(registry, recorder):
    registry.add_many(URLS)
    gateway = FakeGateway(default_delay=0.2)
    scheduler = make_scheduler(registry, gateway, recorder, interval=0.05)

    task = asyncio.create_task(scheduler.start(AnalysisSettings(), URLS))
    await asyncio.sleep(0.07)
    scheduler.pause()
    await task

    [paused] = recorder.of_type(BatchPaused)
    assert paused.has_processing_url
    launched = len(gateway.started)
    assert 0 < launched < len(URLS)
    [done] = terminal_events(recorder)
    assert done == BatchCompleted(total=launched, completed=launched, failed=0)
    assert [registry.get(u).status for u in URLS[launched:]] == [PageStatus.PENDING] * (len(URLS) - launched)


@pytest.mark.asyncio()
async def test_pause_and_abort_when_idle_are_noops(registry, recorder):
    scheduler = make_scheduler(registry, FakeGateway(), recorder)
    scheduler.pause()
    scheduler.abort()
    assert recorder.events == []
    assert not scheduler.is_processing


@pytest.mark.asyncio()
async def test_unauthorized_raises_alert(registry, recorder):
    urls = ["https://example.com/a", "https://example.com/b"]
    registry.add_many(urls)
    gateway = FakeGateway(failures={urls[0]: ErrorKind.UNAUTHORIZED, urls[1]: ErrorKind.RATE_LIMITED})
    scheduler = make_scheduler(registry, gateway, recorder)

    await scheduler.start(AnalysisSettings(), urls)

    alerts = recorder.of_type(AuthAlert)
    assert [a.url for a in alerts] == [urls[0]]
    assert terminal_events(recorder) == [BatchCompleted(total=2, completed=0, failed=2)]


@pytest.mark.asyncio()
async def test_pro_mode_calls_each_device_directly(registry, recorder):
    urls = ["https://example.com/a", "https://example.com/b"]
    registry.add_many(urls)
    gateway = FakeGateway()
    scheduler = make_scheduler(registry, gateway, recorder)

    await scheduler.start(AnalysisSettings(api_key="secret"), urls)

    assert sorted(c for c in gateway.calls) == sorted(
        ("analyze", u, d, "secret") for u in urls for d in ("mobile", "desktop")
    )
    assert all(registry.get(u).status is PageStatus.SUCCESS for u in urls)


class BrokenRegistry(PageRegistry):
    def update_status(self, url, status, **kwargs):
        raise RuntimeError("registry unavailable")


@pytest.mark.asyncio()
async def test_orchestration_error_is_reported_and_state_reset(recorder):
    registry = BrokenRegistry(recorder)
    registry.add_many(URLS[:3])
    scheduler = make_scheduler(registry, FakeGateway(), recorder)

    await scheduler.start(AnalysisSettings(), URLS[:3])

    [error] = terminal_events(recorder)
    assert isinstance(error, SystemErrorEvent)
    assert "registry unavailable" in error.details
    assert not scheduler.is_processing
    assert scheduler.job is None


@pytest.mark.asyncio()
async def test_single_url_registry_error_still_completes(recorder):
    registry = BrokenRegistry(recorder)
    registry.add(URLS[0])
    scheduler = make_scheduler(registry, FakeGateway(), recorder)

    await scheduler.start(AnalysisSettings(), [URLS[0]])

    batch_events = [e for e in recorder.events if not isinstance(e, PageEvent)]
    assert batch_events == [BatchStarted(total=1), BatchCompleted(total=1, completed=0, failed=1)]
    assert not scheduler.is_processing


@pytest.mark.asyncio()
async def test_scheduler_can_run_again_after_batch(registry, recorder):
    registry.add_many(URLS[:2])
    scheduler = make_scheduler(registry, FakeGateway(), recorder)

    await scheduler.start(AnalysisSettings(), URLS[:2])
    for url in URLS[:2]:
        registry.update_status(url, PageStatus.PENDING, clear_reports=True)
    await scheduler.start(AnalysisSettings(), URLS[:2])

    assert len(recorder.of_type(BatchCompleted)) == 2
    assert not scheduler.is_processing


@pytest.mark.asyncio()
async def test_empty_url_list_is_ignored(registry, recorder):
    scheduler = make_scheduler(registry, FakeGateway(), recorder)
    await scheduler.start(AnalysisSettings(), [])
    assert recorder.events == []
