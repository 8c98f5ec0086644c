# File: tests/conftest.py
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Dict, List, Optional, Set

import pytest
from aiohttp import web

from speed_scout.config import ScoutConfig
from speed_scout.errors import AnalysisError, ErrorKind
from speed_scout.events import EventRecorder
from speed_scout.registry import PageRegistry
from speed_scout.storage.kv import MemoryKVStore
from speed_scout.storage.objects import MemoryObjectStore
from speed_scout.storage.report_store import ReportStore


def pytest_configure(config):
    """Register custom markers so that `--strict-markers` does not fail."""
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow (deselect with '-m \"not slow\"')",
    )


def make_report(url: str, device: str, score: float = 0.9) -> dict:
    """Minimal PageSpeed-shaped report."""
    return {
        "id": url,
        "lighthouseResult": {
            "finalUrl": url,
            "configSettings": {"formFactor": device},
            "categories": {"performance": {"score": score}},
        },
    }


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGateway:
    """In-process AnalysisGateway.

    ``delays`` maps URL -> seconds to sleep; ``failures`` maps URL -> ErrorKind.
    Records every call and the highest number of URLs in flight at once.
    """

    def __init__(
        self,
        *,
        delays: Optional[Dict[str, float]] = None,
        failures: Optional[Dict[str, ErrorKind]] = None,
        default_delay: float = 0.0,
    ) -> None:
        self.delays = delays or {}
        self.failures = failures or {}
        self.default_delay = default_delay
        self.calls: List[tuple] = []
        self.started: List[str] = []
        self._in_flight: Set[str] = set()
        self.max_in_flight = 0

    async def _run(self, url: str, device: str) -> dict:
        await asyncio.sleep(self.delays.get(url, self.default_delay))
        kind = self.failures.get(url)
        if kind is not None:
            status = {ErrorKind.UNAUTHORIZED: 403, ErrorKind.RATE_LIMITED: 429}.get(kind, 500)
            raise AnalysisError(kind, f"PageSpeed API error: {status}", status=status)
        return make_report(url, device)

    async def analyze(self, url, device, api_key=None, *, locale=None):
        self.calls.append(("analyze", url, device, api_key))
        return await self._run(url, device)

    async def analyze_both(self, url):
        self.calls.append(("analyze_both", url))
        self.started.append(url)
        self._in_flight.add(url)
        self.max_in_flight = max(self.max_in_flight, len(self._in_flight))
        try:
            mobile = await self._run(url, "mobile")
            return {"mobile": mobile, "desktop": make_report(url, "desktop")}
        finally:
            self._in_flight.discard(url)


async def serve_app(app: web.Application, port: int) -> AsyncIterator[str]:
    """Start *app* on *port*, yield base URL, ensure cleanup."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "localhost", port)
    await site.start()
    try:
        yield f"http://localhost:{port}"
    finally:
        await runner.cleanup()


@pytest.fixture()
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture()
def registry(recorder) -> PageRegistry:
    return PageRegistry(recorder)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def object_store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture()
def report_store(object_store) -> ReportStore:
    return ReportStore(object_store)


@pytest.fixture()
def kv_store() -> MemoryKVStore:
    # store-level eviction is pinned to a fixed clock so that expiry checks
    # exercise the stored expiresAt field
    return MemoryKVStore(clock=lambda: 0.0)


@pytest.fixture()
def basic_config(tmp_path) -> ScoutConfig:
    return ScoutConfig(
        workers_url="http://localhost:9",
        api_key="server-key",
        timeout=2.0,
        launch_interval=0.01,
        storage_dir=tmp_path / "data",
    )
