# File: tests/test_gateway.py
from __future__ import annotations

from typing import AsyncIterator, List

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web

from conftest import make_report, serve_app
from speed_scout.config import ScoutConfig
from speed_scout.errors import AnalysisError, ErrorKind
from speed_scout.gateway import PageSpeedGateway

OK_URL = "https://example.com/"


class Upstream:
    """Fake PageSpeed API and analyze proxy; the target URL selects the outcome."""

    def __init__(self) -> None:
        self.queries: List[list] = []
        self.proxy_bodies: List[dict] = []

    async def pagespeed(self, request: web.Request) -> web.Response:
        self.queries.append(list(request.query.items()))
        target = request.query["url"]
        if "forbidden" in target:
            return web.json_response({"error": {"message": "API key not valid"}}, status=403)
        if "limited" in target:
            return web.json_response({"error": {"message": "Quota exceeded"}}, status=429)
        if "broken" in target:
            return web.Response(text="internal", status=500)
        if "empty" in target:
            return web.json_response({"kind": "pagespeedonline#result"})
        return web.json_response(make_report(target, request.query["strategy"]))

    async def proxy(self, request: web.Request) -> web.Response:
        body = await request.json()
        self.proxy_bodies.append(body)
        target = body["url"]
        if "limited" in target:
            return web.json_response({"error": "Daily API limit reached"}, status=429)
        if "quota" in target:
            return web.Response(text="unavailable", status=503)
        if "broken" in target:
            return web.json_response({"error": "Analysis failed"}, status=500)
        return web.json_response(make_report(target, body["strategy"]))


@pytest.fixture()
def upstream() -> Upstream:
    return Upstream()


@pytest_asyncio.fixture
async def config(upstream, unused_tcp_port) -> AsyncIterator[ScoutConfig]:
    app = web.Application()
    app.router.add_get("/runPagespeed", upstream.pagespeed)
    app.router.add_post("/api/analyze", upstream.proxy)
    async for base in serve_app(app, unused_tcp_port):
        yield ScoutConfig(
            workers_url=base + "/",
            pagespeed_url=f"{base}/runPagespeed",
            locale="en",
            timeout=5.0,
        )


@pytest.mark.asyncio()
async def test_direct_call_sends_all_parameters(config, upstream):
    async with PageSpeedGateway(config) as gateway:
        report = await gateway.analyze(OK_URL, "desktop", "secret")

    assert report["lighthouseResult"]["configSettings"]["formFactor"] == "desktop"
    [query] = upstream.queries
    assert ("url", OK_URL) in query
    assert ("strategy", "desktop") in query
    assert ("key", "secret") in query
    assert ("locale", "en") in query
    assert [v for k, v in query if k == "category"] == ["performance", "accessibility", "best-practices", "seo"]


@pytest.mark.asyncio()
async def test_locale_override(config, upstream):
    async with PageSpeedGateway(config) as gateway:
        await gateway.analyze(OK_URL, "mobile", "secret", locale="zh_TW")
    assert ("locale", "zh_TW") in upstream.queries[0]


@pytest.mark.asyncio()
@pytest.mark.parametrize(
    "target, kind, status",
    [
        ("https://forbidden.example.com/", ErrorKind.UNAUTHORIZED, 403),
        ("https://limited.example.com/", ErrorKind.RATE_LIMITED, 429),
        ("https://broken.example.com/", ErrorKind.UPSTREAM, 500),
    ],
)
async def test_direct_call_classifies_failures(config, target, kind, status):
    async with PageSpeedGateway(config) as gateway:
        with pytest.raises(AnalysisError) as info:
            await gateway.analyze(target, "mobile", "secret")
    assert info.value.kind is kind
    assert info.value.status == status
    assert str(status) in str(info.value)


@pytest.mark.asyncio()
async def test_response_without_lighthouse_result(config):
    async with PageSpeedGateway(config) as gateway:
        with pytest.raises(AnalysisError, match="Invalid PageSpeed API response"):
            await gateway.analyze("https://empty.example.com/", "mobile", "secret")


@pytest.mark.asyncio()
async def test_direct_call_input_checks(config, upstream):
    async with PageSpeedGateway(config) as gateway:
        with pytest.raises(AnalysisError, match="Invalid URL"):
            await gateway.analyze("not a url", "mobile", "secret")
        with pytest.raises(AnalysisError, match="Invalid strategy"):
            await gateway.analyze(OK_URL, "tablet", "secret")
        with pytest.raises(AnalysisError) as info:
            await gateway.analyze(OK_URL, "mobile")
    assert info.value.kind is ErrorKind.UNAUTHORIZED
    assert upstream.queries == []


@pytest.mark.asyncio()
async def test_proxy_fetches_both_devices(config, upstream):
    async with PageSpeedGateway(config) as gateway:
        reports = await gateway.analyze_both(OK_URL)

    assert reports["mobile"]["lighthouseResult"]["configSettings"]["formFactor"] == "mobile"
    assert reports["desktop"]["lighthouseResult"]["configSettings"]["formFactor"] == "desktop"
    assert sorted(b["strategy"] for b in upstream.proxy_bodies) == ["desktop", "mobile"]
    assert all(b["locale"] == "en" for b in upstream.proxy_bodies)


@pytest.mark.asyncio()
@pytest.mark.parametrize(
    "target, kind, message",
    [
        ("https://limited.example.com/", ErrorKind.RATE_LIMITED, "Test Mode daily limit reached"),
        ("https://quota.example.com/", ErrorKind.UPSTREAM, "Workers monthly limit reached"),
        ("https://broken.example.com/", ErrorKind.UPSTREAM, "Workers API error: 500 Analysis failed"),
    ],
)
async def test_proxy_failures(config, target, kind, message):
    async with PageSpeedGateway(config) as gateway:
        with pytest.raises(AnalysisError) as info:
            await gateway.analyze_both(target)
    assert info.value.kind is kind
    assert message in str(info.value)


@pytest.mark.asyncio()
async def test_connection_refused_is_upstream_error():
    config = ScoutConfig(workers_url="http://localhost:9", timeout=2.0)
    async with PageSpeedGateway(config) as gateway:
        with pytest.raises(AnalysisError) as info:
            await gateway.analyze_both(OK_URL)
    assert info.value.kind is ErrorKind.UPSTREAM
    assert "Network error" in str(info.value)


@pytest.mark.asyncio()
async def test_borrowed_session_is_left_open(config):
    async with aiohttp.ClientSession() as session:
        async with PageSpeedGateway(config, session=session) as gateway:
            await gateway.analyze(OK_URL, "mobile", "secret")
        assert not session.closed
