# speed_scout/server/app.py
"""
aiohttp application exposing analysis, report upload and share endpoints.

    POST /api/analyze        {url, strategy, locale} -> PageSpeed report
    POST /api/upload-report  multipart reportId, url, report -> {reportId, domain, status}
    POST /api/share          {urls, config, reportIds, oldShareId?} -> {shareId}
    GET  /share?id=...       -> {urls, config, reports, metadata}

Handlers keep no state between requests beyond the injected stores.
"""
from __future__ import annotations

from typing import AsyncIterator, Optional

from aiohttp import web

from speed_scout.config import ScoutConfig
from speed_scout.errors import AnalysisError, ErrorKind, InvalidInput, ShareExpired, ShareNotFound
from speed_scout.gateway.models import AnalysisGateway
from speed_scout.gateway.pagespeed import DEVICES, PageSpeedGateway
from speed_scout.logger import get_logger
from speed_scout.server import responses
from speed_scout.share import ShareSnapshotService
from speed_scout.storage.kv import KVStore, MemoryKVStore, RedisKVStore
from speed_scout.storage.objects import FileObjectStore, MemoryObjectStore, ObjectStore
from speed_scout.storage.report_store import ReportStore, partition_key_for
from speed_scout.utils import validate_report_id, validate_share_request

logger = get_logger("server")

CONFIG_KEY = web.AppKey("config", ScoutConfig)
REPORTS_KEY = web.AppKey("reports", ReportStore)
SHARES_KEY = web.AppKey("shares", ShareSnapshotService)
GATEWAY_KEY = web.AppKey("gateway", object)

MAX_UPLOAD_BYTES = 20 * 1024 * 1024


# --------------------------------------------------------------------------- #
#                                 Middleware                                  #
# --------------------------------------------------------------------------- #


@web.middleware
async def cors_errors_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Answer preflights, attach CORS headers, turn errors into JSON bodies."""
    if request.method == "OPTIONS":
        return responses.preflight()
    try:
        return await handler(request)
    except InvalidInput as exc:
        return responses.error(str(exc), 400)
    except web.HTTPRequestEntityTooLarge:
        return responses.error("Request body too large", 413)
    except web.HTTPException as exc:
        if exc.status in (404, 405):
            return responses.not_found()
        return responses.error(exc.reason, exc.status)
    except Exception as exc:
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return responses.server_error(message=str(exc))


# --------------------------------------------------------------------------- #
#                                  Handlers                                   #
# --------------------------------------------------------------------------- #


async def _json_body(request: web.Request):
    try:
        return await request.json()
    except ValueError as exc:
        raise InvalidInput("Invalid JSON body") from exc


async def handle_analyze(request: web.Request) -> web.Response:
    body = await _json_body(request)
    if not isinstance(body, dict):
        raise InvalidInput("Invalid URL parameter")
    target = body.get("url")
    strategy = body.get("strategy", "mobile")
    config = request.app[CONFIG_KEY]
    locale = body.get("locale") or config.locale

    if not target or not isinstance(target, str):
        return responses.error("Invalid URL parameter")
    if strategy not in DEVICES:
        return responses.error("Invalid strategy parameter")
    if not config.api_key:
        return responses.server_error("Server configuration error: Missing API Key")

    gateway: AnalysisGateway = request.app[GATEWAY_KEY]
    try:
        report = await gateway.analyze(target, strategy, config.api_key, locale=str(locale))
    except AnalysisError as exc:
        if exc.kind is ErrorKind.RATE_LIMITED:
            return responses.error("Daily API limit reached", 429)
        logger.error("Analyze failed for %s (%s): %s", target, strategy, exc)
        return responses.server_error("Analysis failed", message=str(exc))
    return responses.json_response(report)


async def handle_upload_report(request: web.Request) -> web.Response:
    form = await request.post()
    report_id = validate_report_id(form.get("reportId"))
    url = form.get("url")
    if not url or not isinstance(url, str):
        return responses.error("url is required")
    field = form.get("report")
    if field is None or field == "":
        return responses.error("report file is required")
    domain = partition_key_for(url)

    if isinstance(field, web.FileField):
        data = field.file.read()
    elif isinstance(field, str):
        data = field.encode("latin-1")
    else:
        data = bytes(field)

    result = await request.app[REPORTS_KEY].put(domain, report_id, data)
    return responses.json_response({"reportId": report_id, "domain": domain, "status": result.status})


async def handle_create_share(request: web.Request) -> web.Response:
    body = validate_share_request(await _json_body(request))
    share_id = await request.app[SHARES_KEY].create_snapshot(
        body["urls"],
        body.get("config") or {},
        body.get("reportIds"),
        old_share_id=body.get("oldShareId"),
    )
    return responses.json_response({"shareId": share_id})


async def handle_get_share(request: web.Request) -> web.Response:
    share_id = request.query.get("id")
    if not share_id:
        return responses.error("id parameter is required")
    try:
        snapshot = await request.app[SHARES_KEY].get_snapshot(share_id)
    except ShareNotFound as exc:
        return responses.not_found(str(exc))
    except ShareExpired as exc:
        return responses.gone(str(exc))
    return responses.json_response(snapshot.to_dict())


# --------------------------------------------------------------------------- #
#                                 App factory                                 #
# --------------------------------------------------------------------------- #


def build_stores(config: ScoutConfig) -> tuple[KVStore, ObjectStore]:
    """KV on Redis when configured, otherwise in memory; blobs on disk."""
    kv: KVStore = RedisKVStore.from_url(config.redis_url) if config.redis_url else MemoryKVStore()
    objects: ObjectStore = FileObjectStore(config.storage_dir)
    return kv, objects


def create_app(
    config: ScoutConfig,
    *,
    kv: Optional[KVStore] = None,
    objects: Optional[ObjectStore] = None,
    gateway: Optional[AnalysisGateway] = None,
    clock=None,
) -> web.Application:
    app = web.Application(middlewares=[cors_errors_middleware], client_max_size=MAX_UPLOAD_BYTES)
    report_store = ReportStore(objects if objects is not None else MemoryObjectStore())
    share_kwargs = {"ttl_days": config.share_ttl_days}
    if clock is not None:
        share_kwargs["clock"] = clock
    app[CONFIG_KEY] = config
    app[REPORTS_KEY] = report_store
    app[SHARES_KEY] = ShareSnapshotService(kv if kv is not None else MemoryKVStore(), report_store, **share_kwargs)

    if gateway is not None:
        app[GATEWAY_KEY] = gateway
    else:
        app.cleanup_ctx.append(_gateway_ctx)

    app.router.add_post("/api/analyze", handle_analyze)
    app.router.add_post("/api/upload-report", handle_upload_report)
    app.router.add_post("/api/share", handle_create_share)
    app.router.add_get("/share", handle_get_share)
    return app


async def _gateway_ctx(app: web.Application) -> AsyncIterator[None]:
    async with PageSpeedGateway(app[CONFIG_KEY]) as gateway:
        app[GATEWAY_KEY] = gateway
        yield


def run_server(config: ScoutConfig, *, host: Optional[str] = None, port: Optional[int] = None) -> None:
    kv, objects = build_stores(config)
    app = create_app(config, kv=kv, objects=objects)
    logger.info("Serving on %s:%s", host or config.host, port or config.port)
    web.run_app(app, host=host or config.host, port=port or config.port, print=None)


__all__ = ["create_app", "run_server", "build_stores", "CONFIG_KEY", "REPORTS_KEY", "SHARES_KEY", "GATEWAY_KEY"]
