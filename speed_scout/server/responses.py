# speed_scout/server/responses.py
"""
JSON response helpers. Every response carries the permissive CORS headers.
"""
from __future__ import annotations

from typing import Any, Mapping

from aiohttp import web

CORS_HEADERS: Mapping[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def json_response(data: Any, status: int = 200) -> web.Response:
    return web.json_response(data, status=status, headers=CORS_HEADERS)


def error(message: str, status: int = 400, **extra: Any) -> web.Response:
    return json_response({"error": message, **extra}, status)


def not_found(message: str = "Not Found") -> web.Response:
    return error(message, 404)


def gone(message: str = "Resource expired") -> web.Response:
    return error(message, 410)


def server_error(message: str = "Internal Server Error", **extra: Any) -> web.Response:
    return error(message, 500, **extra)


def preflight() -> web.Response:
    return web.Response(status=204, headers=CORS_HEADERS)


__all__ = ["CORS_HEADERS", "json_response", "error", "not_found", "gone", "server_error", "preflight"]
