# speed_scout/gateway/pagespeed.py
"""
PageSpeed gateway: direct PageSpeed Insights API calls (authenticated mode)
and calls through the share server's ``/api/analyze`` proxy (default mode).
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, List, Optional, Tuple

from aiohttp import ClientError, ClientSession, ClientTimeout

from speed_scout.config import ScoutConfig
from speed_scout.errors import AnalysisError, ErrorKind
from speed_scout.gateway.models import Device, DeviceReports, Report
from speed_scout.logger import get_logger
from speed_scout.utils import is_valid_url

DEVICES: Tuple[Device, ...] = ("mobile", "desktop")


class PageSpeedGateway:
    """Async client for one or many analyses; reuse a single session per batch."""

    def __init__(self, config: ScoutConfig, session: Optional[ClientSession] = None) -> None:
        self.config = config
        self.session = session
        self._owns_session = session is None
        self.logger = get_logger("gateway")

    async def __aenter__(self) -> PageSpeedGateway:
        if self.session is None:
            self.session = ClientSession(timeout=ClientTimeout(total=self.config.timeout))
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._owns_session and self.session and not self.session.closed:
            await self.session.close()

    # ------------------------------------------------------------------ #
    # authenticated mode                                                 #
    # ------------------------------------------------------------------ #

    async def analyze(
        self,
        url: str,
        device: Device,
        api_key: Optional[str] = None,
        *,
        locale: Optional[str] = None,
    ) -> Report:
        """Call the PageSpeed Insights API directly for one device class."""
        if not is_valid_url(url):
            raise AnalysisError(ErrorKind.UPSTREAM, "Invalid URL parameter")
        if device not in DEVICES:
            raise AnalysisError(ErrorKind.UPSTREAM, "Invalid strategy parameter")
        key = api_key or self.config.api_key
        if not key:
            raise AnalysisError(ErrorKind.UNAUTHORIZED, "API Key is required")

        params: List[Tuple[str, str]] = [("url", url), ("strategy", device)]
        params += [("category", c) for c in self.config.categories]
        params += [("locale", locale or self.config.locale), ("key", key)]

        self.logger.debug("Calling PageSpeed API: %s (%s)", url, device)
        status, text = await self._request("GET", str(self.config.pagespeed_url), params=params)
        if status != 200:
            raise AnalysisError.from_status(status, f"PageSpeed API error: {status} {text}".strip(), text)

        data = self._decode(text)
        if not isinstance(data, dict) or "lighthouseResult" not in data:
            raise AnalysisError(ErrorKind.UPSTREAM, "Invalid PageSpeed API response", status=status)
        self.logger.debug("PageSpeed API success: %s (%s)", url, device)
        return data

    # ------------------------------------------------------------------ #
    # default mode                                                       #
    # ------------------------------------------------------------------ #

    async def analyze_both(self, url: str) -> DeviceReports:
        """Fetch mobile and desktop reports through the proxy in one call."""
        if not is_valid_url(url):
            raise AnalysisError(ErrorKind.UPSTREAM, "Invalid URL parameter")
        self.logger.debug("Analyzing mobile + desktop via proxy: %s", url)
        mobile, desktop = await asyncio.gather(
            self._fetch_via_proxy(url, "mobile"),
            self._fetch_via_proxy(url, "desktop"),
        )
        return {"mobile": mobile, "desktop": desktop}

    async def _fetch_via_proxy(self, url: str, device: Device) -> Report:
        endpoint = f"{self.config.workers_base}/api/analyze"
        payload = {"url": url, "strategy": device, "locale": self.config.locale}
        status, text = await self._request("POST", endpoint, json=payload)
        if status == 200:
            data = self._decode(text)
            if not isinstance(data, dict):
                raise AnalysisError(ErrorKind.UPSTREAM, "Invalid proxy response", status=status)
            return data
        if status == 429:
            raise AnalysisError(
                ErrorKind.RATE_LIMITED,
                "Test Mode daily limit reached. Please use your own API Key.",
                status=status,
                body=text,
            )
        if status == 503:
            raise AnalysisError(
                ErrorKind.UPSTREAM,
                "Workers monthly limit reached. Please try again later.",
                status=status,
                body=text,
            )
        detail = ""
        error_data = self._decode(text)
        if isinstance(error_data, dict):
            detail = str(error_data.get("error") or "")
        raise AnalysisError.from_status(status, f"Workers API error: {status} {detail}".strip(), text)

    # ------------------------------------------------------------------ #

    async def _request(self, method: str, url: str, **kwargs: Any) -> Tuple[int, str]:
        if not self.session:
            raise RuntimeError("Session not initialized")
        try:
            async with self.session.request(method, url, **kwargs) as resp:
                return resp.status, await resp.text()
        except asyncio.TimeoutError as exc:
            raise AnalysisError(ErrorKind.UPSTREAM, f"Request timed out: {url}") from exc
        except ClientError as exc:
            raise AnalysisError(ErrorKind.UPSTREAM, f"Network error: {exc}") from exc

    @staticmethod
    def _decode(text: str) -> Any:
        try:
            return json.loads(text)
        except ValueError:
            return None


__all__ = ["PageSpeedGateway", "DEVICES"]
