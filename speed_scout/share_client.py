# speed_scout/share_client.py
"""
Client side of sharing: uploads each page's report document to the share
server and creates a snapshot from the remembered report ids.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Sequence

from aiohttp import ClientError, ClientSession, FormData

from speed_scout.errors import InvalidInput, SpeedScoutError
from speed_scout.hasher import hash_report
from speed_scout.logger import get_logger
from speed_scout.registry import PageRegistry, PageStatus
from speed_scout.storage.report_store import compress_report

logger = get_logger("share_client")


class ShareError(SpeedScoutError):
    """The share server refused or could not be reached."""


class ShareClient:
    def __init__(self, session: ClientSession, base_url: str) -> None:
        self.session = session
        self.base_url = base_url.rstrip("/")
        # url -> hash of the last uploaded report document
        self.report_ids: Dict[str, str] = {}

    async def upload_report(self, url: str, report: Any) -> str:
        """Upload *report* for *url* unless the same content was uploaded last time."""
        report_id = hash_report(report)
        if self.report_ids.get(url) == report_id:
            logger.info("Report unchanged, skip upload: %s (%s)", url, report_id)
            return report_id

        form = FormData()
        form.add_field("reportId", report_id)
        form.add_field("url", url)
        form.add_field(
            "report",
            compress_report(report),
            filename=f"{report_id}.json.gz",
            content_type="application/gzip",
        )
        result = await self._post("/api/upload-report", data=form)
        self.report_ids[url] = report_id
        logger.info("Report uploaded: %s (%s, %s)", url, report_id, result.get("status"))
        return report_id

    async def create_share(
        self, urls: Sequence[str], config: Optional[Mapping[str, Any]] = None, *, old_share_id: Optional[str] = None
    ) -> str:
        if not urls:
            raise InvalidInput("urls cannot be empty")
        payload: Dict[str, Any] = {"urls": list(urls), "config": dict(config or {}), "reportIds": self.report_ids}
        if old_share_id:
            payload["oldShareId"] = old_share_id
        result = await self._post("/api/share", json=payload)
        return result["shareId"]

    async def share_registry(
        self, registry: PageRegistry, config: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """Upload reports of every successful page, then create a snapshot of all URLs."""
        pages = registry.get_all()
        urls = [p.url for p in pages]
        if not urls:
            raise InvalidInput("urls cannot be empty")
        for page in pages:
            if page.status is PageStatus.SUCCESS and page.has_reports:
                await self.upload_report(page.url, page.reports)
        share_id = await self.create_share(urls, config)
        logger.info("Share created: %s (%d urls, %d reports)", share_id, len(urls), len(self.report_ids))
        return {
            "shareId": share_id,
            "shareUrl": self.share_url(share_id),
            "totalUrls": len(urls),
            "completedReports": len(self.report_ids),
        }

    async def fetch_share(self, share_id: str) -> Dict[str, Any]:
        try:
            async with self.session.get(f"{self.base_url}/share", params={"id": share_id}) as resp:
                data = await resp.json(content_type=None)
                if resp.status != 200:
                    raise ShareError(f"Share fetch failed: {resp.status} {data.get('error', '')}".strip())
                return data
        except ClientError as exc:
            raise ShareError(f"Share fetch failed: {exc}") from exc

    def share_url(self, share_id: str, app_url: Optional[str] = None) -> str:
        return f"{(app_url or self.base_url).rstrip('/')}/?share={share_id}"

    def load_from_share(self, share_data: Mapping[str, Any]) -> None:
        """Remember report ids from a loaded snapshot (legacy and ``{hash, domain}`` refs)."""
        self.report_ids = {}
        for url, ref in (share_data.get("reportIds") or {}).items():
            self.report_ids[url] = ref.get("hash") if isinstance(ref, Mapping) else ref
        logger.info("Loaded %d report ids from share", len(self.report_ids))

    def clear(self) -> None:
        self.report_ids = {}

    async def _post(self, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            async with self.session.post(f"{self.base_url}{path}", **kwargs) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise ShareError(f"Request to {path} failed: {resp.status} {text}")
                return await resp.json(content_type=None)
        except ClientError as exc:
            raise ShareError(f"Request to {path} failed: {exc}") from exc


__all__ = ["ShareClient", "ShareError"]
