# speed_scout/registry.py
"""
In-memory page registry: the single source of truth for URL status and reports.

Every mutation emits a :class:`~speed_scout.events.PageEvent` and a fresh
statistics snapshot through the injected sink.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from speed_scout.events import EventSink, NullSink, PageEvent
from speed_scout.logger import get_logger

logger = get_logger("registry")

DEVICE_CLASSES = ("mobile", "desktop")


class PageStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


_ALLOWED = {
    PageStatus.PENDING: {PageStatus.PENDING, PageStatus.PROCESSING},
    PageStatus.PROCESSING: {PageStatus.SUCCESS, PageStatus.FAILED},
    PageStatus.SUCCESS: {PageStatus.PENDING},
    PageStatus.FAILED: {PageStatus.PENDING},
}


def _empty_reports() -> Dict[str, Optional[dict]]:
    return {device: None for device in DEVICE_CLASSES}


@dataclass(slots=True)
class Page:
    """One analyzed (or to-be-analyzed) URL."""

    url: str
    status: PageStatus = PageStatus.PENDING
    reports: Dict[str, Optional[dict]] = field(default_factory=_empty_reports)
    error: Optional[str] = None
    added_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def has_reports(self) -> bool:
        return any(self.reports.get(d) for d in DEVICE_CLASSES)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "status": self.status.value,
            "reports": dict(self.reports),
            "error": self.error,
            "addedAt": self.added_at,
        }


class PageRegistry:
    """Status store keyed by URL.

    Status may only move ``pending -> processing -> success|failed`` and from
    a terminal state back to ``pending``; other transitions are refused.
    """

    def __init__(self, events: EventSink | None = None) -> None:
        self._pages: Dict[str, Page] = {}
        self._events = events or NullSink()

    def __len__(self) -> int:
        return len(self._pages)

    def __contains__(self, url: object) -> bool:
        return url in self._pages

    # ------------------------------------------------------------------ #
    # mutation                                                           #
    # ------------------------------------------------------------------ #

    def add(self, url: str) -> bool:
        if url in self._pages:
            logger.warning("URL already exists: %s", url)
            return False
        page = Page(url=url)
        self._pages[url] = page
        logger.debug("URL added: %s", url)
        self._emit("added", url, page.status)
        return True

    def add_many(self, urls: Iterable[str]) -> int:
        return sum(1 for url in urls if self.add(url))

    def remove(self, url: str) -> bool:
        if self._pages.pop(url, None) is None:
            logger.warning("URL not found: %s", url)
            return False
        self._emit("removed", url)
        return True

    def rename(self, old_url: str, new_url: str) -> bool:
        if old_url not in self._pages:
            logger.warning("Old URL not found: %s", old_url)
            return False
        if old_url == new_url:
            return True
        if new_url in self._pages:
            logger.warning("New URL already exists: %s", new_url)
            return False
        page = self._pages.pop(old_url)
        page.url = new_url
        self._pages[new_url] = page
        self._emit("renamed", new_url, page.status, {"old_url": old_url})
        return True

    def update_status(
        self,
        url: str,
        status: PageStatus | str,
        *,
        reports: Optional[Mapping[str, Optional[dict]]] = None,
        error: Optional[str] = None,
        clear_reports: bool = False,
    ) -> bool:
        """Move *url* to *status*, attaching reports or an error message.

        Returns False (and logs) for an unknown URL or a forbidden transition.
        """
        page = self._pages.get(url)
        if page is None:
            logger.error("URL not found for status update: %s", url)
            return False
        status = PageStatus(status)
        if status not in _ALLOWED[page.status]:
            logger.error("Refused status change %s -> %s for %s", page.status.value, status.value, url)
            return False

        page.status = status
        if clear_reports:
            page.reports = _empty_reports()
            page.error = None
        if reports is not None:
            for device in DEVICE_CLASSES:
                page.reports[device] = reports.get(device) or None
        if error:
            page.error = error

        logger.debug("URL status updated: %s -> %s", url, status.value)
        data: Dict[str, Any] = {}
        if status is PageStatus.SUCCESS:
            data["reports"] = dict(page.reports)
        elif status is PageStatus.FAILED:
            data["error"] = page.error
        self._emit("status", url, status, data)
        return True

    def clear(self) -> None:
        count = len(self._pages)
        self._pages.clear()
        logger.debug("All pages cleared (%d)", count)
        self._emit("cleared")

    # ------------------------------------------------------------------ #
    # queries                                                            #
    # ------------------------------------------------------------------ #

    def get(self, url: str) -> Optional[Page]:
        return self._pages.get(url)

    def get_all(self) -> List[Page]:
        return list(self._pages.values())

    def pending_urls(self) -> List[str]:
        return [p.url for p in self._pages.values() if p.status is PageStatus.PENDING]

    def statistics(self) -> Dict[str, int]:
        pages = self._pages.values()
        return {
            "total": len(self._pages),
            "pending": sum(p.status is PageStatus.PENDING for p in pages),
            "analyzing": sum(p.status is PageStatus.PROCESSING for p in pages),
            "completed": sum(p.status is PageStatus.SUCCESS for p in pages),
            "failed": sum(p.status is PageStatus.FAILED for p in pages),
        }

    # ------------------------------------------------------------------ #
    # JSON export / import                                               #
    # ------------------------------------------------------------------ #

    def export_data(self, api_key: Optional[str] = None) -> Dict[str, Any]:
        """``{credentials: {api_key}, urls, reports}`` in insertion order."""
        reports = {
            p.url: {d: p.reports.get(d) for d in DEVICE_CLASSES}
            for p in self._pages.values()
            if p.has_reports
        }
        return {
            "credentials": {"api_key": api_key or ""},
            "urls": list(self._pages),
            "reports": reports,
        }

    def import_data(self, data: Mapping[str, Any]) -> Optional[str]:
        """Replace all pages from an export document. Returns the stored API key, if any.

        Pages with reports come back as ``success``, the rest as ``pending``.
        """
        if not isinstance(data, Mapping):
            raise ValueError("Invalid JSON data")
        urls = data.get("urls")
        if not isinstance(urls, list):
            raise ValueError("Missing or invalid urls array")
        reports = data.get("reports") or {}

        self._pages.clear()
        for url in urls:
            if not isinstance(url, str) or url in self._pages:
                continue
            page = Page(url=url)
            entry = reports.get(url) if isinstance(reports, Mapping) else None
            if isinstance(entry, Mapping):
                page.reports = {d: entry.get(d) or None for d in DEVICE_CLASSES}
                if page.has_reports:
                    page.status = PageStatus.SUCCESS
            self._pages[url] = page

        credentials = data.get("credentials")
        self._emit("imported", data={"count": len(self._pages)})
        if isinstance(credentials, Mapping):
            return credentials.get("api_key") or None
        return None

    # ------------------------------------------------------------------ #

    def _emit(
        self,
        action: str,
        url: Optional[str] = None,
        status: Optional[PageStatus] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._events.emit(PageEvent(action=action, url=url, status=status.value if status else None, data=data or {}))
        self._events.emit(PageEvent(action="statistics", data=self.statistics()))


__all__ = ["DEVICE_CLASSES", "PageStatus", "Page", "PageRegistry"]
