# speed_scout/share.py
"""
Share snapshots: immutable, time-bounded references to a set of URLs and
their already-uploaded reports.

A record is stored once under ``share:meta:{share_id}`` and carries its own
``expiresAt`` (epoch milliseconds); the KV store is also told to evict it
after the same TTL. Reads check the stored field, so a record that has not
been evicted yet is still reported as expired.
"""
from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from speed_scout.errors import InvalidInput, ShareExpired, ShareNotFound, SpeedScoutError
from speed_scout.hasher import derive_share_id
from speed_scout.logger import get_logger
from speed_scout.storage.kv import KVStore
from speed_scout.storage.report_store import ReportStore, partition_key_for
from speed_scout.utils import validate_partition_key, validate_report_id, validate_share_id

logger = get_logger("share")

SHARE_KEY_PREFIX = "share:meta:"
DEFAULT_TTL_DAYS = 7

# new format: {"hash": ..., "domain": ...}; legacy format: bare hash string
ReportRef = Union[str, Mapping[str, Any]]


def share_key(share_id: str) -> str:
    return f"{SHARE_KEY_PREFIX}{share_id}"


@dataclass(slots=True)
class Snapshot:
    urls: List[str]
    config: Dict[str, Any]
    reports: Dict[str, Any]
    created_at: int
    expires_at: int
    missing: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "urls": self.urls,
            "config": self.config,
            "reports": self.reports,
            "metadata": {"createdAt": self.created_at, "expiresAt": self.expires_at},
        }


class ShareSnapshotService:
    def __init__(
        self,
        kv: KVStore,
        reports: ReportStore,
        *,
        ttl_days: int = DEFAULT_TTL_DAYS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.kv = kv
        self.reports = reports
        self.ttl_seconds = ttl_days * 24 * 60 * 60
        self._clock = clock

    def _now_ms(self) -> int:
        return int(round(self._clock() * 1000))

    async def create_snapshot(
        self,
        urls: Sequence[str],
        config: Optional[Mapping[str, Any]],
        report_refs: Optional[Mapping[str, ReportRef]],
        *,
        old_share_id: Optional[str] = None,
    ) -> str:
        """Persist a snapshot and return its id; identical input gives the same id."""
        if not isinstance(urls, (list, tuple)) or not urls:
            raise InvalidInput("urls cannot be empty")
        share_id = derive_share_id(urls, report_refs)
        report_refs = dict(report_refs or {})
        created_at = self._now_ms()
        record = {
            "urls": list(urls),
            "config": dict(config or {}),
            "reportIds": self._capture_refs(report_refs),
            "createdAt": created_at,
            "expiresAt": created_at + self.ttl_seconds * 1000,
        }
        await self.kv.put(share_key(share_id), json.dumps(record, ensure_ascii=False), ttl=self.ttl_seconds)

        if old_share_id and old_share_id != share_id:
            logger.debug("Snapshot %s supersedes %s", share_id, old_share_id)
        logger.info("Share created: %s (%d urls, %d reports)", share_id, len(urls), len(record["reportIds"]))
        return share_id

    async def get_snapshot(self, share_id: str) -> Snapshot:
        """Resolve a snapshot; blobs that cannot be found are left out."""
        try:
            validate_share_id(share_id)
        except InvalidInput:
            # never used as a storage key; indistinguishable from an unknown id
            raise ShareNotFound("Share not found") from None
        raw = await self.kv.get(share_key(share_id))
        if raw is None:
            raise ShareNotFound("Share not found")
        meta = json.loads(raw)
        if self._now_ms() > int(meta.get("expiresAt", 0)):
            raise ShareExpired("Share has expired")

        reports: Dict[str, Any] = {}
        missing: List[str] = []
        for url, ref in (meta.get("reportIds") or {}).items():
            resolved = self._resolve_ref(url, ref)
            if resolved is None:
                missing.append(url)
                continue
            domain, content_hash = resolved
            report = await self.reports.load_report(domain, content_hash)
            if report is None:
                logger.debug("Report blob missing for %s (%s/%s)", url, domain, content_hash)
                missing.append(url)
                continue
            reports[url] = report

        return Snapshot(
            urls=list(meta.get("urls") or []),
            config=dict(meta.get("config") or {}),
            reports=reports,
            created_at=int(meta.get("createdAt", 0)),
            expires_at=int(meta["expiresAt"]),
            missing=missing,
        )

    # ------------------------------------------------------------------ #

    @staticmethod
    def _capture_refs(report_refs: Mapping[str, ReportRef]) -> Dict[str, Dict[str, str]]:
        captured: Dict[str, Dict[str, str]] = {}
        for url, ref in report_refs.items():
            content_hash = ref.get("hash") if isinstance(ref, Mapping) else ref
            try:
                validate_report_id(content_hash)
                domain = partition_key_for(url)
            except InvalidInput as exc:
                logger.warning("Skipping report reference for %s: %s", url, exc)
                continue
            captured[url] = {"hash": content_hash, "domain": domain}
        return captured

    @staticmethod
    def _resolve_ref(url: str, ref: Any) -> Optional[Tuple[str, str]]:
        try:
            if isinstance(ref, Mapping) and ref.get("hash"):
                domain = ref.get("domain") or partition_key_for(url)
                return validate_partition_key(domain), validate_report_id(ref["hash"])
            return partition_key_for(url), validate_report_id(ref)
        except SpeedScoutError as exc:
            logger.warning("Unresolvable report reference for %s: %s", url, exc)
            return None


__all__ = ["Snapshot", "ShareSnapshotService", "share_key", "SHARE_KEY_PREFIX", "DEFAULT_TTL_DAYS"]
