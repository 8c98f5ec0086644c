# speed_scout/hasher.py
"""
Deterministic content digests for report dedup and share ids.

Report ids are the first 16 hex chars of SHA-256 over the compact JSON
serialization of a report document; share ids are the first 12 hex chars of
SHA-256 over ``{"urls": sorted urls, "reportIds": ...}`` serialized like
JavaScript's ``JSON.stringify``: compact, insertion order kept, ``reportIds``
left out when absent. Ids therefore match those issued by the Workers share API.
"""
from __future__ import annotations

import hashlib
import json
from typing import Any, Iterable, Mapping

REPORT_ID_LENGTH = 16
SHARE_ID_LENGTH = 12


def serialize_report(report: Any) -> bytes:
    """Compact UTF-8 JSON, key order preserved."""
    return json.dumps(report, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def hash_content(content: str | bytes) -> str:
    """Full SHA-256 hex digest of *content*."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def hash_report(report: Any) -> str:
    return hash_content(serialize_report(report))[:REPORT_ID_LENGTH]


def derive_share_id(urls: Iterable[str], report_ids: Mapping[str, Any] | None) -> str:
    """Same URL set and same report ids always give the same share id.

    URL order is irrelevant; the order of *report_ids* is part of the digest.
    """
    payload: dict = {"urls": sorted(urls)}
    if report_ids is not None:
        payload["reportIds"] = dict(report_ids)
    canonical = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return hash_content(canonical)[:SHARE_ID_LENGTH]


__all__ = [
    "REPORT_ID_LENGTH",
    "SHARE_ID_LENGTH",
    "serialize_report",
    "hash_content",
    "hash_report",
    "derive_share_id",
]
