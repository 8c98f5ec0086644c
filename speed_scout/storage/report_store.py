# speed_scout/storage/report_store.py
"""
Content-addressed report blobs.

Blobs live at ``reports/{partition_key}/{content_hash}.json.gz``. The
partition key is the hostname of the report's URL, so the same content under
two hostnames is stored twice. A write is skipped when the key already
exists; concurrent uploads of the same content are therefore harmless, at
worst one redundant write.
"""
from __future__ import annotations

import gzip
import json
from dataclasses import dataclass
from typing import Any, Literal, Optional

from speed_scout.errors import BlobNotFound, InvalidInput
from speed_scout.hasher import serialize_report
from speed_scout.logger import get_logger
from speed_scout.storage.objects import ObjectStore
from speed_scout.utils import extract_domain, validate_partition_key, validate_report_id

logger = get_logger("storage")

GZIP_MAGIC = b"\x1f\x8b"
REPORT_CONTENT_TYPE = "application/json"
REPORT_CONTENT_ENCODING = "gzip"


@dataclass(frozen=True, slots=True)
class PutResult:
    key: str
    status: Literal["uploaded", "already_exists"]


def blob_key(partition_key: str, content_hash: str) -> str:
    """Storage key for a blob; both parts are validated first."""
    validate_report_id(content_hash)
    validate_partition_key(partition_key)
    return f"reports/{partition_key}/{content_hash}.json.gz"


def partition_key_for(url: str) -> str:
    """Hostname of *url*; reports are partitioned by it."""
    return extract_domain(url)


def compress_report(report: Any) -> bytes:
    return gzip.compress(serialize_report(report))


def decompress_report(data: bytes) -> Any:
    return json.loads(gzip.decompress(data).decode("utf-8"))


class ReportStore:
    def __init__(self, objects: ObjectStore) -> None:
        self.objects = objects

    async def put(self, partition_key: str, content_hash: str, data: bytes) -> PutResult:
        """Store gzip bytes under the content hash unless already present."""
        key = blob_key(partition_key, content_hash)
        if data[:2] != GZIP_MAGIC:
            raise InvalidInput("report must be gzip-compressed")

        if await self.objects.head(key) is not None:
            logger.debug("Report already stored: %s", key)
            return PutResult(key, "already_exists")

        await self.objects.put(
            key,
            data,
            content_type=REPORT_CONTENT_TYPE,
            content_encoding=REPORT_CONTENT_ENCODING,
        )
        logger.info("Report stored: %s (%d bytes)", key, len(data))
        return PutResult(key, "uploaded")

    async def get(self, partition_key: str, content_hash: str) -> bytes:
        """Compressed bytes of one blob; the caller decompresses."""
        key = blob_key(partition_key, content_hash)
        data = await self.objects.get(key)
        if data is None:
            raise BlobNotFound(key)
        return data

    async def load_report(self, partition_key: str, content_hash: str) -> Optional[Any]:
        """Decoded report document, or None when the blob is missing."""
        try:
            data = await self.get(partition_key, content_hash)
        except BlobNotFound:
            return None
        return decompress_report(data)


__all__ = [
    "PutResult",
    "ReportStore",
    "blob_key",
    "partition_key_for",
    "compress_report",
    "decompress_report",
    "REPORT_CONTENT_TYPE",
    "REPORT_CONTENT_ENCODING",
]
