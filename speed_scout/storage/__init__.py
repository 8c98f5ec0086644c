"""speed_scout.storage: report blobs and share-record persistence."""

from .kv import KVStore, MemoryKVStore, RedisKVStore
from .objects import FileObjectStore, MemoryObjectStore, ObjectMeta, ObjectStore
from .report_store import PutResult, ReportStore, blob_key, compress_report, decompress_report, partition_key_for

__all__ = [
    "KVStore",
    "MemoryKVStore",
    "RedisKVStore",
    "ObjectStore",
    "ObjectMeta",
    "MemoryObjectStore",
    "FileObjectStore",
    "PutResult",
    "ReportStore",
    "blob_key",
    "partition_key_for",
    "compress_report",
    "decompress_report",
]
