# speed_scout/storage/objects.py
"""
Object stores for report blobs: in-memory (tests, single process) and a
plain directory tree on disk.
"""
from __future__ import annotations

import asyncio
import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Optional, Protocol, Tuple, Union


@dataclass(frozen=True, slots=True)
class ObjectMeta:
    size: int
    content_type: str = "application/octet-stream"
    content_encoding: Optional[str] = None


class ObjectStore(Protocol):
    async def head(self, key: str) -> Optional[ObjectMeta]: ...

    async def get(self, key: str) -> Optional[bytes]: ...

    async def put(
        self, key: str, data: bytes, *, content_type: str, content_encoding: Optional[str] = None
    ) -> None: ...

    async def delete(self, key: str) -> None: ...


class MemoryObjectStore:
    """Dict-backed store; counts writes so callers can verify dedup."""

    def __init__(self) -> None:
        self._objects: Dict[str, Tuple[bytes, ObjectMeta]] = {}
        self.put_count = 0

    def __contains__(self, key: object) -> bool:
        return key in self._objects

    def __len__(self) -> int:
        return len(self._objects)

    async def head(self, key: str) -> Optional[ObjectMeta]:
        entry = self._objects.get(key)
        return entry[1] if entry else None

    async def get(self, key: str) -> Optional[bytes]:
        entry = self._objects.get(key)
        return entry[0] if entry else None

    async def put(
        self, key: str, data: bytes, *, content_type: str, content_encoding: Optional[str] = None
    ) -> None:
        self.put_count += 1
        self._objects[key] = (bytes(data), ObjectMeta(len(data), content_type, content_encoding))

    async def delete(self, key: str) -> None:
        self._objects.pop(key, None)


class FileObjectStore:
    """Stores ``key`` at ``root/key`` with a ``.meta.json`` sidecar.

    Keys are validated by the caller; this class only refuses keys that
    would leave *root*. Blocking file I/O runs in a worker thread.
    """

    META_SUFFIX = ".meta.json"

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root).expanduser().resolve()

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise ValueError(f"object key escapes storage root: {key!r}")
        return path

    def _meta_path(self, path: Path) -> Path:
        return path.with_name(path.name + self.META_SUFFIX)

    async def head(self, key: str) -> Optional[ObjectMeta]:
        return await asyncio.to_thread(self._head_sync, self._path(key))

    def _head_sync(self, path: Path) -> Optional[ObjectMeta]:
        if not path.is_file():
            return None
        meta_path = self._meta_path(path)
        if meta_path.is_file():
            return ObjectMeta(**json.loads(meta_path.read_text(encoding="utf-8")))
        return ObjectMeta(size=path.stat().st_size)

    async def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None

    async def put(
        self, key: str, data: bytes, *, content_type: str, content_encoding: Optional[str] = None
    ) -> None:
        meta = ObjectMeta(len(data), content_type, content_encoding)
        await asyncio.to_thread(self._put_sync, self._path(key), bytes(data), meta)

    def _put_sync(self, path: Path, data: bytes, meta: ObjectMeta) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        # write-then-rename so a reader never sees a partial blob
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)
        self._meta_path(path).write_text(json.dumps(asdict(meta)), encoding="utf-8")

    async def delete(self, key: str) -> None:
        path = self._path(key)
        await asyncio.to_thread(self._delete_sync, path)

    def _delete_sync(self, path: Path) -> None:
        path.unlink(missing_ok=True)
        self._meta_path(path).unlink(missing_ok=True)


__all__ = ["ObjectMeta", "ObjectStore", "MemoryObjectStore", "FileObjectStore"]
