import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator


@dataclass
class StoredObject:
    key: str
    size: int
    content_type: str


class StorageBackend(ABC):
    """Abstract interface for image blob storage; the domain keeps only public URLs."""

    def __init__(self, public_base_url: str) -> None:
        self.public_base_url = public_base_url.rstrip("/")

    @abstractmethod
    async def put(
        self, *, key: str, body: AsyncIterator[bytes], content_type: str
    ) -> StoredObject:
        """Persist an object and return its metadata."""

    @abstractmethod
    async def read(self, *, key: str) -> bytes:
        """Return the object payload as bytes; raises FileNotFoundError for unknown keys."""

    @abstractmethod
    async def delete(self, *, key: str) -> None:
        """Delete an object if it exists."""

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/uploads/{key.lstrip('/')}"


class LocalStorageBackend(StorageBackend):
    def __init__(self, root: Path, public_base_url: str) -> None:
        super().__init__(public_base_url)
        self.root = root

    def _resolve(self, key: str, *, create_parents: bool) -> Path:
        root_resolved = self.root.resolve()
        path = (self.root / key.lstrip("/")).resolve()
        if not path.is_relative_to(root_resolved):
            raise ValueError("Invalid storage key")
        if create_parents:
            path.parent.mkdir(parents=True, exist_ok=True)
        return path

    async def put(
        self, *, key: str, body: AsyncIterator[bytes], content_type: str
    ) -> StoredObject:
        path = self._resolve(key, create_parents=True)
        size = 0
        try:
            with path.open("wb") as f:
                async for chunk in body:
                    size += len(chunk)
                    f.write(chunk)
        except BaseException:
            path.unlink(missing_ok=True)
            raise
        return StoredObject(key=key, size=size, content_type=content_type)

    async def read(self, *, key: str) -> bytes:
        path = self._resolve(key, create_parents=False)
        return await asyncio.to_thread(path.read_bytes)

    async def delete(self, *, key: str) -> None:
        path = self._resolve(key, create_parents=False)
        path.unlink(missing_ok=True)


class InMemoryStorageBackend(StorageBackend):
    def __init__(self, public_base_url: str = "http://testserver") -> None:
        super().__init__(public_base_url)
        self._objects: dict[str, tuple[bytes, str]] = {}

    async def put(
        self, *, key: str, body: AsyncIterator[bytes], content_type: str
    ) -> StoredObject:
        data = bytearray()
        async for chunk in body:
            data.extend(chunk)
        payload = bytes(data)
        self._objects[key] = (payload, content_type)
        return StoredObject(key=key, size=len(payload), content_type=content_type)

    async def read(self, *, key: str) -> bytes:
        try:
            payload, _ = self._objects[key]
        except KeyError as exc:
            raise FileNotFoundError(key) from exc
        return payload

    async def delete(self, *, key: str) -> None:
        self._objects.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._objects)
