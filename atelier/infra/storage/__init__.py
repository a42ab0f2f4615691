from pathlib import Path

from atelier.infra.storage.backends import (
    InMemoryStorageBackend,
    LocalStorageBackend,
    StorageBackend,
    StoredObject,
)
from atelier.settings import Settings, settings as default_settings

__all__ = [
    "InMemoryStorageBackend",
    "LocalStorageBackend",
    "StorageBackend",
    "StoredObject",
    "new_storage_backend",
]


def new_storage_backend(config: Settings | None = None) -> StorageBackend:
    config = config or default_settings
    backend = config.storage_backend.lower()
    if backend == "local":
        return LocalStorageBackend(Path(config.upload_root), public_base_url=config.public_base_url)
    if backend == "memory":
        return InMemoryStorageBackend(public_base_url=config.public_base_url)
    raise RuntimeError(f"Unsupported storage backend: {backend}")
