from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from atelier.infra.cache import ResponseCache, create_response_cache
from atelier.infra.metrics import Metrics, configure_metrics
from atelier.infra.storage import StorageBackend, new_storage_backend


@dataclass
class AppServices:
    """Typed container for runtime services stored on `app.state.services`."""

    storage: StorageBackend
    cache: ResponseCache
    metrics: Metrics


def build_app_services(app_settings, *, metrics: Metrics | None = None) -> AppServices:
    return AppServices(
        storage=new_storage_backend(app_settings),
        cache=create_response_cache(app_settings),
        metrics=metrics or configure_metrics(app_settings.metrics_enabled),
    )


def resolve_services(container_like: Any) -> AppServices | None:
    if isinstance(container_like, AppServices):
        return container_like
    if container_like is None:
        return None
    state = getattr(container_like, "state", container_like)
    return getattr(state, "services", None)
