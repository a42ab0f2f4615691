from fastapi import Request

from atelier.domain.timeline.schedule import PaymentSchedule
from atelier.infra.cache import ResponseCache
from atelier.infra.metrics import Metrics
from atelier.infra.storage import StorageBackend
from atelier.services import AppServices, resolve_services
from atelier.settings import settings


def get_services(request: Request) -> AppServices:
    services = resolve_services(request.app)
    if services is None:
        raise RuntimeError("Application services are not configured")
    return services


def get_cache(request: Request) -> ResponseCache:
    return get_services(request).cache


def get_storage(request: Request) -> StorageBackend:
    return get_services(request).storage


def get_metrics(request: Request) -> Metrics:
    return get_services(request).metrics


def get_payment_schedule(request: Request) -> PaymentSchedule:
    app_settings = getattr(request.app.state, "app_settings", None) or settings
    return PaymentSchedule.from_settings(app_settings)
