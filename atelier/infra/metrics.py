import logging

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)


class Metrics:
    def __init__(self, enabled: bool = False) -> None:
        self._configure(enabled)

    def _configure(self, enabled: bool) -> None:
        self.enabled = enabled
        self.registry = CollectorRegistry(auto_describe=True)
        if not enabled:
            self.commission_requests = None
            self.proposals = None
            self.timeline_updates = None
            self.milestone_payments = None
            self.messages = None
            self.http_requests = None
            self.http_latency = None
            return

        self.commission_requests = Counter(
            "commission_requests_total",
            "Commission request lifecycle events.",
            ["action"],
            registry=self.registry,
        )
        self.proposals = Counter(
            "proposals_total",
            "Proposal negotiation events.",
            ["action"],
            registry=self.registry,
        )
        self.timeline_updates = Counter(
            "timeline_updates_total",
            "Timeline updates appended by stage.",
            ["stage"],
            registry=self.registry,
        )
        self.milestone_payments = Counter(
            "milestone_payments_total",
            "Milestone payment attempts by result.",
            ["result"],
            registry=self.registry,
        )
        self.messages = Counter(
            "messages_total",
            "Messages sent or blocked by the messaging gate.",
            ["result"],
            registry=self.registry,
        )
        self.http_requests = Counter(
            "http_requests_total",
            "HTTP responses by method, route and status class.",
            ["method", "path", "status_class"],
            registry=self.registry,
        )
        self.http_latency = Histogram(
            "http_request_latency_seconds",
            "HTTP request latency in seconds.",
            ["method", "path", "status_class"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10),
            registry=self.registry,
        )

    def record_request(self, action: str) -> None:
        if not self.enabled or self.commission_requests is None:
            return
        self.commission_requests.labels(action=action or "unknown").inc()

    def record_proposal(self, action: str, count: int = 1) -> None:
        if not self.enabled or self.proposals is None:
            return
        if count <= 0:
            return
        self.proposals.labels(action=action or "unknown").inc(count)

    def record_timeline_update(self, stage: str) -> None:
        if not self.enabled or self.timeline_updates is None:
            return
        self.timeline_updates.labels(stage=stage or "unknown").inc()

    def record_payment(self, result: str) -> None:
        if not self.enabled or self.milestone_payments is None:
            return
        self.milestone_payments.labels(result=result or "unknown").inc()

    def record_message(self, result: str) -> None:
        if not self.enabled or self.messages is None:
            return
        self.messages.labels(result=result or "unknown").inc()

    def record_http(self, method: str, path: str, status_code: int, duration_seconds: float) -> None:
        if not self.enabled or self.http_requests is None or self.http_latency is None:
            return
        status_class = f"{status_code // 100}xx" if status_code else "unknown"
        self.http_requests.labels(method=method, path=path, status_class=status_class).inc()
        self.http_latency.labels(method=method, path=path, status_class=status_class).observe(
            max(0.0, float(duration_seconds))
        )

    def render(self) -> tuple[bytes, str]:
        if not self.enabled:
            return b"metrics_disabled 1\n", "text/plain; version=0.0.4"
        return generate_latest(self.registry), CONTENT_TYPE_LATEST


def configure_metrics(enabled: bool) -> Metrics:
    return Metrics(enabled=enabled)
