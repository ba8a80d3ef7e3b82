"""
Observability metrics module.

The manager operates in two modes:
1. No-op mode: every recording call exists but does nothing
2. Active mode: counters are kept in a Prometheus registry owned by the manager

Each manager owns its registry so several app instances (tests, CLI) can
coexist in one process without duplicate-registration errors.
"""

import typing as t

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, generate_latest


class MetricsManager:
    """Central manager for billing metrics."""

    def __init__(self, enabled: bool = False):
        self.enabled = enabled
        self.registry: t.Optional[CollectorRegistry] = None
        self._initialize_metrics()

    def _initialize_metrics(self) -> None:
        if self.enabled:
            self.registry = CollectorRegistry()

            self.webhook_events_total = Counter(
                "billing_webhook_events_total",
                "Webhook events by type and outcome",
                ["event_type", "outcome"],
                registry=self.registry,
            )

            self.plan_fallback_total = Counter(
                "billing_plan_fallback_total",
                "Plan resolutions that did not come from the price table",
                ["reason"],
                registry=self.registry,
            )
        else:
            self.webhook_events_total = _DummyMetric()
            self.plan_fallback_total = _DummyMetric()

    def record_webhook_event(self, event_type: str, outcome: str) -> None:
        """
        Count one webhook delivery.

        Args:
            event_type: Stripe event type, or "unparsed" when unreadable
            outcome: processed, duplicate, ignored, malformed, retry or rejected
        """
        self.webhook_events_total.labels(event_type=event_type or "unparsed", outcome=outcome).inc()

    def record_plan_fallback(self, reason: str) -> None:
        self.plan_fallback_total.labels(reason=reason).inc()

    def render(self) -> t.Tuple[bytes, str]:
        """Exposition payload and content type for the /metrics endpoint."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST


class _DummyMetric:
    """Mimics the Prometheus metric interface."""

    def labels(self, **labels: str) -> "_DummyMetric":
        return self

    def inc(self, amount: float = 1) -> None:
        pass
