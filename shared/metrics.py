"""
Shared metrics configuration for the ABAC decision engine.
"""

from typing import Dict, Any, Optional
import threading

from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry, REGISTRY


class MetricsCollector:
    """Centralized metrics collector for the engine."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else REGISTRY
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up engine metrics."""

        self._metrics["service_info"] = Info(
            "abac_service",
            "Decision engine information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        self._metrics["decisions_total"] = Counter(
            "abac_decisions_total",
            "Total access decisions",
            ["decision", "reason"],
            registry=self.registry
        )

        self._metrics["evaluation_duration_seconds"] = Histogram(
            "abac_evaluation_duration_seconds",
            "Decision evaluation duration in seconds",
            registry=self.registry
        )

        # Timeouts and outages are labelled apart from genuine misses
        self._metrics["attribute_lookups_total"] = Counter(
            "abac_attribute_lookups_total",
            "Total attribute store lookups",
            ["kind", "status"],
            registry=self.registry
        )

        self._metrics["rule_set_loads_total"] = Counter(
            "abac_rule_set_loads_total",
            "Total rule set load attempts",
            ["status"],
            registry=self.registry
        )

        self._metrics["rule_set_rules"] = Gauge(
            "abac_rule_set_rules",
            "Number of rules in the active rule set",
            registry=self.registry
        )

    def record_decision(self, permit: bool, reason: Optional[str], duration: float):
        """Record one evaluation outcome."""
        self._metrics["decisions_total"].labels(
            decision="permit" if permit else "deny",
            reason=reason or "matched"
        ).inc()
        self._metrics["evaluation_duration_seconds"].observe(duration)

    def record_lookup(self, kind: str, status: str):
        """Record an attribute store lookup outcome."""
        self._metrics["attribute_lookups_total"].labels(kind=kind, status=status).inc()

    def record_rule_set_load(self, status: str, rule_count: Optional[int] = None):
        """Record a rule set load attempt."""
        with self._lock:
            self._metrics["rule_set_loads_total"].labels(status=status).inc()
            if rule_count is not None:
                self._metrics["rule_set_rules"].set(rule_count)


_default_collector: Optional[MetricsCollector] = None
_default_lock = threading.Lock()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for the engine.

    Without an explicit registry the process-wide collector on the default
    prometheus registry is returned, created on first use; metric names can
    only be registered there once.
    """
    global _default_collector
    if registry is not None:
        return MetricsCollector(service_name, registry)
    with _default_lock:
        if _default_collector is None:
            _default_collector = MetricsCollector(service_name)
        return _default_collector
