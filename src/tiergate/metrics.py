"""Prometheus metrics for Tiergate."""

from prometheus_client import Counter, Gauge, Histogram, Info

from tiergate import __version__


class GatewayMetrics:
    """Metrics collection for Tiergate."""

    def __init__(self) -> None:
        # Application info
        self.info = Info("tiergate", "Tiergate tiered access gateway")
        self.info.info({"version": __version__})

        # Gateway decisions
        self.decisions_total = Counter(
            "tiergate_decisions_total",
            "Total gateway decisions",
            ["tier", "outcome"],
        )

        self.rate_limit_blocks_total = Counter(
            "tiergate_rate_limit_blocks_total",
            "Requests blocked by a quota window",
            ["tier", "window"],
        )

        self.capability_denials_total = Counter(
            "tiergate_capability_denials_total",
            "Privileged capability requests denied by tier",
            ["tier"],
        )

        self.http_requests_total = Counter(
            "tiergate_http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status"],
        )

        # Latency histograms
        self.admit_duration = Histogram(
            "tiergate_admit_duration_seconds",
            "Duration of gateway admission checks",
            ["tier"],
            buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
        )

        self.http_request_duration = Histogram(
            "tiergate_http_request_duration_seconds",
            "Duration of HTTP requests",
            ["method", "endpoint"],
            buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
        )

        # Counter store
        self.store_operations_total = Counter(
            "tiergate_store_operations_total",
            "Total counter store operations",
            ["operation", "status"],
        )

        self.store_latency = Histogram(
            "tiergate_store_latency_seconds",
            "Counter store operation latency",
            ["operation"],
            buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1],
        )

        self.cas_conflicts_total = Counter(
            "tiergate_cas_conflicts_total",
            "Compare-and-swap attempts lost to a concurrent writer",
        )

        # Inactive keys are never evicted; watch this for growth
        self.tracked_keys = Gauge(
            "tiergate_tracked_keys",
            "API keys with counter state in the store",
        )


# Singleton instance
metrics = GatewayMetrics()
