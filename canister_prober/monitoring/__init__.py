"""
Monitoring module - Prometheus gauges and their HTTP exposition server.
"""
from canister_prober.monitoring.metrics import (
    HeightMetrics,
    MetricSample,
)
from canister_prober.monitoring.server import MetricsServer

__all__ = [
    "HeightMetrics",
    "MetricSample",
    "MetricsServer",
]
