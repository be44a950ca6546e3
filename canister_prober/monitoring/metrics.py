"""
Prometheus gauges published by the prober.

Unlike a module-level registry, every ``HeightMetrics`` owns its own
``CollectorRegistry`` so the poll loop and exposition server share exactly
the instance they are handed, and tests can build as many as they like.

Exposed metrics:
    bitcoin_block_height                  - height of the longest chain
    bitcoin_canister_block_height         - main chain height seen by the canister
    block_height_difference               - first minus second (may be negative)
    bitcoin_prober_failed_cycles_total    - cycles skipped in keep-going mode

Usage:
    metrics = HeightMetrics()
    metrics.record(MetricSample.from_heights(700000, 699950))
    payload = metrics.render()
"""
from dataclasses import dataclass
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)

from canister_prober.common.logging_config import get_logger

logger = get_logger(__name__)

TARGET_HEIGHT_METRIC = "bitcoin_block_height"
CANISTER_HEIGHT_METRIC = "bitcoin_canister_block_height"
HEIGHT_DIFFERENCE_METRIC = "block_height_difference"
FAILED_CYCLES_METRIC = "bitcoin_prober_failed_cycles"


@dataclass(frozen=True)
class MetricSample:
    """The three values of one successful poll cycle."""
    target_height: int
    canister_height: int
    difference: int

    @classmethod
    def from_heights(cls, target_height: int, canister_height: int) -> "MetricSample":
        return cls(
            target_height=target_height,
            canister_height=canister_height,
            difference=target_height - canister_height,
        )


class HeightMetrics:
    """
    Registry of the prober's gauges with named setters.

    Each setter is last-write-wins. ``prometheus_client`` guards every
    gauge value with its own lock, so a scrape never sees a torn value;
    there is no consistency across the three gauges beyond the poll loop
    writing them back to back.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()

        self.target_height = Gauge(
            TARGET_HEIGHT_METRIC,
            "Block height of the longest Bitcoin chain.",
            registry=self.registry,
        )
        self.canister_height = Gauge(
            CANISTER_HEIGHT_METRIC,
            "Main chain height reported by the Bitcoin canister.",
            registry=self.registry,
        )
        self.height_difference = Gauge(
            HEIGHT_DIFFERENCE_METRIC,
            "Bitcoin block height minus the Bitcoin canister main chain height.",
            registry=self.registry,
        )
        self.failed_cycles = Counter(
            FAILED_CYCLES_METRIC,
            "Poll cycles that failed and were skipped (keep-going mode only).",
            registry=self.registry,
        )

    # -- Setters ------------------------------------------------------------

    def set_target_height(self, height: int) -> None:
        self.target_height.set(height)

    def set_canister_height(self, height: int) -> None:
        self.canister_height.set(height)

    def set_height_difference(self, difference: int) -> None:
        self.height_difference.set(difference)

    def record(self, sample: MetricSample) -> None:
        """Apply all three values of *sample*."""
        self.set_target_height(sample.target_height)
        self.set_canister_height(sample.canister_height)
        self.set_height_difference(sample.difference)

    def inc_failed_cycles(self) -> None:
        self.failed_cycles.inc()

    # -- Readers ------------------------------------------------------------

    def get_target_height(self) -> float:
        return self.registry.get_sample_value(TARGET_HEIGHT_METRIC)

    def get_canister_height(self) -> float:
        return self.registry.get_sample_value(CANISTER_HEIGHT_METRIC)

    def get_height_difference(self) -> float:
        return self.registry.get_sample_value(HEIGHT_DIFFERENCE_METRIC)

    def get_failed_cycles(self) -> float:
        return self.registry.get_sample_value(FAILED_CYCLES_METRIC + "_total")

    def render(self) -> bytes:
        """Serialize every registered metric in the Prometheus text format."""
        return generate_latest(self.registry)
