"""
Poll loop comparing the canonical Bitcoin height with the canister's view.

Each cycle:
    1. fetch the target height (raw integer body)
    2. fetch the canister height (pattern capture over its metrics page)
    3. difference = target - canister
    4. publish all three values
    5. wait for the polling interval

A failure in step 1 or 2 skips step 4, so a scrape never sees a mix of
old and new values from a half-finished cycle. By default the error then
propagates out of ``run()`` and the process exits for its supervisor to
restart; with ``fail_fast=False`` the cycle is counted as failed and the
loop carries on with the last good values still published.
"""
import threading
import time
from enum import Enum
from typing import Optional

from canister_prober.common.correlation import CorrelationContext
from canister_prober.common.exceptions import ProberError
from canister_prober.common.logging_config import get_logger
from canister_prober.extractor.fetcher import HeightFetcher
from canister_prober.extractor.rules import ExtractionRule, PatternCapture, RawInteger
from canister_prober.monitoring.metrics import HeightMetrics, MetricSample

logger = get_logger(__name__)


class PollerState(Enum):
    """Poll loop states"""
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class HeightPoller:
    """
    Drives the fetch / compare / publish cycle.

    Args:
        fetcher: ``HeightFetcher`` used for both sources
        metrics: registry receiving the results
        target_url: canonical height endpoint (plain-text integer)
        canister_url: canister metrics endpoint
        canister_rule: rule extracting the canister height
        interval: seconds to wait between cycles
        fail_fast: re-raise cycle errors (default) instead of skipping them
        target_rule: rule extracting the target height
    """

    def __init__(
        self,
        fetcher: HeightFetcher,
        metrics: HeightMetrics,
        target_url: str,
        canister_url: str,
        canister_rule: Optional[ExtractionRule] = None,
        interval: float = 10.0,
        fail_fast: bool = True,
        target_rule: Optional[ExtractionRule] = None,
    ) -> None:
        self.fetcher = fetcher
        self.metrics = metrics
        self.target_url = target_url
        self.canister_url = canister_url
        self.canister_rule = canister_rule or PatternCapture()
        self.target_rule = target_rule or RawInteger()
        self.interval = interval
        self.fail_fast = fail_fast

        self.state = PollerState.IDLE
        self.last_sample: Optional[MetricSample] = None
        self.cycles_completed = 0
        self.cycles_failed = 0
        self._stop_event = threading.Event()

    def run_cycle(self) -> MetricSample:
        """
        Run steps 1-4 once and return the published sample.

        Raises:
            ProberError: if either fetch fails; nothing is published then
        """
        target = self.fetcher.fetch_height(self.target_url, self.target_rule)
        canister = self.fetcher.fetch_height(self.canister_url, self.canister_rule)

        sample = MetricSample.from_heights(target, canister)
        self.metrics.record(sample)
        self.last_sample = sample
        self.cycles_completed += 1

        logger.info(
            f"Heights: bitcoin={sample.target_height} "
            f"canister={sample.canister_height} difference={sample.difference}",
            extra={"height": sample.target_height, "difference": sample.difference},
        )
        return sample

    def run(self) -> None:
        """
        Loop until ``stop()`` is called.

        Raises:
            ProberError: the first cycle error when ``fail_fast`` is set
        """
        self.state = PollerState.RUNNING
        logger.info(
            f"Poller started (interval={self.interval}s, fail_fast={self.fail_fast}, "
            f"target={self.target_url}, canister={self.canister_url})"
        )

        try:
            while not self._stop_event.is_set():
                started = time.monotonic()
                with CorrelationContext():
                    try:
                        self.run_cycle()
                    except ProberError as e:
                        self.cycles_failed += 1
                        if self.fail_fast:
                            logger.error(f"Poll cycle failed, stopping: {e}")
                            raise
                        self.metrics.inc_failed_cycles()
                        logger.warning(f"Poll cycle failed, keeping last values: {e}")

                logger.debug(f"Cycle took {time.monotonic() - started:.3f}s")
                self._stop_event.wait(self.interval)
        finally:
            self.state = PollerState.STOPPED
            logger.info(
                f"Poller stopped (completed={self.cycles_completed}, "
                f"failed={self.cycles_failed})"
            )

    def stop(self) -> None:
        """Ask ``run()`` to return; wakes it from the interval wait."""
        self._stop_event.set()

    @property
    def is_running(self) -> bool:
        return self.state == PollerState.RUNNING
