"""
Unit tests for HeightPoller.
The fetcher is mocked; metrics are a real HeightMetrics instance.
"""
import threading
import pytest
from unittest.mock import MagicMock

from canister_prober.common.correlation import clear_correlation_id, get_correlation_id
from canister_prober.common.exceptions import (
    FetchError,
    NoMetricError,
    ParseError,
    ProberError,
)
from canister_prober.extractor.rules import PatternCapture, RawInteger
from canister_prober.monitoring.metrics import HeightMetrics, MetricSample
from canister_prober.poller.loop import HeightPoller, PollerState

TARGET_URL = "https://blockchain.example/q/getblockcount"
CANISTER_URL = "https://canister.example/metrics"


def _fetcher(*results):
    """Mock fetcher whose fetch_height returns/raises *results* in order."""
    fetcher = MagicMock()
    fetcher.fetch_height.side_effect = list(results)
    return fetcher


def _poller(fetcher, metrics=None, **kwargs):
    kwargs.setdefault("interval", 0.01)
    return HeightPoller(
        fetcher=fetcher,
        metrics=metrics or HeightMetrics(),
        target_url=TARGET_URL,
        canister_url=CANISTER_URL,
        **kwargs
    )


class TestRunCycle:
    """Tests for a single poll cycle"""

    def test_publishes_heights_and_difference(self):
        metrics = HeightMetrics()
        poller = _poller(_fetcher(700000, 699950), metrics)

        sample = poller.run_cycle()

        assert sample == MetricSample(700000, 699950, 50)
        assert metrics.get_target_height() == 700000.0
        assert metrics.get_canister_height() == 699950.0
        assert metrics.get_height_difference() == 50.0

    def test_negative_difference(self):
        metrics = HeightMetrics()
        _poller(_fetcher(10, 12), metrics).run_cycle()
        assert metrics.get_height_difference() == -2.0

    def test_fetch_order_and_rules(self):
        fetcher = _fetcher(1, 1)
        rule = PatternCapture(r"h (\d+)")
        _poller(fetcher, canister_rule=rule).run_cycle()

        first, second = fetcher.fetch_height.call_args_list
        assert first.args[0] == TARGET_URL
        assert isinstance(first.args[1], RawInteger)
        assert second.args == (CANISTER_URL, rule)

    def test_default_canister_rule_is_pattern_capture(self):
        poller = _poller(_fetcher())
        assert isinstance(poller.canister_rule, PatternCapture)

    @pytest.mark.parametrize("results", [
        (FetchError(TARGET_URL, "connection refused"),),
        (ParseError("<html>"),),
        (700001, FetchError(CANISTER_URL, "timeout")),
        (700001, NoMetricError("main_chain_height")),
    ])
    def test_failure_leaves_gauges_unchanged(self, results):
        metrics = HeightMetrics()
        metrics.record(MetricSample.from_heights(100, 80))
        poller = _poller(_fetcher(*results), metrics)

        with pytest.raises(ProberError):
            poller.run_cycle()

        assert metrics.get_target_height() == 100.0
        assert metrics.get_canister_height() == 80.0
        assert metrics.get_height_difference() == 20.0
        assert poller.last_sample is None

    def test_target_failure_skips_canister_fetch(self):
        fetcher = _fetcher(FetchError(TARGET_URL, "down"))
        with pytest.raises(FetchError):
            _poller(fetcher).run_cycle()
        assert fetcher.fetch_height.call_count == 1


class TestRunLoop:
    """Tests for the run/stop lifecycle"""

    def test_initial_state_is_idle(self):
        assert _poller(_fetcher()).state == PollerState.IDLE

    def test_fail_fast_propagates_first_error(self):
        metrics = HeightMetrics()
        poller = _poller(
            _fetcher(700000, 699950, FetchError(TARGET_URL, "blip")),
            metrics,
        )

        with pytest.raises(FetchError):
            poller.run()

        assert poller.state == PollerState.STOPPED
        assert poller.cycles_completed == 1
        assert poller.cycles_failed == 1
        assert metrics.get_target_height() == 700000.0
        assert metrics.get_failed_cycles() == 0.0

    def test_keep_going_counts_failures_and_keeps_values(self):
        metrics = HeightMetrics()
        results = [
            700000, 699950,
            FetchError(TARGET_URL, "blip"),
            700010, 699990,
        ]
        poller = None

        def fetch(url, rule):
            result = results.pop(0)
            if not results:
                poller.stop()
            if isinstance(result, Exception):
                raise result
            return result

        fetcher = MagicMock()
        fetcher.fetch_height.side_effect = fetch
        poller = _poller(fetcher, metrics, fail_fast=False)

        poller.run()

        assert poller.cycles_failed == 1
        assert poller.cycles_completed == 2
        assert metrics.get_failed_cycles() == 1.0
        assert metrics.get_target_height() == 700010.0
        assert metrics.get_height_difference() == 20.0
        assert poller.state == PollerState.STOPPED

    def test_stop_interrupts_interval_wait(self):
        fetcher = MagicMock()
        fetcher.fetch_height.return_value = 1
        poller = _poller(fetcher, interval=60)

        thread = threading.Thread(target=poller.run)
        thread.start()
        while poller.cycles_completed == 0 and thread.is_alive():
            thread.join(timeout=0.01)

        poller.stop()
        thread.join(timeout=2)

        assert not thread.is_alive()
        assert poller.cycles_completed == 1
        assert poller.state == PollerState.STOPPED

    def test_stop_before_run_runs_no_cycle(self):
        fetcher = _fetcher()
        poller = _poller(fetcher)
        poller.stop()
        poller.run()
        fetcher.fetch_height.assert_not_called()

    def test_each_cycle_gets_its_own_correlation_id(self):
        clear_correlation_id()
        seen = []
        poller = None

        def record_id(url, rule):
            seen.append(get_correlation_id())
            if len(seen) == 4:
                poller.stop()
            return 1

        fetcher = MagicMock()
        fetcher.fetch_height.side_effect = record_id
        poller = _poller(fetcher)
        poller.run()

        assert seen[0] == seen[1]
        assert seen[2] == seen[3]
        assert seen[0] != seen[2]
        assert get_correlation_id() is None

    def test_single_cycle_leaves_poller_idle(self):
        poller = _poller(_fetcher(5, 3))
        poller.run_cycle()

        assert poller.state == PollerState.IDLE
        assert poller.cycles_completed == 1
        assert poller.last_sample.difference == 2
