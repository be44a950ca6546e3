#!/usr/bin/env python3
"""
Bitcoin Canister Prober - block height comparison exporter
Polls the canonical Bitcoin block height and the Bitcoin canister's
main chain height and exposes both, plus their difference, on /metrics.
"""
import sys
import argparse
from typing import List, Optional

from config.settings import Settings, load_settings
from canister_prober.common.durations import parse_bind_address, parse_duration
from canister_prober.common.exceptions import ConfigurationError, ProberError
from canister_prober.common.logging_config import setup_logging, set_package_level
from canister_prober.common.correlation import set_component
from canister_prober.common.shutdown import ShutdownManager
from canister_prober.extractor import HeightFetcher, PatternCapture
from canister_prober.monitoring import HeightMetrics, MetricsServer
from canister_prober.poller import HeightPoller

logger = setup_logging(__name__)

# Set component name for logging
set_component("prober")


def _duration_arg(value: str) -> float:
    try:
        return parse_duration(value)
    except ConfigurationError as e:
        raise argparse.ArgumentTypeError(str(e))


def _bind_address_arg(value: str):
    try:
        return parse_bind_address(value)
    except ConfigurationError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser(settings: Optional[Settings] = None) -> argparse.ArgumentParser:
    """CLI flags; every default comes from the environment-backed settings."""
    if settings is None:
        settings = load_settings()
    cfg = settings.prober
    parser = argparse.ArgumentParser(
        description="Compare the Bitcoin block height with the Bitcoin canister's "
                    "and export both as Prometheus gauges"
    )
    parser.add_argument(
        "--polling-interval",
        type=_duration_arg,
        default=cfg.polling_interval,
        help=f"Delay between poll cycles, e.g. 10s or 1m (default: {cfg.polling_interval}s)"
    )
    parser.add_argument(
        "--target-height-endpoint",
        default=cfg.target_height_endpoint,
        help=f"URL returning the current block count (default: {cfg.target_height_endpoint})"
    )
    parser.add_argument(
        "--bitcoin-canister-metrics-endpoint",
        default=cfg.bitcoin_canister_metrics_endpoint,
        help=f"Bitcoin canister metrics URL (default: {cfg.bitcoin_canister_metrics_endpoint})"
    )
    parser.add_argument(
        "--canister-height-pattern",
        default=cfg.canister_height_pattern,
        help="Regex with exactly one capture group locating the canister height "
             f"(default: {cfg.canister_height_pattern})"
    )
    parser.add_argument(
        "--metrics-addr",
        type=_bind_address_arg,
        default=parse_bind_address(cfg.metrics_addr),
        help=f"host:port to serve /metrics on (default: {cfg.metrics_addr})"
    )
    parser.add_argument(
        "--request-timeout",
        type=_duration_arg,
        default=cfg.request_timeout_seconds,
        help=f"Per-request HTTP timeout (default: {cfg.request_timeout_seconds}s)"
    )
    failure_mode = parser.add_mutually_exclusive_group()
    failure_mode.add_argument(
        "--fail-fast",
        dest="fail_fast",
        action="store_true",
        default=cfg.fail_fast,
        help="Exit with status 1 on the first failed cycle"
             f"{' (default)' if cfg.fail_fast else ''}"
    )
    failure_mode.add_argument(
        "--keep-going",
        dest="fail_fast",
        action="store_false",
        default=cfg.fail_fast,
        help="Log and count failed cycles instead of exiting on the first one"
             f"{'' if cfg.fail_fast else ' (default)'}"
    )
    parser.add_argument(
        "--log-level",
        default=settings.logging.level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help=f"Log level (default: {settings.logging.level})"
    )
    return parser


def run(args: argparse.Namespace, shutdown: ShutdownManager) -> None:
    """
    Wire the registry, server and poller together and poll until stopped.

    Raises:
        ProberError: configuration, bind or poll cycle failure
    """
    rule = PatternCapture(args.canister_height_pattern)

    metrics = HeightMetrics()
    host, port = args.metrics_addr
    server = MetricsServer(metrics, host=host, port=port)
    fetcher = HeightFetcher(timeout=args.request_timeout)

    poller = HeightPoller(
        fetcher=fetcher,
        metrics=metrics,
        target_url=args.target_height_endpoint,
        canister_url=args.bitcoin_canister_metrics_endpoint,
        canister_rule=rule,
        interval=args.polling_interval,
        fail_fast=args.fail_fast,
    )

    shutdown.register(poller.stop, priority=0, name="poller")
    shutdown.register(server.stop, priority=10, name="metrics-server")

    try:
        server.start()
        poller.run()
    finally:
        if shutdown.is_running:
            shutdown.initiate_shutdown()
        fetcher.close()


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    try:
        settings = load_settings()
    except ProberError as e:
        logger.critical(f"Prober failed: {e}")
        sys.exit(1)

    args = build_parser(settings).parse_args(argv)
    set_package_level(args.log_level)
    set_package_level(args.log_level, prefix=__name__)

    shutdown = ShutdownManager()
    shutdown.install_signal_handlers()

    try:
        run(args, shutdown)
    except ProberError as e:
        logger.critical(f"Prober failed: {e}")
        sys.exit(1)

    logger.info("Prober terminated")
    sys.exit(0)


if __name__ == "__main__":
    main()
