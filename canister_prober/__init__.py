"""
Bitcoin canister prober.

Polls the canonical Bitcoin block height and the height reported by the
Bitcoin canister and republishes both, plus their difference, as
Prometheus gauges.
"""
__version__ = "0.1.0"
