"""
Poller module - the fetch / compare / publish loop.
"""
from canister_prober.poller.loop import HeightPoller, PollerState

__all__ = [
    "HeightPoller",
    "PollerState",
]
