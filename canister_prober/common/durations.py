"""
Parsing helpers for human-friendly durations and bind addresses.

Durations follow the humantime convention used by the prober's flags:
``"10s"``, ``"500ms"``, ``"2m"``, ``"1h 30m"``. A bare number is seconds.
"""
import math
import re
from typing import Tuple, Union

from canister_prober.common.exceptions import ConfigurationError

_UNIT_SECONDS = {
    "ms": 0.001,
    "msec": 0.001,
    "s": 1.0,
    "sec": 1.0,
    "secs": 1.0,
    "second": 1.0,
    "seconds": 1.0,
    "m": 60.0,
    "min": 60.0,
    "mins": 60.0,
    "minute": 60.0,
    "minutes": 60.0,
    "h": 3600.0,
    "hr": 3600.0,
    "hour": 3600.0,
    "hours": 3600.0,
}

_PART_RE = re.compile(r"(\d+(?:\.\d+)?)\s*([a-z]+)")


def parse_duration(value: Union[str, int, float]) -> float:
    """
    Convert a duration to seconds.

    Args:
        value: number of seconds, or a string such as "10s" or "1m 30s"

    Returns:
        Duration in seconds (strictly positive)

    Raises:
        ConfigurationError: if the value cannot be parsed or is not positive
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid duration: {value!r}")

    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = value.strip().lower()
        try:
            seconds = float(text)
        except ValueError:
            seconds = _parse_units(text, value)

    if not math.isfinite(seconds) or seconds <= 0:
        raise ConfigurationError(f"Duration must be positive: {value!r}")
    return seconds


def _parse_units(text: str, original) -> float:
    total = 0.0
    pos = 0
    for match in _PART_RE.finditer(text):
        if text[pos:match.start()].strip():
            raise ConfigurationError(f"Invalid duration: {original!r}")
        amount, unit = match.groups()
        if unit not in _UNIT_SECONDS:
            raise ConfigurationError(f"Unknown duration unit {unit!r} in {original!r}")
        total += float(amount) * _UNIT_SECONDS[unit]
        pos = match.end()

    if pos == 0 or text[pos:].strip():
        raise ConfigurationError(f"Invalid duration: {original!r}")
    return total


def parse_bind_address(value: str) -> Tuple[str, int]:
    """
    Split ``host:port`` into its parts.

    IPv6 hosts must be bracketed (``[::]:9090``).

    Raises:
        ConfigurationError: on a missing or out-of-range port
    """
    host, sep, port_text = value.strip().rpartition(":")
    if not sep or not port_text.isdigit():
        raise ConfigurationError(f"Invalid bind address (expected host:port): {value!r}")

    port = int(port_text)
    if port > 65535:
        raise ConfigurationError(f"Port out of range in bind address: {value!r}")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host or "0.0.0.0", port
