"""
Extraction rules turning a response body into a block height.

Two rules exist:
    RawInteger      - the whole (trimmed) body is the height, e.g. "700000"
    PatternCapture  - a regular expression with exactly one capture group is
                      searched in the body and the captured text is the height,
                      e.g. a Prometheus line "main_chain_height 699950 1668084050769"
"""
import re
from abc import ABC, abstractmethod
from typing import Pattern, Union

from canister_prober.common.exceptions import (
    ConfigurationError,
    IncorrectRegexError,
    NoMetricError,
    ParseError,
)

MAX_HEIGHT = 2 ** 32 - 1

# Matches the canister's exposition line
#   main_chain_height 2405670 1668084050769
# capturing the height and skipping the timestamp.
DEFAULT_CANISTER_HEIGHT_PATTERN = r"(?m)^main_chain_height (\d+) \d+$"

_DIGITS_RE = re.compile(r"[0-9]+")


def parse_height(text: str) -> int:
    """
    Parse a base-10 unsigned 32-bit integer.

    Only ASCII digits are accepted: signs, underscores, inner whitespace and
    other Unicode digits are rejected even though ``int()`` would take them.

    Raises:
        ParseError: if *text* is not a clean integer or exceeds 2**32 - 1
    """
    if not _DIGITS_RE.fullmatch(text):
        raise ParseError(text)
    value = int(text)
    if value > MAX_HEIGHT:
        raise ParseError(text)
    return value


class ExtractionRule(ABC):
    """Strategy for pulling a height out of a response body."""

    @abstractmethod
    def extract(self, body: str) -> int:
        """Return the height contained in *body* or raise a ProberError."""


class RawInteger(ExtractionRule):
    """The entire body, minus surrounding whitespace, is the height."""

    def extract(self, body: str) -> int:
        return parse_height(body.strip())

    def __repr__(self) -> str:
        return "RawInteger()"


class PatternCapture(ExtractionRule):
    """
    Search *pattern* in the body and parse its single capture group.

    The group count is validated at construction so a bad pattern fails the
    process at startup, and validated again on every call in case the
    ``pattern`` attribute is swapped afterwards.

    Args:
        pattern: regex source or an already compiled pattern

    Raises:
        IncorrectRegexError: if the pattern does not have exactly one group
    """

    def __init__(self, pattern: Union[str, Pattern[str]] = DEFAULT_CANISTER_HEIGHT_PATTERN):
        self.pattern = compile_pattern(pattern)

    def extract(self, body: str) -> int:
        pattern = self.pattern
        if pattern.groups != 1:
            raise IncorrectRegexError(pattern.pattern, pattern.groups)

        match = pattern.search(body)
        if match is None:
            raise NoMetricError(pattern.pattern)

        captured = match.group(1)
        if captured is None:
            # Group sits in an alternation branch that did not participate
            raise ParseError("")
        return parse_height(captured)

    def __repr__(self) -> str:
        return f"PatternCapture({self.pattern.pattern!r})"


def compile_pattern(pattern: Union[str, Pattern[str]]) -> Pattern[str]:
    """
    Compile *pattern* and check it has exactly one capture group.

    Raises:
        IncorrectRegexError: on a group count other than one
        ConfigurationError: if the source does not compile
    """
    if isinstance(pattern, re.Pattern):
        compiled = pattern
    else:
        try:
            compiled = re.compile(pattern)
        except re.error as exc:
            raise ConfigurationError(f"Invalid extraction pattern {pattern!r}: {exc}") from exc
    if compiled.groups != 1:
        raise IncorrectRegexError(compiled.pattern, compiled.groups)
    return compiled
