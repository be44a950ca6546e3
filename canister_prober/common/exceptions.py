"""
Custom exceptions for the Bitcoin canister prober.
Every failure the poll loop or exposition server can raise derives from ProberError.
"""


class ProberError(Exception):
    """Base exception for the prober"""
    pass


class FetchError(ProberError):
    """Transport-level failure fetching a source URL (connection, timeout, HTTP status)"""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to fetch {url}: {reason}")


class ParseError(ProberError):
    """Body or captured text is not a clean unsigned 32-bit decimal integer"""

    def __init__(self, text: str):
        self.text = text
        super().__init__(f"Cannot parse block height from {text!r}")


class NoMetricError(ProberError):
    """Extraction pattern did not match the response body"""

    def __init__(self, pattern: str):
        self.pattern = pattern
        super().__init__(f"Specified metric was not found (pattern: {pattern!r})")


class IncorrectRegexError(ProberError):
    """Extraction pattern does not have exactly one capture group"""

    def __init__(self, pattern: str, groups: int):
        self.pattern = pattern
        self.groups = groups
        super().__init__(
            f"Pattern {pattern!r} must have exactly one capture group, found {groups}"
        )


class ServerError(ProberError):
    """Metrics exposition server failed to bind or encode"""
    pass


class ConfigurationError(ProberError):
    """Invalid configuration value (duration, bind address, ...)"""
    pass
