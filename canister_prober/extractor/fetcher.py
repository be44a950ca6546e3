"""
HTTP fetcher that downloads a source URL and applies an extraction rule.
"""
import time
from typing import Optional

import requests

from canister_prober.common.exceptions import FetchError
from canister_prober.common.logging_config import get_logger
from canister_prober.extractor.rules import ExtractionRule

logger = get_logger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10.0
USER_AGENT = "bitcoin-canister-prober/0.1"


class HeightFetcher:
    """
    Fetches block heights over HTTP.

    One ``requests.Session`` is reused across cycles so connections to the
    two sources are kept alive between polls. No retries happen here; a
    failed request fails the cycle.

    Usage:
        fetcher = HeightFetcher(timeout=5)
        height = fetcher.fetch_height("https://blockchain.info/q/getblockcount", RawInteger())
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        """
        Args:
            session: HTTP session to use (a new one is created if omitted)
            timeout: connect/read timeout in seconds for each request
        """
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)
        self.timeout = timeout

    def fetch_text(self, url: str) -> str:
        """
        GET *url* and return the body as text.

        Raises:
            FetchError: on connection failure, timeout or non-2xx status
        """
        start = time.monotonic()
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            body = response.text
        except requests.RequestException as e:
            logger.warning(f"Request failed: {e}", extra={"url": url})
            raise FetchError(url, str(e)) from e

        logger.debug(
            f"Fetched {len(body)} chars in {time.monotonic() - start:.3f}s",
            extra={"url": url},
        )
        return body

    def fetch_height(self, url: str, rule: ExtractionRule) -> int:
        """
        Fetch *url* and extract a height from its body with *rule*.

        Raises:
            FetchError: transport failure
            ParseError: body or capture is not an unsigned integer
            NoMetricError: pattern did not match
            IncorrectRegexError: pattern group count is not one
        """
        height = rule.extract(self.fetch_text(url))
        logger.debug(f"Extracted height {height}", extra={"url": url, "height": height})
        return height

    def close(self) -> None:
        """Release pooled connections."""
        self.session.close()


def fetch_height(url: str, rule: ExtractionRule, timeout: float = DEFAULT_REQUEST_TIMEOUT) -> int:
    """One-shot convenience wrapper using a throwaway session."""
    fetcher = HeightFetcher(timeout=timeout)
    try:
        return fetcher.fetch_height(url, rule)
    finally:
        fetcher.close()
