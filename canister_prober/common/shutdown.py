"""
Process stop handling for the prober.
SIGINT/SIGTERM stop the poll loop first, then the metrics server.
"""
import signal
import threading
import time
from typing import Callable, List, Tuple

from canister_prober.common.logging_config import get_logger

logger = get_logger(__name__)


class ShutdownManager:
    """
    Ordered stop hooks, run once on the first signal or explicit request.

    Hooks with a lower ``priority`` run first; ``prober.run`` registers the
    poller at 0 and the metrics server at 10.
    """

    def __init__(self, timeout: float = 10):
        """
        Args:
            timeout: seconds after which hooks not yet started are skipped
        """
        self.timeout = timeout
        self._hooks: List[Tuple[int, str, Callable[[], None]]] = []
        self._lock = threading.Lock()
        self._stopping = False

    @property
    def is_running(self) -> bool:
        return not self._stopping

    def register(self, callback: Callable[[], None], priority: int = 20, name: str = "unnamed") -> None:
        self._hooks.append((priority, name, callback))
        self._hooks.sort(key=lambda hook: hook[0])
        logger.debug(f"Registered stop hook {name} (priority={priority})")

    def install_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM to ``initiate_shutdown`` (main thread only)."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)
        logger.info("Signal handlers installed (SIGINT, SIGTERM)")

    def _signal_handler(self, signum: int, frame) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, stopping prober")
        self.initiate_shutdown()

    def initiate_shutdown(self) -> None:
        """Run every stop hook once; later calls return immediately."""
        with self._lock:
            if self._stopping:
                return
            self._stopping = True

        deadline = time.monotonic() + self.timeout
        for priority, name, callback in self._hooks:
            if time.monotonic() >= deadline:
                logger.error(f"Stop timeout ({self.timeout}s) exceeded, skipping {name}")
                continue
            try:
                callback()
            except Exception as e:
                # A failing hook must not keep the rest from running
                logger.error(f"Stop hook {name} failed: {e}")
            else:
                logger.debug(f"Stop hook {name} done (priority={priority})")

        logger.info("Prober stopped")
