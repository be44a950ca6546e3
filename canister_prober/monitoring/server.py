"""
Metrics exposition HTTP server.
Runs in a separate thread so scrapes never block the poll loop.

Endpoints:
    GET /metrics  - Prometheus text exposition of the prober's registry

Everything else (other paths, or /metrics with another method) gets an
empty 404.
"""
import socket
import threading
from http.server import ThreadingHTTPServer, BaseHTTPRequestHandler
from typing import Optional
from urllib.parse import urlsplit

from prometheus_client import CONTENT_TYPE_LATEST

from canister_prober.common.exceptions import ServerError
from canister_prober.common.logging_config import get_logger
from canister_prober.monitoring.metrics import HeightMetrics

logger = get_logger(__name__)

METRICS_PATH = "/metrics"


class MetricsHTTPHandler(BaseHTTPRequestHandler):
    """HTTP request handler serving the metrics route."""

    # Class-level reference to the registry (set by MetricsServer)
    metrics: Optional[HeightMetrics] = None

    def do_GET(self):
        if urlsplit(self.path).path != METRICS_PATH or self.metrics is None:
            self._send_empty(404)
            return

        try:
            body = self.metrics.render()
        except Exception as e:
            # Encoder failure only fails this scrape
            logger.exception(f"Failed to encode metrics: {e}", extra={"path": self.path})
            self._send_empty(500)
            return

        self.send_response(200)
        self.send_header("Content-Type", CONTENT_TYPE_LATEST)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _not_found(self):
        self._send_empty(404)

    def __getattr__(self, name):
        # Any method without its own do_* handler (HEAD, POST, PROPFIND, ...) is a 404
        if name.startswith("do_"):
            return self._not_found
        raise AttributeError(name)

    def _send_empty(self, status_code: int):
        self.send_response(status_code)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, format, *args):
        """Suppress default access logging to avoid noise."""
        pass


class IPv6HTTPServer(ThreadingHTTPServer):
    """ThreadingHTTPServer bound to an IPv6 address."""
    address_family = socket.AF_INET6


class MetricsServer:
    """
    Threaded HTTP server exposing a ``HeightMetrics`` registry.
    Runs in a daemon thread so it never keeps the process alive on its own.

    Usage:
        metrics = HeightMetrics()
        server = MetricsServer(metrics, host="0.0.0.0", port=9090)
        server.start()
        # ... poll loop ...
        server.stop()
    """

    def __init__(self, metrics: HeightMetrics, host: str = "0.0.0.0", port: int = 9090):
        """
        Args:
            metrics: registry to serve
            host: bind host
            port: bind port (0 picks a free port, see ``server_port``)
        """
        self.metrics = metrics
        self.host = host
        self.port = port
        self._server: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """
        Bind and start serving in a daemon thread. Returns immediately.

        Raises:
            ServerError: if the address cannot be bound
        """
        handler = type(
            'MetricsHandler',
            (MetricsHTTPHandler,),
            {'metrics': self.metrics}
        )

        try:
            server_class = IPv6HTTPServer if ":" in self.host else ThreadingHTTPServer
            self._server = server_class((self.host, self.port), handler)
        except OSError as e:
            logger.error(f"Failed to start metrics server on {self.host}:{self.port}: {e}")
            raise ServerError(f"Cannot bind metrics server to {self.host}:{self.port}: {e}") from e

        self._server.daemon_threads = True
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="metrics-server",
            daemon=True
        )
        self._thread.start()
        host = f"[{self.host}]" if ":" in self.host else self.host
        logger.info(f"Metrics server listening on http://{host}:{self.server_port}{METRICS_PATH}")

    def stop(self) -> None:
        """Stop serving, close the socket and join the thread."""
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread:
            self._thread.join(timeout=5)
        self._server = None
        logger.info("Metrics server stopped")

    @property
    def server_port(self) -> int:
        """Port actually bound (differs from ``port`` when 0 was requested)."""
        if self._server is None:
            return self.port
        return self._server.server_address[1]

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
