"""
Unit tests for MetricsServer and its request handler.
A real server is bound to an ephemeral port and queried with urllib.
"""
import http.client
import socket
import unittest
import urllib.error
import urllib.request
from unittest.mock import patch

from prometheus_client import CONTENT_TYPE_LATEST

from canister_prober.common.durations import parse_bind_address
from canister_prober.common.exceptions import ServerError
from canister_prober.monitoring.metrics import HeightMetrics
from canister_prober.monitoring.server import MetricsServer


def _request(port: int, path: str, method: str = "GET") -> tuple:
    """Make a request and return (status_code, headers, body)."""
    req = urllib.request.Request(f"http://127.0.0.1:{port}{path}", method=method)
    try:
        resp = urllib.request.urlopen(req, timeout=2)
        return resp.status, resp.headers, resp.read()
    except urllib.error.HTTPError as e:
        return e.code, e.headers, e.read()


def _ipv6_loopback_available() -> bool:
    if not socket.has_ipv6:
        return False
    try:
        with socket.socket(socket.AF_INET6, socket.SOCK_STREAM) as sock:
            sock.bind(("::1", 0))
    except OSError:
        return False
    return True


class TestMetricsServer(unittest.TestCase):
    """Tests for the /metrics route and the 404 fallback."""

    @classmethod
    def setUpClass(cls):
        cls.metrics = HeightMetrics()
        cls.server = MetricsServer(cls.metrics, host="127.0.0.1", port=0)
        cls.server.start()
        cls.port = cls.server.server_port

    @classmethod
    def tearDownClass(cls):
        cls.server.stop()

    def test_metrics_endpoint_reports_set_values(self):
        self.metrics.set_target_height(100)
        self.metrics.set_canister_height(80)
        self.metrics.set_height_difference(20)

        status, headers, body = _request(self.port, "/metrics")
        text = body.decode("utf-8")

        self.assertEqual(status, 200)
        self.assertIn("bitcoin_block_height 100.0", text)
        self.assertIn("bitcoin_canister_block_height 80.0", text)
        self.assertIn("block_height_difference 20.0", text)

    def test_metrics_content_type(self):
        status, headers, _ = _request(self.port, "/metrics")
        self.assertEqual(status, 200)
        self.assertEqual(headers["Content-Type"], CONTENT_TYPE_LATEST)

    def test_query_string_is_ignored(self):
        status, _, body = _request(self.port, "/metrics?name[]=bitcoin_block_height")
        self.assertEqual(status, 200)
        self.assertIn(b"bitcoin_block_height", body)

    def test_unknown_path_is_empty_404(self):
        for path in ("/", "/health", "/metrics/", "/metricsx"):
            status, _, body = _request(self.port, path)
            self.assertEqual(status, 404, path)
            self.assertEqual(body, b"", path)

    def test_non_get_methods_are_empty_404(self):
        for method in ("POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD"):
            status, _, body = _request(self.port, "/metrics", method=method)
            self.assertEqual(status, 404, method)
            self.assertEqual(body, b"", method)

    def test_extension_methods_are_empty_404(self):
        for method in ("PROPFIND", "FOO", "TRACE"):
            conn = http.client.HTTPConnection("127.0.0.1", self.port, timeout=2)
            try:
                conn.request(method, "/metrics")
                resp = conn.getresponse()
                self.assertEqual(resp.status, 404, method)
                self.assertEqual(resp.read(), b"", method)
            finally:
                conn.close()

    def test_encoder_failure_returns_500_and_keeps_serving(self):
        with patch.object(self.metrics, "render", side_effect=RuntimeError("encode failed")):
            status, _, body = _request(self.port, "/metrics")
        self.assertEqual(status, 500)
        self.assertEqual(body, b"")

        status, _, _ = _request(self.port, "/metrics")
        self.assertEqual(status, 200)

    def test_server_is_running(self):
        self.assertTrue(self.server.is_running)


class TestMetricsServerLifecycle(unittest.TestCase):
    """Tests for start/stop and bind failures."""

    def test_stop_releases_port(self):
        server = MetricsServer(HeightMetrics(), host="127.0.0.1", port=0)
        server.start()
        port = server.server_port
        server.stop()

        self.assertFalse(server.is_running)
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            self.assertNotEqual(sock.connect_ex(("127.0.0.1", port)), 0)

    def test_stop_before_start_is_noop(self):
        MetricsServer(HeightMetrics(), port=0).stop()

    def test_bind_failure_raises_server_error(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            sock.listen(1)
            taken = sock.getsockname()[1]

            server = MetricsServer(HeightMetrics(), host="127.0.0.1", port=taken)
            with self.assertRaises(ServerError):
                server.start()
            self.assertFalse(server.is_running)

    @unittest.skipUnless(_ipv6_loopback_available(), "IPv6 loopback not available")
    def test_binds_ipv6_address(self):
        host, port = parse_bind_address("[::1]:0")
        server = MetricsServer(HeightMetrics(), host=host, port=port)
        server.start()
        try:
            conn = http.client.HTTPConnection("::1", server.server_port, timeout=2)
            try:
                conn.request("GET", "/metrics")
                resp = conn.getresponse()
                self.assertEqual(resp.status, 200)
                self.assertIn(b"bitcoin_block_height", resp.read())
            finally:
                conn.close()
        finally:
            server.stop()


if __name__ == "__main__":
    unittest.main()
