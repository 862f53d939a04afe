"""
Brief: Shared pytest fixtures: src/ on sys.path and a local DoH JSON stub server.

Inputs:
  - None

Outputs:
  - None
"""

import json
import os
import sys
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlparse

import pytest

# Ensure 'src' is on sys.path so 'dohrace' is importable without installation
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)


def _answer(data, rtype=1, name="example.com."):
    return {"name": name, "type": rtype, "TTL": 300, "data": data}


# path -> (http status, body bytes, delay seconds)
STUB_ROUTES = {
    "/ok": (
        200,
        json.dumps(
            {
                "Status": 0,
                "TC": False,
                "RD": True,
                "RA": True,
                "AD": False,
                "CD": False,
                "Question": [{"name": "example.com.", "type": 1}],
                "Answer": [
                    _answer("edge.example.net.", rtype=5),
                    _answer("93.184.216.34"),
                    _answer("93.184.216.35"),
                ],
            }
        ).encode(),
        0.0,
    ),
    "/other": (
        200,
        json.dumps({"Status": 0, "Answer": [_answer("198.51.100.7")]}).encode(),
        0.0,
    ),
    "/nxdomain": (200, json.dumps({"Status": 3, "Answer": []}).encode(), 0.0),
    "/notip": (200, json.dumps({"Status": 0, "Answer": [_answer("not-an-ip")]}).encode(), 0.0),
    "/cname-only": (
        200,
        json.dumps({"Status": 0, "Answer": [_answer("alias.example.", rtype=5)]}).encode(),
        0.0,
    ),
    "/garbage": (200, b"<html>not json</html>", 0.0),
    "/error": (500, b"boom", 0.0),
    "/slow": (
        200,
        json.dumps({"Status": 0, "Answer": [_answer("192.0.2.99")]}).encode(),
        3.0,
    ),
}


class _DoHStubHandler(BaseHTTPRequestHandler):
    def do_GET(self):  # noqa: N802
        parsed = urlparse(self.path)
        self.server.requests.append(
            {
                "path": parsed.path,
                "query": parse_qs(parsed.query),
                "accept": self.headers.get("Accept"),
                "user_agent": self.headers.get("User-Agent"),
            }
        )
        status, body, delay = STUB_ROUTES.get(parsed.path, (404, b"", 0.0))
        if delay:
            time.sleep(delay)
        self.send_response(status)
        self.send_header("Content-Type", "application/dns-json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, fmt, *args):  # quiet
        return


class StubServer:
    def __init__(self, handler):
        self.httpd = ThreadingHTTPServer(("127.0.0.1", 0), handler)
        self.httpd.daemon_threads = True
        self.httpd.requests = []
        self.host, self.port = self.httpd.server_address
        self._thread = threading.Thread(target=self.httpd.serve_forever, daemon=True)

    @property
    def requests(self):
        return self.httpd.requests

    def url(self, path):
        return f"http://{self.host}:{self.port}{path}"

    def start(self):
        self._thread.start()
        return self

    def stop(self):
        self.httpd.shutdown()
        self.httpd.server_close()


@pytest.fixture()
def doh_stub():
    """
    Brief: Local DoH JSON stub serving the canned STUB_ROUTES responses.

    Outputs:
      - StubServer with url(path) and the list of received requests.
    """
    srv = StubServer(_DoHStubHandler).start()
    try:
        yield srv
    finally:
        srv.stop()


@pytest.fixture()
def unused_port():
    """Brief: A localhost TCP port with nothing listening on it."""
    import socket

    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


@pytest.fixture()
def http_stub():
    """
    Brief: Factory starting a StubServer for an arbitrary request handler.

    Outputs:
      - callable(handler_cls) -> StubServer; servers stop at teardown.
    """
    servers = []

    def _start(handler):
        srv = StubServer(handler).start()
        servers.append(srv)
        return srv

    yield _start
    for srv in servers:
        srv.stop()


@pytest.fixture(autouse=True)
def no_env_proxies(monkeypatch):
    """Brief: Keep requests from routing localhost stubs through an env proxy."""
    for var in ("http_proxy", "https_proxy", "all_proxy", "HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY"):
        monkeypatch.delenv(var, raising=False)
    yield
