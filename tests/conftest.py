"""
pytest configuration and fixtures.
"""

import http.client
import logging
import socket
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest

from staticserve import HTTPServer, ServerConfig, AssetStore
from staticserve.http import HTTPRequest, parse_request


ALPHABET = b"abcdefghijklmnopqrstuvwxyz"
INDEX_HTML = b"<!doctype html><title>home</title><h1>home</h1>\n"
SITE_CSS = b"body { color: #333; }\n"
APP_JS = b"console.log('hi');\n"
BINARY = bytes(range(256))


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /css/site.css?v=3 HTTP/1.1\r\n"
        b"Host: localhost:3000\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: text/css\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def asset_dir(tmp_path: Path) -> Path:
    """
    A small site on disk, mounted at tmp_path/site:

        site/
        ├── index.html
        ├── alphabet.txt
        ├── data.bin
        ├── NOTES             (no extension, text)
        ├── css/site.css
        ├── js/app.js
        ├── docs/             (no index file)
        │   ├── guide.md
        │   └── a b.txt
        ├── .env              (hidden)
        └── _drafts/x.html    (hidden)

    tmp_path/secret.txt sits next to the mount point, outside it.
    """
    site = tmp_path / "site"
    (site / "css").mkdir(parents=True)
    (site / "js").mkdir()
    (site / "docs").mkdir()
    (site / "_drafts").mkdir()

    (site / "index.html").write_bytes(INDEX_HTML)
    (site / "alphabet.txt").write_bytes(ALPHABET)
    (site / "data.bin").write_bytes(BINARY)
    (site / "NOTES").write_bytes(b"plain notes\n")
    (site / "css" / "site.css").write_bytes(SITE_CSS)
    (site / "js" / "app.js").write_bytes(APP_JS)
    (site / "docs" / "guide.md").write_bytes(b"# Guide\n")
    (site / "docs" / "a b.txt").write_bytes(b"spaced\n")
    (site / ".env").write_bytes(b"SECRET=1\n")
    (site / "_drafts" / "x.html").write_bytes(b"<p>draft</p>\n")

    (tmp_path / "secret.txt").write_bytes(b"do not serve\n")
    return site


@pytest.fixture
def store(asset_dir: Path) -> AssetStore:
    return AssetStore.from_directory(asset_dir)


@pytest.fixture
def make_request() -> Callable[..., HTTPRequest]:
    """Factory for parsed requests: make_request("/x", method="HEAD", headers={...})."""

    def build(path: str, method: str = "GET", headers: Optional[dict] = None,
              version: str = "HTTP/1.1") -> HTTPRequest:
        lines = [f"{method} {path} {version}", "Host: test"]
        lines += [f"{name}: {value}" for name, value in (headers or {}).items()]
        raw = ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")
        return parse_request(raw, ("127.0.0.1", 50000))

    return build


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def config() -> ServerConfig:
    """Test server configuration: ephemeral port, short timeouts."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        min_workers=2,
        timeout=5.0,
        keep_alive_timeout=2.0,
        grace_period=1.0,
        log_level="WARNING",
    )


@pytest.fixture
def access_logger() -> logging.Logger:
    logger = logging.getLogger("staticserve.tests.access")
    logger.setLevel(logging.INFO)
    return logger


@pytest.fixture
def running_server(
    config: ServerConfig,
    store: AssetStore,
    access_logger: logging.Logger,
) -> Generator[HTTPServer, None, None]:
    """A started server on 127.0.0.1:<ephemeral>, shut down afterwards."""
    server = HTTPServer(config, store=store, access_logger=access_logger)
    server.start()

    yield server

    server.shutdown(timeout=1.0)


@pytest.fixture
def client(running_server: HTTPServer) -> Generator[http.client.HTTPConnection, None, None]:
    """http.client connection to the running server."""
    host, port = running_server.address
    conn = http.client.HTTPConnection(host, port, timeout=5)

    yield conn

    conn.close()


def raw_exchange(address: tuple, data: bytes, timeout: float = 5.0) -> bytes:
    """Send raw bytes and read until the server closes the connection."""
    with socket.create_connection(address, timeout=timeout) as sock:
        sock.sendall(data)
        chunks = []
        while True:
            try:
                chunk = sock.recv(65536)
            except ConnectionResetError:
                break
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


@pytest.fixture
def raw_request(running_server: HTTPServer) -> Callable[[bytes], bytes]:
    """Send raw request bytes to the running server; returns the raw reply."""

    def send(data: bytes) -> bytes:
        return raw_exchange(running_server.address, data)

    return send
