import asyncio
import logging
import os
import socket
from logging import NullHandler
from typing import Awaitable, Callable, Optional
from unittest.mock import MagicMock

import pytest

# Test configuration - allow override via environment variables
TEST_HOST = os.environ.get("TCPBANNER_TEST_HOST", "127.0.0.1")


ClientScript = Callable[
    ["BannerServer", asyncio.StreamReader, asyncio.StreamWriter], Awaitable[None]
]


class BannerServer:
    """Loopback server that plays a scripted peer for one or more clients.

    The script decides what the peer sends and when it closes. Bytes the
    client writes back (negotiation replies) are collected in ``received``.
    """

    def __init__(self, script: ClientScript):
        self.script = script
        self.server: Optional[asyncio.AbstractServer] = None
        self.port: int = 0
        self.received = bytearray()
        self.client_closed = asyncio.Event()

    async def __aenter__(self) -> "BannerServer":
        self.server = await asyncio.start_server(self.handle_client, TEST_HOST, 0)
        self.port = self.server.sockets[0].getsockname()[1]
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.server:
            self.server.close()
            await self.server.wait_closed()

    async def handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            await self.script(self, reader, writer)
        except ConnectionError:
            self.client_closed.set()
        finally:
            writer.close()

    async def wait_for_client_close(self, reader: asyncio.StreamReader) -> None:
        """Read until the scanner hangs up, keeping whatever it sent."""
        try:
            while True:
                data = await reader.read(1024)
                if not data:
                    break
                self.received += data
        except ConnectionError:
            pass
        self.client_closed.set()


@pytest.fixture
def closed_port():
    """A loopback port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind((TEST_HOST, 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture
def mock_sync_writer():
    """Writer double with a plain synchronous write()."""
    writer = MagicMock()
    writer.write = MagicMock()
    return writer


@pytest.fixture
def preserve_root_logger():
    """Restore root logger level and handlers after tests that call setup_logging."""
    root = logging.getLogger()
    old_level = root.level
    old_handlers = root.handlers[:]
    yield
    for h in root.handlers[:]:
        if h not in old_handlers:
            root.removeHandler(h)
    for h in old_handlers:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(old_level)


@pytest.fixture(autouse=True)
def suppress_logging():
    logger = logging.getLogger()
    null_handler = NullHandler()
    logger.addHandler(null_handler)
    yield
    try:
        logger.removeHandler(null_handler)
    except ValueError:
        pass


def pytest_configure(config):
    config.addinivalue_line("markers", "property: hypothesis property-based tests")


@pytest.fixture
def test_host():
    return TEST_HOST


@pytest.fixture
def banner_server():
    """Factory for scripted loopback peers: ``async with banner_server(script)``."""
    return BannerServer
