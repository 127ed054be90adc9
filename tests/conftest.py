import pytest
import pytest_asyncio
import asyncio
import errno
import os
import socket
import sys
import logging

logger = logging.getLogger('tcptest.test')
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from tcptest import CancellationToken, EchoServer
from tcptest.errors import PeerClosedError, TransportError


class FakeTransport:
    """In-memory LineTransport: lines (or exceptions) to deliver go into `incoming`."""

    def __init__(self, address='fake:5056', fail_write_after=None):
        self.address = address
        self.incoming = asyncio.Queue()
        self.sent = []
        self.fail_write_after = fail_write_after
        self.closed = False
        self.read_cancelled = False

    async def readline(self):
        try:
            item = await self.incoming.get()
        except asyncio.CancelledError:
            self.read_cancelled = True
            raise
        if isinstance(item, BaseException):
            raise item
        return item

    async def writeline(self, text):
        if self.closed:
            raise TransportError('write', self.address, ConnectionResetError(errno.ECONNRESET, 'Connection reset by peer'))
        if self.fail_write_after is not None and len(self.sent) >= self.fail_write_after:
            raise TransportError('write', self.address, BrokenPipeError(errno.EPIPE, 'Broken pipe'))
        self.sent.append((asyncio.get_running_loop().time(), text))

    def close(self):
        if not self.closed:
            self.closed = True
            self.incoming.put_nowait(PeerClosedError(self.address))

    def is_closing(self):
        return self.closed

    async def wait_closed(self, timeout=1.0):
        pass


@pytest.fixture
def fake_transport_factory():
    def _factory(**kwargs):
        return FakeTransport(**kwargs)
    return _factory


@pytest_asyncio.fixture
async def token():
    """Фикстура для токена отмены одного прогона."""
    return CancellationToken()


@pytest.fixture
def fast_timing():
    return {
        'dial_timeout': 1.0,
        'keepalive_interval': 1.0,
        'heartbeat_interval': 0.1,
        'retry_delay': 0.1,
        'close_timeout': 0.5,
    }


@pytest_asyncio.fixture
async def echo_server():
    """Фикстура для запущенного эхо-сервера на свободном порту."""
    server = EchoServer(host='127.0.0.1', port=0)
    await server.start_server()
    try:
        yield server
    finally:
        await server.close()


@pytest_asyncio.fixture
async def line_server_factory():
    """Raw asyncio server running a custom handler; returns its port."""
    servers = []

    async def _factory(handler):
        server = await asyncio.start_server(handler, '127.0.0.1', 0)
        servers.append(server)
        return server.sockets[0].getsockname()[1]

    yield _factory
    for server in servers:
        server.close()
        try:
            await asyncio.wait_for(server.wait_closed(), timeout=1.0)
        except asyncio.TimeoutError:
            logger.debug("raw test server still has open connections")


@pytest.fixture
def unused_port():
    """A port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(('127.0.0.1', 0))
        return sock.getsockname()[1]
