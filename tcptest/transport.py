# tcptest/transport.py

import asyncio
import socket
from .errors import PeerClosedError, TransportError
from .logging import configure_logger
from .utils import join_host_port

logger = configure_logger('tcptest')

# Errors raised while tearing down a connection that is already broken.
CLOSE_ERRORS = (ConnectionError, OSError)


def enable_keepalive(sock: socket.socket, interval: float) -> None:
    """Turn on TCP keep-alive probes every `interval` seconds where supported."""
    seconds = max(1, int(interval))
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
    if hasattr(socket, 'TCP_KEEPIDLE'):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, seconds)
    elif hasattr(socket, 'TCP_KEEPALIVE'):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPALIVE, seconds)
    if hasattr(socket, 'TCP_KEEPINTVL'):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, seconds)


class LineTransport:
    """
    Newline-delimited UTF-8 text over an asyncio stream pair.

    Every failure surfaces as PeerClosedError (clean EOF) or TransportError;
    anything not defined here falls through to the underlying writer.
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, address: str = ''):
        self._reader = reader
        self._writer = writer
        if not address:
            peer = writer.get_extra_info('peername')
            address = join_host_port(str(peer[0]), peer[1]) if peer else 'unknown'
        self.address = address

    async def readline(self) -> str:
        try:
            data = await self._reader.readuntil(b'\n')
        except asyncio.IncompleteReadError as e:
            if not e.partial:
                raise PeerClosedError(self.address) from e
            # Unterminated last line; EOF is reported on the next call.
            data = e.partial
        except asyncio.LimitOverrunError as e:
            raise TransportError('read', self.address, e) from e
        except OSError as e:
            raise TransportError('read', self.address, e) from e
        return data.decode('utf-8', errors='replace').rstrip('\r\n')

    async def writeline(self, text: str) -> None:
        if self._writer.is_closing():
            raise TransportError('write', self.address, ConnectionResetError('transport is closing'))
        try:
            self._writer.write(text.encode('utf-8') + b'\n')
            await self._writer.drain()
        except OSError as e:
            raise TransportError('write', self.address, e) from e

    def is_closing(self) -> bool:
        return self._writer.is_closing()

    def close(self) -> None:
        if not self._writer.is_closing():
            self._writer.close()

    async def wait_closed(self, timeout: float = 1.0) -> None:
        try:
            await asyncio.wait_for(self._writer.wait_closed(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Closing {self.address} timed out after {timeout} seconds.")
        except CLOSE_ERRORS:
            pass

    def __getattr__(self, name):
        return getattr(self._writer, name)


async def _connect_first(host: str, port: int, address: str):
    """
    Try each resolved address in order and keep the first failure.

    asyncio.open_connection() folds per-address failures into one OSError
    without an errno, which would hide ECONNREFUSED and friends.
    """
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except OSError as e:
        raise TransportError('dial', address, e) from e

    first_error = None
    for family, _, _, _, sockaddr in infos:
        try:
            return await asyncio.open_connection(sockaddr[0], sockaddr[1], family=family)
        except OSError as e:
            if first_error is None:
                first_error = e
    if first_error is None:
        first_error = OSError(f"no addresses found for {host}")
    raise TransportError('dial', address, first_error) from first_error


async def open_line_transport(host: str, port: int, timeout: float = 5.0,
                              keepalive_interval: float = 5.0) -> LineTransport:
    """Dial host:port within `timeout` seconds and wrap the connection."""
    address = join_host_port(host, port)
    try:
        reader, writer = await asyncio.wait_for(_connect_first(host, port, address), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise TransportError('dial', address, e) from e

    sock = writer.get_extra_info('socket')
    if sock is not None and keepalive_interval:
        try:
            enable_keepalive(sock, keepalive_interval)
        except OSError as e:
            logger.debug(f"Could not enable keep-alive on {address}: {e}")
    return LineTransport(reader, writer, address)
