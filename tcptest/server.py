import asyncio
import logging
import time
from typing import Dict, Optional

from .cancellation import CancellationToken
from .errors import PeerClosedError, TransportError, describe_error
from .logging import configure_logger
from .session import SessionCounters
from .transport import LineTransport
from .utils import check_that, join_host_port, timestamp


class EchoServer:
    """Accept connections and answer every received line with the server's own timestamp."""

    def __init__(self, host: str = '0.0.0.0', port: int = 5056,
                 timing_config: Optional[Dict] = None,
                 logger: Optional[logging.Logger] = None):
        self.logger = logger or configure_logger('tcptest')
        self.logger.debug(f"Initializing EchoServer: host={host}, port={port}")
        check_that(host, 'is not empty string', f"Host must be a non-empty string, got {host}")
        check_that(port, 'is port', f"Port must be an integer between 0 and 65535, got {port}")
        check_that(timing_config, 'is dict or none', "timing_config must be a dict or None")

        self.timing_config = {
            'close_timeout': 1.0,
            **(timing_config or {})
        }

        self.host, self.port = host, int(port)
        self.server = None
        self._running = False
        self._active_connections: Dict[int, asyncio.StreamWriter] = {}
        self.counters = SessionCounters()

    @property
    def address(self) -> str:
        return join_host_port(self.host, self.port)

    @property
    def active_connections(self) -> int:
        return len(self._active_connections)

    async def _handle_connection(self, reader, writer):
        conn_id = id(writer)
        self._active_connections[conn_id] = writer
        transport = LineTransport(reader, writer)
        remote = transport.address
        start_time = time.monotonic()
        self.logger.info(f"Client connected: {remote}")
        try:
            while True:
                line = await transport.readline()
                received = await self.counters.inc_received()
                self.logger.info(f"[{remote}] server receive #{received}: {line}")

                reply = timestamp()
                await transport.writeline(reply)
                sent = await self.counters.inc_sent()
                self.logger.info(f"[{remote}] server send #{sent}: {reply}")
        except PeerClosedError:
            pass
        except TransportError as e:
            if self._running:
                self.logger.error(f"[{remote}] {describe_error(e)}")
        except Exception as e:
            self.logger.error(f"[{remote}] Unexpected handler error: {type(e).__name__}: {e}", exc_info=True)
        finally:
            duration = time.monotonic() - start_time
            self.logger.info(f"Client disconnected: {remote} after {duration:.1f}s")
            self._active_connections.pop(conn_id, None)
            transport.close()
            await transport.wait_closed(self.timing_config['close_timeout'])

    async def start_server(self):
        self.logger.debug("Starting server")
        self._running = True
        self.server = await asyncio.start_server(self._handle_connection, self.host, self.port)

        if self.port == 0:
            self.port = self.server.sockets[0].getsockname()[1]

        self.logger.info(f"Listening on {self.address}")
        return self

    def stop_accepting(self) -> None:
        """Stop the listener without touching live connections."""
        self._running = False
        if self.server:
            self.server.close()

    async def close(self):
        self.logger.debug("Closing server")
        self.stop_accepting()

        if self._active_connections:
            self.logger.debug(f"Closing {len(self._active_connections)} active client connection(s)...")
            active_writers = list(self._active_connections.values())
            for writer in active_writers:
                if not writer.is_closing():
                    writer.close()
            await asyncio.gather(*(w.wait_closed() for w in active_writers), return_exceptions=True)

        if self.server:
            try:
                await asyncio.wait_for(self.server.wait_closed(), timeout=self.timing_config['close_timeout'])
            except asyncio.TimeoutError:
                self.logger.debug("Listener wait_closed timed out.")
        self.logger.info("Server closed")

    async def serve(self, token: CancellationToken) -> None:
        """Serve until `token` is cancelled, then shut everything down."""
        await self.start_server()
        closer = token.add_closer(self.stop_accepting)
        try:
            await token.wait()
        finally:
            token.remove_closer(closer)
            await self.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
