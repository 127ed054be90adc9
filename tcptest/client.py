import logging
from typing import Dict, Optional

from .cancellation import CancellationToken
from .errors import OperationCancelled, TransportError, describe_error
from .heartbeat import Heartbeat
from .logging import configure_logger
from .session import Outcome, SessionRunner
from .transport import open_line_transport
from .utils import check_that, join_host_port


class TcpTestClient:
    """
    Heartbeat client that keeps reconnecting to one endpoint until cancelled.

    Every dial failure or finished session is followed by the same fixed
    retry delay, whatever ended it.
    """

    def __init__(self, host: str, port: int,
                 timing_config: Optional[Dict] = None,
                 logger: Optional[logging.Logger] = None):
        self.logger = logger or configure_logger('tcptest')
        self.logger.debug(f"Initializing TcpTestClient: host={host}, port={port}")
        check_that(host, 'is not empty string', f"Host must be a non-empty string, got {host}")
        check_that(port, 'is port', f"Port must be an integer between 0 and 65535, got {port}")
        check_that(timing_config, 'is dict or none', "timing_config must be a dict or None")

        self.timing_config = {
            'dial_timeout': 5.0,
            'keepalive_interval': 5.0,
            'heartbeat_interval': 5.0,
            'retry_delay': 3.0,
            'close_timeout': 1.0,
            **(timing_config or {})
        }
        for key in ('dial_timeout', 'heartbeat_interval'):
            check_that(self.timing_config[key], 'is positive', f"{key} must be a positive number")
        check_that(self.timing_config['retry_delay'], 'is number', "retry_delay must be a number")

        self.host, self.port = host, port
        self.address = join_host_port(host, port)
        self.attempts = 0
        self.sessions = 0

    async def _dial(self, token: CancellationToken):
        self.attempts += 1
        self.logger.info(f"Connecting to {self.address} (attempt {self.attempts})...")
        return await token.guard(open_line_transport(
            self.host, self.port,
            timeout=self.timing_config['dial_timeout'],
            keepalive_interval=self.timing_config['keepalive_interval'],
        ))

    async def _run_session(self, transport, token: CancellationToken):
        closer = token.add_closer(transport.close)
        try:
            runner = SessionRunner(
                transport, token,
                heartbeat=Heartbeat(self.timing_config['heartbeat_interval']),
                logger=self.logger,
            )
            return await runner.run()
        finally:
            token.remove_closer(closer)
            transport.close()
            await transport.wait_closed(self.timing_config['close_timeout'])
            self.sessions += 1

    async def _backoff(self, token: CancellationToken) -> bool:
        """Wait out the retry delay. Returns True if cancelled meanwhile."""
        delay = self.timing_config['retry_delay']
        self.logger.info(f"Reconnecting to {self.address} in {delay} seconds...")
        return await token.wait(delay)

    async def run(self, token: CancellationToken) -> None:
        """Dial, run a session, wait, repeat. Returns only once `token` is cancelled."""
        while not token.cancelled:
            try:
                transport = await self._dial(token)
            except OperationCancelled:
                break
            except TransportError as e:
                self.logger.error(f"Connection to {self.address} failed: {describe_error(e)}")
                if await self._backoff(token):
                    break
                continue

            self.logger.info(f"Connected to {self.address}")
            result = await self._run_session(transport, token)

            if result.outcome is Outcome.CANCELLED:
                break
            if result.outcome is Outcome.PEER_CLOSED:
                self.logger.warning(
                    f"Disconnected from {self.address}: server closed the connection "
                    f"(sent {result.sent}, received {result.received})"
                )
            else:
                self.logger.error(
                    f"Disconnected from {self.address}: {describe_error(result.error)} "
                    f"(sent {result.sent}, received {result.received})"
                )
            if await self._backoff(token):
                break

        self.logger.info(f"Client for {self.address} stopped")
