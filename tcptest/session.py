import asyncio
import enum
import logging
from typing import NamedTuple, Optional

from .cancellation import CancellationToken
from .errors import PeerClosedError, TcpTestError, TransportError
from .heartbeat import Heartbeat
from .logging import configure_logger
from .transport import LineTransport


class Outcome(enum.Enum):
    CANCELLED = 'cancelled'
    PEER_CLOSED = 'peer closed'
    TRANSPORT_ERROR = 'transport error'


class SessionResult(NamedTuple):
    outcome: Outcome
    error: Optional[TcpTestError]
    sent: int
    received: int


class SessionCounters:
    """Send/receive sequence numbers shared by the sender and the receive task."""

    def __init__(self):
        self.lock = asyncio.Lock()
        self.sent = 0
        self.received = 0

    async def inc_sent(self) -> int:
        async with self.lock:
            self.sent += 1
            return self.sent

    async def inc_received(self) -> int:
        async with self.lock:
            self.received += 1
            return self.received


class SessionRunner:
    """
    Drive one established connection until it ends.

    A background task reads lines while the foreground sends a heartbeat on
    every tick. The session ends on cancellation, when the receive task stops
    (clean EOF or error), or when a send fails. The first failure recorded is
    the one reported.
    """

    def __init__(self, transport: LineTransport, token: CancellationToken,
                 heartbeat: Optional[Heartbeat] = None,
                 logger: Optional[logging.Logger] = None, role: str = 'client'):
        self.transport = transport
        self.token = token
        self.heartbeat = heartbeat or Heartbeat()
        self.logger = logger or configure_logger('tcptest')
        self.role = role
        self.counters = SessionCounters()
        self.error: Optional[TcpTestError] = None

    def _record(self, error: TcpTestError) -> None:
        if self.error is None:
            self.error = error

    async def _send(self) -> bool:
        payload = self.heartbeat.payload()
        try:
            await self.transport.writeline(payload)
        except TransportError as e:
            self._record(e)
            return False
        count = await self.counters.inc_sent()
        self.logger.info(f"{self.role} send #{count}: {payload}")
        return True

    async def _receive_loop(self) -> None:
        while True:
            try:
                line = await self.transport.readline()
            except (PeerClosedError, TransportError) as e:
                self._record(e)
                return
            count = await self.counters.inc_received()
            self.logger.info(f"{self.role} receive #{count}: {line}")

    def _result(self, outcome: Outcome) -> SessionResult:
        error = None if outcome is Outcome.CANCELLED else self.error
        return SessionResult(outcome, error, self.counters.sent, self.counters.received)

    def _finished(self) -> SessionResult:
        if self.token.cancelled:
            return self._result(Outcome.CANCELLED)
        if isinstance(self.error, PeerClosedError):
            return self._result(Outcome.PEER_CLOSED)
        return self._result(Outcome.TRANSPORT_ERROR)

    async def run(self) -> SessionResult:
        if self.token.cancelled:
            return self._result(Outcome.CANCELLED)

        receiver = asyncio.create_task(self._receive_loop())
        cancelled = asyncio.create_task(self.token.wait())
        try:
            if not await self._send():
                return self._finished()
            self.heartbeat.reset()

            while True:
                done, _ = await asyncio.wait(
                    {receiver, cancelled},
                    timeout=self.heartbeat.remaining(),
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if cancelled in done or self.token.cancelled:
                    return self._result(Outcome.CANCELLED)
                if receiver in done:
                    return self._finished()
                self.heartbeat.advance()
                if not await self._send():
                    return self._finished()
        finally:
            for task in (receiver, cancelled):
                if not task.done():
                    task.cancel()
            await asyncio.gather(receiver, cancelled, return_exceptions=True)
