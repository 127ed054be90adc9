import asyncio
import signal
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from .errors import OperationCancelled
from .logging import configure_logger

logger = configure_logger('tcptest')

T = TypeVar('T')

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class CancellationToken:
    """
    One-shot cooperative cancellation shared by every loop of a run.

    Closers registered with add_closer() run once when the token fires, so
    blocked reads and accepts are released by closing what they wait on.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._closers = []
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Optional[str] = None) -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        closers, self._closers = self._closers, []
        for closer in closers:
            self._run_closer(closer)

    def add_closer(self, closer: Callable[[], None]) -> Callable[[], None]:
        if self.cancelled:
            self._run_closer(closer)
        else:
            self._closers.append(closer)
        return closer

    def remove_closer(self, closer: Callable[[], None]) -> None:
        if closer in self._closers:
            self._closers.remove(closer)

    @staticmethod
    def _run_closer(closer):
        try:
            closer()
        except Exception as e:
            logger.info(f"Error while closing on cancellation: {e}", exc_info=True)

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """Sleep up to `timeout` seconds, waking early on cancellation. Returns True if cancelled."""
        if self.cancelled:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable` unless cancellation fires first.

        Raises:
            OperationCancelled: The token fired; the operation was cancelled.
        """
        task = asyncio.ensure_future(awaitable)
        if self.cancelled:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise OperationCancelled(self.reason or "cancelled")
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        if task.done() and not task.cancelled():
            return task.result()
        raise OperationCancelled(self.reason or "cancelled")


class CancellationSource:
    """
    Translate the first SIGINT/SIGTERM of a run into token cancellation.

    Usage:
        async with CancellationSource() as token:
            await client.run(token)
    """

    def __init__(self, signals: Sequence[signal.Signals] = SHUTDOWN_SIGNALS, logger=None):
        self.signals = tuple(signals)
        self.token = CancellationToken()
        self.logger = logger or configure_logger('tcptest')
        self._loop = None
        self._installed = []

    def _on_signal(self, sig: signal.Signals):
        self.logger.info(f"Received shutdown signal: {sig.name}. Starting graceful shutdown...")
        self._remove_handlers()
        self.token.cancel(reason=sig.name)

    def _remove_handlers(self):
        for sig in self._installed:
            self._loop.remove_signal_handler(sig)
        self._installed = []

    async def __aenter__(self) -> CancellationToken:
        self._loop = asyncio.get_running_loop()
        for sig in self.signals:
            try:
                self._loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError) as e:
                self.logger.debug(f"Cannot handle {sig.name} on this platform: {e}")
                continue
            self._installed.append(sig)
        return self.token

    async def __aexit__(self, exc_type, exc, tb):
        self._remove_handlers()
