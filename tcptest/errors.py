import asyncio
import errno
import socket
from typing import Optional

TRANSIENT_ERRNOS = frozenset(
    getattr(errno, name) for name in (
        'EAGAIN', 'EWOULDBLOCK', 'EINTR', 'ECONNREFUSED', 'ECONNRESET',
        'ECONNABORTED', 'ETIMEDOUT', 'ENETUNREACH', 'EHOSTUNREACH',
        'ENETDOWN', 'EHOSTDOWN', 'EPIPE',
    ) if hasattr(errno, name)
)

# System call behind each operation, reported alongside the errno name.
SYSCALLS = {'dial': 'connect', 'read': 'read', 'write': 'write'}


class TcpTestError(Exception):
    """Base class for all tcptest errors."""


class PeerClosedError(TcpTestError):
    """The peer closed its side of the stream cleanly (EOF)."""

    def __init__(self, address: str = ''):
        self.address = address
        super().__init__(f"EOF from {address}" if address else "EOF")


class OperationCancelled(TcpTestError):
    """A guarded operation was abandoned because cancellation fired first."""


class TransportError(TcpTestError):
    """
    A dial, read or write failure on a TCP connection.

    Attributes:
        op: 'dial', 'read' or 'write'.
        network: Always 'tcp'.
        address: Remote 'host:port'.
        cause: The underlying exception, also chained as __cause__.
    """

    def __init__(self, op: str, address: str, cause: BaseException, network: str = 'tcp'):
        self.op = op
        self.network = network
        self.address = address
        self.cause = cause
        super().__init__(f"{op} {network} {address}: {str(cause) or type(cause).__name__}")

    @property
    def timeout(self) -> bool:
        if isinstance(self.cause, (asyncio.TimeoutError, TimeoutError, socket.timeout)):
            return True
        return self.errno == errno.ETIMEDOUT

    @property
    def errno(self) -> Optional[int]:
        if isinstance(self.cause, socket.gaierror):
            return None
        return getattr(self.cause, 'errno', None)

    @property
    def errno_name(self) -> Optional[str]:
        if self.errno is None:
            return None
        return errno.errorcode.get(self.errno, str(self.errno))

    @property
    def syscall(self) -> Optional[str]:
        if self.errno is None:
            return None
        return SYSCALLS.get(self.op, self.op)

    @property
    def transient(self) -> bool:
        if isinstance(self.cause, socket.gaierror):
            return self.cause.errno == getattr(socket, 'EAI_AGAIN', None)
        return self.timeout or self.errno in TRANSIENT_ERRNOS


def describe_error(exc: BaseException) -> str:
    """
    Render a failure as a single log line.

    Clean EOF, network errors and system call errors are told apart so an
    operator can see what kind of failure ended a dial or a session.
    """
    if isinstance(exc, PeerClosedError):
        return f"peer closed the connection (EOF) from {exc.address or 'remote'}"
    if isinstance(exc, TransportError):
        detail = (f"network error: op={exc.op} net={exc.network} addr={exc.address} "
                  f"timeout={exc.timeout} transient={exc.transient}")
        if exc.errno is not None:
            detail += f"; syscall error: {exc.syscall} {exc.errno_name}"
            reason = getattr(exc.cause, 'strerror', None)
            if reason:
                detail += f" ({reason})"
        else:
            detail += f"; cause: {type(exc.cause).__name__}: {exc.cause}"
        return detail
    return f"{type(exc).__name__}: {exc}"
