from .cancellation import CancellationSource, CancellationToken
from .client import TcpTestClient
from .errors import OperationCancelled, PeerClosedError, TcpTestError, TransportError, describe_error
from .heartbeat import Heartbeat
from .server import EchoServer
from .session import Outcome, SessionResult, SessionRunner
from .transport import LineTransport, open_line_transport
from .utils import check_that, timestamp

"""
tcptest: interactive TCP connectivity tester (heartbeat client / timestamp echo server)
"""

import importlib.metadata

_metadata = importlib.metadata.metadata("tcptest")
__version__ = _metadata["Version"]
__author__ = _metadata.get("Author-email")
__license__ = _metadata.get("License")

__all__ = [
    "CancellationSource",
    "CancellationToken",
    "EchoServer",
    "Heartbeat",
    "LineTransport",
    "OperationCancelled",
    "Outcome",
    "PeerClosedError",
    "SessionResult",
    "SessionRunner",
    "TcpTestClient",
    "TcpTestError",
    "TransportError",
    "check_that",
    "describe_error",
    "open_line_transport",
    "timestamp",
]
