import time
from datetime import datetime, timedelta
from typing import Any, Optional
from .logging import configure_logger

logger = configure_logger('tcptest')


def check_that(arg: Any, req: str, msg: str) -> None:
    """
    Validate an argument against a specified requirement.

    Args:
        arg: The argument to validate.
        req: The requirement string (e.g., 'is number', 'is positive', 'is port').
        msg: The error message to log and raise if validation fails.

    Raises:
        ValueError: If the argument does not meet the requirement.
    """
    requirements = {
        'is number': lambda x: isinstance(x, (int, float)) and not isinstance(x, bool),
        'is positive': lambda x: isinstance(x, (int, float)) and not isinstance(x, bool) and x > 0,
        'is not empty string': lambda x: isinstance(x, str) and len(x.strip()) > 0,
        'is dict or none': lambda x: x is None or isinstance(x, dict),
        'is port': lambda x: isinstance(x, int) and not isinstance(x, bool) and 0 <= x <= 65535,
    }

    if req not in requirements:
        logger.error(f"Unknown requirement: {req}")
        raise ValueError(f"Unknown requirement: {req}")

    if not requirements[req](arg):
        logger.error(msg)
        raise ValueError(msg)


def timestamp(now_ns: Optional[int] = None) -> str:
    """
    Current local time as RFC3339 with nanoseconds.

    The fraction keeps only significant digits and UTC is written as 'Z',
    e.g. '2024-05-01T10:20:30.1234567+02:00'.
    """
    if now_ns is None:
        now_ns = time.time_ns()
    seconds, nanos = divmod(now_ns, 1_000_000_000)
    moment = datetime.fromtimestamp(seconds).astimezone()
    text = moment.strftime('%Y-%m-%dT%H:%M:%S')
    fraction = f"{nanos:09d}".rstrip('0')
    if fraction:
        text += '.' + fraction
    offset = moment.utcoffset() or timedelta(0)
    if not offset:
        return text + 'Z'
    sign = '+' if offset >= timedelta(0) else '-'
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def parse_timestamp(text: str) -> datetime:
    """Parse a timestamp() string; digits beyond microseconds are dropped."""
    text = text.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    head, offset = text[:-6], text[-6:]
    if len(text) < 6 or offset[0] not in '+-' or offset[3] != ':':
        raise ValueError(f"Invalid RFC3339 timestamp: {text!r}")
    if '.' in head:
        head, fraction = head.split('.', 1)
        if not fraction.isdigit():
            raise ValueError(f"Invalid RFC3339 timestamp: {text!r}")
        head = f"{head}.{fraction[:6].ljust(6, '0')}"
    else:
        head += '.000000'
    return datetime.strptime(head + offset, '%Y-%m-%dT%H:%M:%S.%f%z')


def join_host_port(host: str, port: int) -> str:
    if ':' in host and not host.startswith('['):
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def parse_port(text: str) -> int:
    try:
        port = int(str(text).strip())
    except ValueError:
        raise ValueError(f"Port must be an integer between 1 and 65535, got {text!r}") from None
    if not 1 <= port <= 65535:
        raise ValueError(f"Port must be an integer between 1 and 65535, got {text!r}")
    return port
