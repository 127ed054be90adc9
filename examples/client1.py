#!/usr/bin/env python3

import os
import sys
import asyncio

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from tcptest.cli import run_client
from tcptest.utils import parse_port


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print(f"Usage: {sys.argv[0]} <host> <port>")
        sys.exit(1)
    try:
        parsed_port = parse_port(sys.argv[2])
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    # Fast cadence for watching reconnects by hand: heartbeat every second, retry after one.
    asyncio.run(run_client(sys.argv[1], parsed_port, {'heartbeat_interval': 1.0, 'retry_delay': 1.0}))
