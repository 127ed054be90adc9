#!/usr/bin/env python3

import os
import sys
import asyncio

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from tcptest import CancellationSource, EchoServer
from tcptest.logging import configure_logger

logger = configure_logger('tcptest')


async def main(port: int):
    """Serve on localhost until SIGINT/SIGTERM, printing the number of live connections every 5 seconds."""
    server = EchoServer(host='127.0.0.1', port=port)
    async with CancellationSource() as token:
        async with await server.start_server():
            token.add_closer(server.stop_accepting)
            while not await token.wait(5):
                logger.info(f"{server.active_connections} active connection(s), "
                            f"{server.counters.received} line(s) answered")
    print("Server has been shut down.")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(f"Usage: {sys.argv[0]} <port>")
        sys.exit(1)
    try:
        parsed_port = int(sys.argv[1])
        if not 1 <= parsed_port <= 65535:
            raise ValueError
    except ValueError:
        print("Error: Port must be an integer between 1 and 65535")
        sys.exit(1)

    try:
        asyncio.run(main(port=parsed_port))
    except OSError as e:
        print(f"Server: Failed to start: {e}")
        sys.exit(1)
