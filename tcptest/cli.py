import argparse
import asyncio
import sys
from typing import Callable, Optional, TextIO

from .cancellation import CancellationSource
from .client import TcpTestClient
from .logging import attach_log_file, configure_logger, detach_log_file
from .server import EchoServer
from .utils import join_host_port, parse_port

logger = configure_logger('tcptest')

PRESET_ENDPOINTS = (
    ('10.41.100.54', 5056),
    ('10.170.0.96', 5056),
)
DEFAULT_BIND_HOST = '0.0.0.0'
DEFAULT_PORT = 5056


class InputError(Exception):
    """Missing or malformed interactive input."""


async def run_client(host: str, port: int, timing_config=None) -> None:
    handler = attach_log_file(logger, 'client')
    try:
        client = TcpTestClient(host, port, timing_config=timing_config, logger=logger)
        async with CancellationSource(logger=logger) as token:
            await client.run(token)
        logger.info("Client shut down.")
    finally:
        detach_log_file(logger, handler)


async def run_server(host: str, port: int) -> None:
    handler = attach_log_file(logger, 'server')
    try:
        server = EchoServer(host, port, logger=logger)
        async with CancellationSource(logger=logger) as token:
            await server.serve(token)
        logger.info("Server shut down.")
    except OSError as e:
        logger.error(f"Failed to listen on {join_host_port(host, port)}: {e}")
    finally:
        detach_log_file(logger, handler)


class Menu:
    """Interactive front end: pick a role, then an endpoint."""

    def __init__(self, stdin: TextIO = sys.stdin, stdout: TextIO = sys.stdout,
                 runner: Callable = asyncio.run):
        self.stdin = stdin
        self.stdout = stdout
        self.runner = runner

    def _say(self, text: str = '', end: str = '\n') -> None:
        self.stdout.write(text + end)
        self.stdout.flush()

    def _ask(self, prompt: str) -> str:
        self._say(prompt, end='')
        line = self.stdin.readline()
        if not line:
            raise EOFError("end of input")
        return line.strip()

    def choose_endpoint(self):
        self._say("Select server address:")
        for i, (host, port) in enumerate(PRESET_ENDPOINTS, start=1):
            self._say(f"{i}) {host}:{port}")
        self._say(f"{len(PRESET_ENDPOINTS) + 1}) Custom")
        choice = self._ask("Choose: ")
        if choice.isdigit() and 1 <= int(choice) <= len(PRESET_ENDPOINTS):
            return PRESET_ENDPOINTS[int(choice) - 1]

        host = self._ask("Server IP: ")
        if not host:
            raise InputError("IP must not be empty")
        port = self._ask("Server port: ")
        if not port:
            raise InputError("Port must not be empty")
        try:
            return host, parse_port(port)
        except ValueError as e:
            raise InputError(str(e)) from e

    def choose_bind_address(self):
        host = self._ask(f"Listen IP (Enter for {DEFAULT_BIND_HOST}): ") or DEFAULT_BIND_HOST
        port = self._ask(f"Listen port (Enter for {DEFAULT_PORT}): ")
        if not port:
            return host, DEFAULT_PORT
        try:
            return host, parse_port(port)
        except ValueError as e:
            raise InputError(str(e)) from e

    def loop(self) -> None:
        while True:
            self._say("==== TCP test tool ====")
            self._say("1) TCP client")
            self._say("2) TCP server")
            self._say("q) Quit")
            try:
                choice = self._ask("Choose: ").lower()
                if choice == '1':
                    host, port = self.choose_endpoint()
                    self.runner(run_client(host, port))
                elif choice == '2':
                    host, port = self.choose_bind_address()
                    self.runner(run_server(host, port))
                elif choice in ('q', 'quit', 'exit'):
                    return
                else:
                    self._say("Invalid choice")
            except InputError as e:
                self._say(f"Input error: {e}")
            except EOFError:
                return


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='tcptest',
        description="TCP connectivity tester: heartbeat client or timestamp echo server.",
    )
    sub = parser.add_subparsers(dest='role')

    client = sub.add_parser('client', help="connect and send a timestamp every 5 seconds")
    client.add_argument('host')
    client.add_argument('port', type=parse_port)
    client.add_argument('--retry-delay', type=float, default=3.0)
    client.add_argument('--interval', type=float, default=5.0)

    server = sub.add_parser('server', help="reply to every line with a timestamp")
    server.add_argument('host', nargs='?', default=DEFAULT_BIND_HOST)
    server.add_argument('port', nargs='?', type=parse_port, default=DEFAULT_PORT)
    return parser


def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.role == 'client':
        timing_config = {'retry_delay': args.retry_delay, 'heartbeat_interval': args.interval}
        asyncio.run(run_client(args.host, args.port, timing_config))
    elif args.role == 'server':
        asyncio.run(run_server(args.host, args.port))
    else:
        Menu().loop()
    return 0
