"""Command-line entry points for the chat server and chat client."""

from __future__ import annotations

import logging
import re
import signal
import sys
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, Sequence

from tcpnetkit.chat_client import ChatClient
from tcpnetkit.chat_server import ChatServer

DEFAULT_PORT = 8080
DEFAULT_SERVER_IP = "127.0.0.1"
SERVER_THREADS = 4

_INT_PREFIX = re.compile(r"\s*([+-]?[0-9]+)")


def parse_port(text: str) -> int:
    """Read a port number from the leading digits of ``text``.

    Raises :class:`ValueError` if there is no number or it is outside 1..65535.
    """
    match = _INT_PREFIX.match(text)
    if match is None:
        raise ValueError(f"Invalid port number: {text}")
    port = int(match.group(1))
    if not 0 < port <= 65535:
        raise ValueError("Invalid port number. Must be between 1 and 65535.")
    return port


@contextmanager
def _handle_signals(handler: Callable[[int, object], None]) -> Iterator[None]:
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = {signum: signal.signal(signum, handler) for signum in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for signum, old_handler in previous.items():
            if old_handler is not None:
                signal.signal(signum, old_handler)


def _configure_logging() -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")


def server_main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the chat server: ``[PORT]``. Returns the exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    port = DEFAULT_PORT
    if args:
        try:
            port = parse_port(args[0])
        except ValueError as error:
            print(error, file=sys.stderr)
            return 1

    _configure_logging()
    try:
        server = ChatServer(port, SERVER_THREADS)
    except OSError as error:
        print(f"Error: {error}", file=sys.stderr)
        return 1

    def on_signal(signum: int, _frame: object) -> None:
        print(f"\nReceived signal {signum}. Shutting down server...")
        server.stop()

    with _handle_signals(on_signal):
        print(f"Starting TCP chat server on port {port}...")
        server.run()
    print("Server has stopped.")
    return 0


def client_main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the chat client: ``[SERVER_IP] [PORT]``. Returns the exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    server_ip = args[0] if args else DEFAULT_SERVER_IP
    port = DEFAULT_PORT
    if len(args) > 1:
        try:
            port = parse_port(args[1])
        except ValueError as error:
            print(error, file=sys.stderr)
            return 1

    _configure_logging()
    client = ChatClient(server_ip, port)
    try:
        client.connect()
    except (OSError, ValueError) as error:
        print(f"Failed to connect to server {server_ip}:{port}: {error}", file=sys.stderr)
        return 1
    print(f"Connected to server {server_ip}:{port}")

    def on_signal(signum: int, _frame: object) -> None:
        print(f"\nReceived signal {signum}. Disconnecting from server...")
        client.disconnect()

    try:
        with _handle_signals(on_signal):
            client.run()
    except (OSError, RuntimeError) as error:
        print(f"Error: {error}", file=sys.stderr)
        return 1
    finally:
        client.disconnect()
    print("Client has disconnected.")
    return 0