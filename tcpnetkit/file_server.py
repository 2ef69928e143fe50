"""A TCP file server that stores uploaded files and serves them for download."""

from __future__ import annotations

import logging
import signal
import socket
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, Sequence, Union

from tcpnetkit.chat_cli import parse_port
from tcpnetkit.protocol import (
    MAX_FILE_SIZE,
    Message,
    MessageType,
    ProtocolError,
    receive_message,
    send_message,
)
from tcpnetkit.thread_pool import ThreadPool

log = logging.getLogger(__name__)

DEFAULT_PORT = 8080
DEFAULT_STORAGE_PATH = "."
DEFAULT_TIMEOUT = 30
POOL_THREADS = 4
LISTEN_BACKLOG = 10

_ACCEPT_POLL = 0.2


class FileServer:
    """Accepts one request per connection: an upload or a download.

    Files live under ``storage_path``; filenames that would reach outside
    it are refused. Each connection is handled on a worker thread.
    """

    def __init__(
        self,
        port: int,
        storage_path: Union[str, Path],
        timeout_seconds: float = DEFAULT_TIMEOUT,
        host: str = "",
    ) -> None:
        self.storage_path = Path(storage_path)
        self.timeout_seconds = timeout_seconds
        self._requested_port = port
        self._host = host
        self._port: Optional[int] = None
        self._listener: Optional[socket.socket] = None
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self.storage_path.mkdir(parents=True, exist_ok=True)

    @property
    def port(self) -> Optional[int]:
        """The port the server listens on, or None before it has started."""
        return self._port

    @property
    def stopped(self) -> bool:
        """Whether :meth:`stop` has been called."""
        return self._stop_event.is_set()

    def start(self) -> None:
        """Listen and serve connections until :meth:`stop` is called.

        Raises :class:`OSError` if the listening socket cannot be set up.
        """
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind((self._host, self._requested_port))
            listener.listen(LISTEN_BACKLOG)
            listener.settimeout(_ACCEPT_POLL)
        except OSError:
            listener.close()
            raise

        with self._lock:
            if self._stop_event.is_set():
                listener.close()
                return
            self._listener = listener
            self._port = listener.getsockname()[1]

        log.info("TCP file server listening on port %d, storing files in %s", self._port, self.storage_path)
        try:
            with ThreadPool(POOL_THREADS) as pool:
                while not self._stop_event.is_set():
                    try:
                        conn, address = listener.accept()
                    except socket.timeout:
                        continue
                    except OSError as error:
                        if not self._stop_event.is_set():
                            log.error("Failed to accept connection: %s", error)
                        continue
                    conn.settimeout(None)
                    log.info("Accepted connection from %s:%d", address[0], address[1])
                    pool.submit(self.handle_client, conn)
        finally:
            listener.close()
        log.info("Server has stopped.")

    def stop(self) -> None:
        """Stop accepting connections; safe to call more than once."""
        with self._lock:
            if self._stop_event.is_set():
                return
            self._stop_event.set()
            if self._listener is not None:
                self._listener.close()

    def handle_client(self, sock: socket.socket) -> None:
        """Serve one request from ``sock`` and close it."""
        try:
            self._process_message(sock)
        finally:
            sock.close()
            log.info("Client connection closed.")

    def resolve_path(self, filename: str) -> Path:
        """Map a client filename to a path inside the storage directory.

        Raises :class:`ValueError` for empty or absolute names, names holding
        ``..``, and names that resolve outside the storage directory.
        """
        if not filename or filename.startswith("/") or ".." in filename:
            raise ValueError(f"Invalid filename: {filename!r}")
        root = self.storage_path.resolve()
        resolved = (self.storage_path / filename).resolve()
        if resolved != root and root not in resolved.parents:
            raise ValueError(f"Path escapes storage directory: {filename!r}")
        return resolved

    def _process_message(self, sock: socket.socket) -> None:
        try:
            request = receive_message(sock, self.timeout_seconds)
        except ProtocolError as error:
            log.error("%s", error)
            self._respond(sock, Message(MessageType.ERROR, "", str(error).encode()))
            return
        except TimeoutError:
            log.error("Timeout while receiving message")
            return
        except OSError as error:
            log.error("Error receiving data: %s", error)
            return

        if request.type == MessageType.UPLOAD_REQUEST:
            self._handle_upload(sock, request.filename, request.data)
        elif request.type == MessageType.DOWNLOAD_REQUEST:
            self._handle_download(sock, request.filename)
        else:
            log.error("Unknown message type: %d", int(request.type))
            self._respond(sock, Message(MessageType.ERROR, "", b"Unknown message type"))

    def _handle_upload(self, sock: socket.socket, filename: str, data: bytes) -> None:
        def fail(reason: str) -> None:
            self._respond(sock, Message(MessageType.ERROR, filename, reason.encode()))

        try:
            path = self.resolve_path(filename)
        except ValueError:
            fail("Invalid filename")
            return
        try:
            handle = path.open("wb")
        except OSError as error:
            log.error("Failed to open file for writing: %s (%s)", path, error)
            fail("Failed to open file")
            return
        try:
            with handle:
                handle.write(data)
        except OSError as error:
            log.error("Failed to write file: %s (%s)", path, error)
            fail("Failed to write file")
            return

        log.info("File uploaded successfully: %s (%d bytes)", path, len(data))
        self._respond(sock, Message(MessageType.UPLOAD_RESPONSE, filename))

    def _handle_download(self, sock: socket.socket, filename: str) -> None:
        def fail(reason: str) -> None:
            self._respond(sock, Message(MessageType.ERROR, filename, reason.encode()))

        try:
            path = self.resolve_path(filename)
        except ValueError:
            fail("Invalid filename")
            return
        if not path.exists():
            log.error("File not found: %s", path)
            fail("File not found")
            return
        if not path.is_file():
            log.error("Not a regular file: %s", path)
            fail("Not a regular file")
            return
        size = path.stat().st_size
        if size > MAX_FILE_SIZE:
            log.error("File too large: %s (%d bytes)", path, size)
            fail("File too large")
            return
        try:
            handle = path.open("rb")
        except OSError as error:
            log.error("Failed to open file for reading: %s (%s)", path, error)
            fail("Failed to open file")
            return
        try:
            with handle:
                data = handle.read()
        except OSError as error:
            log.error("Failed to read file: %s (%s)", path, error)
            fail("Failed to read file")
            return

        log.info("File downloaded successfully: %s (%d bytes)", path, len(data))
        self._respond(sock, Message(MessageType.DOWNLOAD_RESPONSE, filename, data))

    @staticmethod
    def _respond(sock: socket.socket, message: Message) -> None:
        try:
            send_message(sock, message)
        except OSError as error:
            log.error("Error sending data: %s", error)


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


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the file server: ``[PORT] [STORAGE_PATH]``. Returns the exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    port = DEFAULT_PORT
    if args:
        try:
            port = parse_port(args[0])
        except ValueError as error:
            print(error, file=sys.stderr)
            return 1
    storage_path = args[1] if len(args) > 1 else DEFAULT_STORAGE_PATH

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    try:
        server = FileServer(port, storage_path)
    except OSError as error:
        print(f"Failed to prepare storage directory: {error}", file=sys.stderr)
        return 1

    def on_signal(signum: int, _frame: object) -> None:
        print(f"\nReceived signal {signum}. Shutting down server...")
        server.stop()

    with _handle_signals(on_signal):
        try:
            server.start()
        except OSError as error:
            print(f"Failed to start server: {error}", file=sys.stderr)
            return 1
    return 0