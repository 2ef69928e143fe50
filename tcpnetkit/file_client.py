"""Client side of the file transfer protocol and its command-line entry point."""

from __future__ import annotations

import logging
import socket
import sys
from pathlib import Path
from typing import Optional, Sequence, Union

from tcpnetkit.chat_cli import parse_port
from tcpnetkit.protocol import (
    MAX_FILE_SIZE,
    Message,
    MessageType,
    ProtocolError,
    receive_message,
    send_message,
)

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30

_USAGE = (
    "Usage: {prog} [SERVER_IP] [PORT] [COMMAND] [ARGS...]\n"
    "Commands:\n"
    "  upload [LOCAL_FILE] [REMOTE_FILENAME]\n"
    "  download [REMOTE_FILENAME] [LOCAL_FILE]"
)

PathLike = Union[str, Path]


class TransferError(Exception):
    """Raised when a transfer is refused or the server answers unexpectedly."""


class FileClient:
    """Uploads files to and downloads files from a file server.

    The server answers one request per connection, so connect once for
    each transfer.
    """

    def __init__(self, timeout_seconds: float = DEFAULT_TIMEOUT) -> None:
        self.timeout_seconds = timeout_seconds
        self._sock: Optional[socket.socket] = None

    @property
    def connected(self) -> bool:
        """Whether the client holds an open connection."""
        return self._sock is not None

    def connect(self, server_ip: str, port: int) -> None:
        """Connect to the server.

        Raises :class:`ValueError` for an address that is not IPv4 and
        :class:`OSError` when the connection cannot be made.
        """
        if self._sock is not None:
            raise RuntimeError("Already connected to a server")
        try:
            socket.inet_pton(socket.AF_INET, server_ip)
        except OSError:
            raise ValueError(f"Invalid address/ Address not supported: {server_ip}") from None
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.connect((server_ip, port))
        except OSError:
            sock.close()
            raise
        self._sock = sock
        log.info("Connected to server %s:%d", server_ip, port)

    def disconnect(self) -> None:
        """Close the connection; does nothing when not connected."""
        sock, self._sock = self._sock, None
        if sock is not None:
            sock.close()
            log.info("Disconnected from server.")

    def upload_file(self, local_path: PathLike, remote_filename: str) -> None:
        """Send a local file to the server under ``remote_filename``.

        Raises :class:`FileNotFoundError` if the file is missing and
        :class:`TransferError` if it is not a regular file, is too large,
        or the server refuses it.
        """
        sock = self._require_connection()
        path = Path(local_path)
        if not path.exists():
            raise FileNotFoundError(f"Local file not found: {path}")
        if not path.is_file():
            raise TransferError(f"Not a regular file: {path}")
        size = path.stat().st_size
        if size > MAX_FILE_SIZE:
            raise TransferError(f"File too large: {path} ({size} bytes)")
        data = path.read_bytes()

        send_message(sock, Message(MessageType.UPLOAD_REQUEST, remote_filename, data))
        response = receive_message(sock, self.timeout_seconds)
        self._check_response(response, MessageType.UPLOAD_RESPONSE)
        log.info("File uploaded successfully: %s -> %s", path, remote_filename)

    def download_file(self, remote_filename: str, local_path: PathLike) -> int:
        """Fetch ``remote_filename`` into ``local_path``; returns the bytes written.

        Raises :class:`TransferError` if the server refuses the request.
        """
        sock = self._require_connection()
        send_message(sock, Message(MessageType.DOWNLOAD_REQUEST, remote_filename))
        response = receive_message(sock, self.timeout_seconds)
        self._check_response(response, MessageType.DOWNLOAD_RESPONSE)
        path = Path(local_path)
        path.write_bytes(response.data)
        log.info(
            "File downloaded successfully: %s -> %s (%d bytes)", remote_filename, path, len(response.data)
        )
        return len(response.data)

    def __enter__(self) -> FileClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    def _require_connection(self) -> socket.socket:
        if self._sock is None:
            raise RuntimeError("Not connected to a server.")
        return self._sock

    @staticmethod
    def _check_response(response: Message, expected: MessageType) -> None:
        if response.type == expected:
            return
        if response.type == MessageType.ERROR:
            reason = response.data.decode("utf-8", errors="replace")
            raise TransferError(f"Server error: {reason}")
        raise TransferError(f"Unexpected response type: {int(response.type)}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run one transfer: ``SERVER_IP PORT upload|download ARGS...``. Returns the exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    prog = Path(sys.argv[0]).name if sys.argv and sys.argv[0] else "file-client"
    usage = _USAGE.format(prog=prog)
    if len(args) < 3:
        print(usage, file=sys.stderr)
        return 1

    server_ip = args[0]
    try:
        port = parse_port(args[1])
    except ValueError as error:
        print(error, file=sys.stderr)
        return 1
    command = args[2]

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    with FileClient() as client:
        try:
            client.connect(server_ip, port)
        except (OSError, ValueError) as error:
            print(f"Failed to connect to server: {error}", file=sys.stderr)
            return 1

        try:
            if command == "upload" and len(args) in (4, 5):
                local_file = args[3]
                remote_filename = args[4] if len(args) == 5 else Path(local_file).name
                client.upload_file(local_file, remote_filename)
            elif command == "download" and len(args) in (4, 5):
                remote_filename = args[3]
                local_file = args[4] if len(args) == 5 else remote_filename
                client.download_file(remote_filename, local_file)
            else:
                print("Invalid command or arguments.", file=sys.stderr)
                print(usage, file=sys.stderr)
                return 1
        except (OSError, TransferError, ProtocolError, RuntimeError) as error:
            print(error, file=sys.stderr)
            print("Command failed.", file=sys.stderr)
            return 1

    print("Command executed successfully.")
    return 0