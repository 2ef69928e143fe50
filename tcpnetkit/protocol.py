"""Wire format for the file transfer messages.

Each message is a header of two little-endian unsigned 32-bit integers,
the message type and the body length, followed by a body made of the
NUL-terminated filename and the raw file data.
"""

from __future__ import annotations

import enum
import socket
import struct
from dataclasses import dataclass

HEADER = struct.Struct("<II")
MAX_FILE_SIZE = 100 * 1024 * 1024
# Largest body accepted from a peer: a full file plus room for the filename.
MAX_MESSAGE_SIZE = MAX_FILE_SIZE + 1024

_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


class MessageType(enum.IntEnum):
    """Kinds of message exchanged between file client and server."""

    UPLOAD_REQUEST = 1
    DOWNLOAD_REQUEST = 2
    UPLOAD_RESPONSE = 3
    DOWNLOAD_RESPONSE = 4
    ERROR = 5


class ProtocolError(Exception):
    """Raised when bytes on the wire do not form a valid message."""


@dataclass
class Message:
    """One protocol message. ``type`` is a plain int when it is not a known type."""

    type: int
    filename: str = ""
    data: bytes = b""


def _as_type(value: int) -> int:
    try:
        return MessageType(value)
    except ValueError:
        return value


def _split_body(body: bytes) -> tuple[str, bytes]:
    filename, separator, data = body.partition(b"\0")
    if not separator:
        raise ProtocolError("Invalid message format")
    return filename.decode(_ENCODING, _ERRORS), data


def encode_message(message: Message) -> bytes:
    """Serialize a message to its wire bytes."""
    filename = message.filename.encode(_ENCODING, _ERRORS)
    if b"\0" in filename:
        raise ValueError("filename must not contain NUL characters")
    body = filename + b"\0" + bytes(message.data)
    return HEADER.pack(int(message.type), len(body)) + body


def decode_message(buffer: bytes) -> Message:
    """Parse one message from the start of ``buffer``.

    Raises :class:`ProtocolError` if the buffer is too short or the
    filename has no terminator.
    """
    if len(buffer) < HEADER.size:
        raise ProtocolError("buffer shorter than message header")
    msg_type, length = HEADER.unpack_from(buffer)
    body = bytes(buffer[HEADER.size:HEADER.size + length])
    if len(body) < length:
        raise ProtocolError("buffer shorter than declared message length")
    filename, data = _split_body(body)
    return Message(_as_type(msg_type), filename, data)


def send_message(sock: socket.socket, message: Message) -> None:
    """Send a whole message over a connected socket."""
    sock.sendall(encode_message(message))


def _recv_exact(sock: socket.socket, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining:
        chunk = sock.recv(min(remaining, 1 << 20))
        if not chunk:
            raise ConnectionError("connection closed while receiving message")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def receive_message(sock: socket.socket, timeout: float | None) -> Message:
    """Read one message from a socket, waiting at most ``timeout`` seconds per read.

    Raises :class:`TimeoutError` when the peer is silent too long,
    :class:`ConnectionError` when it closes mid-message, and
    :class:`ProtocolError` for an oversized or malformed message.
    """
    previous = sock.gettimeout()
    sock.settimeout(timeout)
    try:
        msg_type, length = HEADER.unpack(_recv_exact(sock, HEADER.size))
        if length > MAX_MESSAGE_SIZE:
            raise ProtocolError("Message too large")
        body = _recv_exact(sock, length)
    finally:
        sock.settimeout(previous)
    filename, data = _split_body(body)
    return Message(_as_type(msg_type), filename, data)