import socket
import threading
import time

import pytest

from tcpnetkit.file_server import FileServer, main
from tcpnetkit.protocol import (
    HEADER,
    MAX_FILE_SIZE,
    MAX_MESSAGE_SIZE,
    Message,
    MessageType,
    encode_message,
    receive_message,
    send_message,
)


@pytest.fixture
def server(tmp_path):
    return FileServer(0, tmp_path / "storage", timeout_seconds=2)


def _exchange(server, raw: bytes) -> Message:
    client, served = socket.socketpair()
    try:
        client.sendall(raw)
        server.handle_client(served)
        return receive_message(client, 5)
    finally:
        client.close()
        served.close()


def _request(server, message: Message) -> Message:
    return _exchange(server, encode_message(message))


def test_constructor_creates_storage_directory(tmp_path):
    target = tmp_path / "a" / "b" / "c"
    FileServer(0, target)
    assert target.is_dir()


def test_resolve_path_inside_storage(server):
    root = server.storage_path.resolve()
    assert server.resolve_path("file.txt") == root / "file.txt"
    assert server.resolve_path("sub/file.txt") == root / "sub" / "file.txt"


@pytest.mark.parametrize("name", ["", "/etc/passwd", "../outside", "a/../b", "a..b"])
def test_resolve_path_rejects_unsafe_names(server, name):
    with pytest.raises(ValueError):
        server.resolve_path(name)


def test_resolve_path_rejects_symlink_escape(server, tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    (server.storage_path / "link").symlink_to(outside, target_is_directory=True)
    with pytest.raises(ValueError):
        server.resolve_path("link/file.txt")


def test_upload_stores_file(server):
    reply = _request(server, Message(MessageType.UPLOAD_REQUEST, "hello.txt", b"hello world"))
    assert reply == Message(MessageType.UPLOAD_RESPONSE, "hello.txt", b"")
    assert (server.storage_path / "hello.txt").read_bytes() == b"hello world"


def test_upload_then_download_round_trip(server):
    payload = bytes(range(256)) * 4
    _request(server, Message(MessageType.UPLOAD_REQUEST, "blob.bin", payload))
    reply = _request(server, Message(MessageType.DOWNLOAD_REQUEST, "blob.bin"))
    assert reply.type == MessageType.DOWNLOAD_RESPONSE
    assert reply.filename == "blob.bin"
    assert reply.data == payload


def test_download_missing_file(server):
    reply = _request(server, Message(MessageType.DOWNLOAD_REQUEST, "absent.txt"))
    assert reply == Message(MessageType.ERROR, "absent.txt", b"File not found")


def test_download_directory_is_refused(server):
    (server.storage_path / "folder").mkdir()
    reply = _request(server, Message(MessageType.DOWNLOAD_REQUEST, "folder"))
    assert reply == Message(MessageType.ERROR, "folder", b"Not a regular file")


@pytest.mark.parametrize("msg_type", [MessageType.UPLOAD_REQUEST, MessageType.DOWNLOAD_REQUEST])
def test_invalid_filename_is_reported(server, msg_type):
    reply = _request(server, Message(msg_type, "../escape.txt", b"x"))
    assert reply == Message(MessageType.ERROR, "../escape.txt", b"Invalid filename")


def test_unknown_message_type(server):
    reply = _request(server, Message(9, "name", b"data"))
    assert reply == Message(MessageType.ERROR, "", b"Unknown message type")


def test_missing_filename_terminator(server):
    reply = _exchange(server, HEADER.pack(1, 3) + b"abc")
    assert reply == Message(MessageType.ERROR, "", b"Invalid message format")


def test_oversized_message(server):
    reply = _exchange(server, HEADER.pack(1, MAX_MESSAGE_SIZE + 1))
    assert reply == Message(MessageType.ERROR, "", b"Message too large")


def test_silent_client_times_out_and_is_closed(tmp_path):
    quick = FileServer(0, tmp_path, timeout_seconds=0.2)
    client, served = socket.socketpair()
    try:
        quick.handle_client(served)
        assert served.fileno() == -1
        client.settimeout(5)
        assert client.recv(16) == b""
    finally:
        client.close()


def _wait_for_port(server, timeout=5.0):
    deadline = time.monotonic() + timeout
    while server.port is None and time.monotonic() < deadline:
        time.sleep(0.01)
    return server.port


def test_start_serves_over_tcp_until_stopped(tmp_path):
    server = FileServer(0, tmp_path, timeout_seconds=5, host="127.0.0.1")
    assert server.port is None
    thread = threading.Thread(target=server.start, daemon=True)
    thread.start()
    try:
        port = _wait_for_port(server)
        assert port is not None and port > 0

        with socket.create_connection(("127.0.0.1", port), timeout=5) as conn:
            send_message(conn, Message(MessageType.UPLOAD_REQUEST, "net.txt", b"over the wire"))
            reply = receive_message(conn, 5)
        assert reply.type == MessageType.UPLOAD_RESPONSE

        with socket.create_connection(("127.0.0.1", port), timeout=5) as conn:
            send_message(conn, Message(MessageType.DOWNLOAD_REQUEST, "net.txt"))
            reply = receive_message(conn, 5)
        assert reply.data == b"over the wire"
    finally:
        server.stop()
        thread.join(10)
    assert not thread.is_alive()
    assert server.stopped


def test_stop_before_start_returns_immediately(tmp_path):
    server = FileServer(0, tmp_path, host="127.0.0.1")
    server.stop()
    server.start()
    assert server.stopped
    assert server.port is None


@pytest.mark.parametrize("port", ["abc", "0", "70000", "-5"])
def test_main_rejects_bad_port(port, tmp_path, capsys):
    assert main([port, str(tmp_path)]) == 1
    assert "Invalid port number" in capsys.readouterr().err


def test_main_reports_bind_failure(tmp_path):
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        blocker.bind(("", 0))
        blocker.listen(1)
        port = blocker.getsockname()[1]
        assert main([str(port), str(tmp_path / "store")]) == 1
        assert (tmp_path / "store").is_dir()
    finally:
        blocker.close()