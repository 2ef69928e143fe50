import io
import socket
import threading

import pytest

from tcpnetkit.chat_cli import client_main, parse_port, server_main


def _closed_port():
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    return port


def _collecting_server():
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    port = listener.getsockname()[1]
    received = []

    def serve():
        conn, _ = listener.accept()
        with conn:
            chunks = []
            while True:
                data = conn.recv(4096)
                if not data:
                    break
                chunks.append(data)
            received.append(b"".join(chunks))
        listener.close()

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    return port, thread, received


@pytest.mark.parametrize("text, expected", [("8080", 8080), ("1", 1), ("65535", 65535), (" 9000", 9000), ("80abc", 80)])
def test_parse_port_accepts(text, expected):
    assert parse_port(text) == expected


@pytest.mark.parametrize("text", ["0", "-5", "65536", "abc", ""])
def test_parse_port_rejects(text):
    with pytest.raises(ValueError):
        parse_port(text)


def test_parse_port_range_message():
    with pytest.raises(ValueError, match="Must be between 1 and 65535"):
        parse_port("70000")


def test_server_main_bad_port(capsys):
    assert server_main(["nope"]) == 1
    assert "Invalid port number: nope" in capsys.readouterr().err


def test_server_main_port_in_use(capsys):
    holder = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    holder.bind(("", 0))
    holder.listen(1)
    try:
        status = server_main([str(holder.getsockname()[1])])
    finally:
        holder.close()
    assert status == 1
    assert "Error:" in capsys.readouterr().err


def test_client_main_bad_port(capsys):
    assert client_main(["127.0.0.1", "0"]) == 1
    assert "Must be between 1 and 65535" in capsys.readouterr().err


def test_client_main_connection_refused(capsys):
    port = _closed_port()
    assert client_main(["127.0.0.1", str(port)]) == 1
    assert f"Failed to connect to server 127.0.0.1:{port}" in capsys.readouterr().err


def test_client_main_session(monkeypatch, capsys):
    port, thread, received = _collecting_server()
    monkeypatch.setattr("sys.stdin", io.StringIO("dave\nhi all\n"))
    status = client_main(["127.0.0.1", str(port)])
    thread.join(timeout=5)
    out = capsys.readouterr().out
    assert status == 0
    assert received == [b"/nick davehi all"]
    assert f"Connected to server 127.0.0.1:{port}" in out
    assert "Client has disconnected." in out