"""Interactive TCP chat client: one thread prints what the server sends,
the caller's thread reads lines of user input and sends them."""

from __future__ import annotations

import codecs
import logging
import socket
import sys
import threading
from typing import Optional, TextIO

log = logging.getLogger(__name__)

RECEIVE_SIZE = 1023


class ChatClient:
    """A client for the chat server.

    Call :meth:`connect` first, then :meth:`run`, which blocks until the
    user quits, the input ends or the server goes away.
    """

    def __init__(self, server_ip: str, server_port: int) -> None:
        self.server_ip = server_ip
        self.server_port = server_port
        self.nickname = ""
        self._sock: Optional[socket.socket] = None
        self._connected = False
        self._running = False
        self._receive_thread: Optional[threading.Thread] = None
        self._output_lock = threading.Lock()
        self._state_lock = threading.Lock()

    @property
    def connected(self) -> bool:
        """Whether the client holds an open connection to the server."""
        return self._connected

    @property
    def running(self) -> bool:
        """Whether the client is exchanging messages with the server."""
        return self._running

    def connect(self) -> None:
        """Open the connection to the server.

        Raises :class:`ValueError` for an address that is not IPv4 and
        :class:`OSError` when the connection cannot be made.
        """
        if self._connected:
            raise RuntimeError("Already connected to server")
        try:
            socket.inet_pton(socket.AF_INET, self.server_ip)
        except OSError:
            raise ValueError(f"Invalid server IP address: {self.server_ip}") from None
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.connect((self.server_ip, self.server_port))
        except OSError:
            sock.close()
            raise
        self._sock = sock
        self._connected = True
        log.info("Connected to server %s:%d", self.server_ip, self.server_port)

    def disconnect(self) -> None:
        """Close the connection and wait for the receiving thread; safe to repeat."""
        with self._state_lock:
            if not self._connected:
                return
            self._connected = False
            self._running = False
            sock, self._sock = self._sock, None
        log.info("Disconnecting from server...")
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()
        thread = self._receive_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        log.info("Disconnected from server")

    def run(self, input_stream: Optional[TextIO] = None, output_stream: Optional[TextIO] = None) -> None:
        """Exchange messages until the user quits or either side closes.

        Input is read line by line from ``input_stream`` (standard input by
        default); prompts and everything the server sends are written to
        ``output_stream`` (standard output by default).
        """
        if not self._connected or self._sock is None:
            raise RuntimeError("Not connected to server")
        input_stream = sys.stdin if input_stream is None else input_stream
        output_stream = sys.stdout if output_stream is None else output_stream

        log.info("Starting chat client...")
        self._running = True
        sock = self._sock
        self._receive_thread = threading.Thread(
            target=self._receive_loop, args=(sock, output_stream), name="chat-client-recv", daemon=True
        )
        self._receive_thread.start()
        try:
            reached_eof = self._read_input(input_stream, output_stream)
        except BaseException:
            self._running = False
            self._shutdown(socket.SHUT_RDWR)
            raise
        else:
            if reached_eof:
                # Let the server see the end of input; it closes and the reader ends.
                self._shutdown(socket.SHUT_WR)
        finally:
            self._receive_thread.join()
        log.info("Chat client stopped")

    def send_message(self, message: str) -> bool:
        """Send one message. Returns False when the client is not running."""
        sock = self._sock
        if not self._connected or not self._running or sock is None:
            return False
        sock.sendall(message.encode("utf-8"))
        return True

    def _read_input(self, input_stream: TextIO, output_stream: TextIO) -> bool:
        """Read user input until quit; returns True if the input ran out."""
        self._write(output_stream, "Enter your nickname: ")
        line = input_stream.readline()
        if not line:
            return True
        self.nickname = line.removesuffix("\n")
        if self.nickname:
            self._send("/nick " + self.nickname)

        while self._running:
            self._write(output_stream, "> ")
            line = input_stream.readline()
            if not line:
                return True
            if not self._running:
                break
            line = line.removesuffix("\n")
            if not line:
                continue
            if line == "/quit":
                self._send(line)
                self._running = False
                break
            self._send(line)
        return False

    def _send(self, message: str) -> None:
        try:
            self.send_message(message)
        except OSError as error:
            log.error("Failed to send message to server: %s", error)
            self._running = False

    def _receive_loop(self, sock: socket.socket, output_stream: TextIO) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            try:
                data = sock.recv(RECEIVE_SIZE)
            except OSError as error:
                if self._running:
                    log.error("Error receiving data from server: %s", error)
                break
            if not data:
                if self._running:
                    log.info("Server disconnected")
                break
            text = decoder.decode(data)
            if text:
                self._write(output_stream, text)
        tail = decoder.decode(b"", final=True)
        if tail:
            self._write(output_stream, tail)
        self._running = False

    def _write(self, output_stream: TextIO, text: str) -> None:
        with self._output_lock:
            output_stream.write(text)
            output_stream.flush()

    def _shutdown(self, how: int) -> None:
        sock = self._sock
        if sock is None:
            return
        try:
            sock.shutdown(how)
        except OSError:
            pass