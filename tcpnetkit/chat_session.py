"""One connected chat client, served by a receive thread and a send thread."""

from __future__ import annotations

import logging
import socket
import threading
import time
from collections import deque
from typing import Callable, Optional

log = logging.getLogger(__name__)

BroadcastFn = Callable[[str, int], None]

RECEIVE_SIZE = 1023
WELCOME_DELAY = 0.1
HELP_TEXT = (
    "Available commands:\n"
    "/nick <new_nickname> - Change your nickname\n"
    "/quit - Disconnect from the server\n"
    "/help - Show this help message\n"
)


class ChatSession:
    """Reads commands and chat lines from one client and queues replies to it.

    Chat lines that are not commands are handed to ``broadcast`` together
    with this session's id, so the owner can pass them on to other clients.
    """

    def __init__(self, session_id: int, sock: socket.socket, broadcast: Optional[BroadcastFn] = None) -> None:
        self.session_id = session_id
        self.sock = sock
        self.nickname = f"User{session_id}"
        self._broadcast = broadcast
        self._running = False
        self._queue: deque[str] = deque()
        self._condition = threading.Condition()
        self._receive_thread: Optional[threading.Thread] = None
        self._send_thread: Optional[threading.Thread] = None
        self._close_lock = threading.Lock()

    @property
    def running(self) -> bool:
        """Whether the session is still serving its client."""
        return self._running

    def start(self) -> None:
        """Start the receive and send threads."""
        log.info("Starting session for client %d (%s)", self.session_id, self.nickname)
        with self._condition:
            self._running = True
        try:
            self._send_thread = threading.Thread(
                target=self._send_loop, name=f"chat-send-{self.session_id}", daemon=True
            )
            self._send_thread.start()
            self._receive_thread = threading.Thread(
                target=self._receive_loop, name=f"chat-recv-{self.session_id}", daemon=True
            )
            self._receive_thread.start()
        except RuntimeError as error:
            log.error("Failed to start thread for client %d: %s", self.session_id, error)
            with self._condition:
                self._running = False
                self._condition.notify_all()

    def stop(self) -> None:
        """Stop the session, wait for its threads and close the socket."""
        log.info("Stopping session for client %d (%s)", self.session_id, self.nickname)
        with self._condition:
            self._running = False
            self._condition.notify_all()
        self._shutdown_socket()
        self.wait()
        self._close_socket()

    def wait(self) -> None:
        """Block until both session threads have finished."""
        current = threading.current_thread()
        for thread in (self._receive_thread, self._send_thread):
            if thread is not None and thread is not current:
                thread.join()

    def send(self, message: str) -> None:
        """Queue a message for the client; ignored once the session has stopped."""
        with self._condition:
            if not self._running:
                return
            self._queue.append(message)
            self._condition.notify()

    def handle_message(self, message: str) -> bool:
        """Act on one piece of client input. Returns False when the client quits."""
        message = message.replace("\n", "").replace("\r", "")
        log.info("Received from client %d (%s): %s", self.session_id, self.nickname, message)

        if message == "/quit":
            self.send("Goodbye!\n")
            return False
        if message[:5] == "/nick":
            tokens = message.split()
            if len(tokens) > 1:
                old_nickname, self.nickname = self.nickname, tokens[1]
                self.send(f"Nickname changed from {old_nickname} to {self.nickname}\n")
            else:
                self.send("Usage: /nick <new_nickname>\n")
        elif message == "/help":
            self.send(HELP_TEXT)
        elif self._broadcast is not None:
            self._broadcast(f"{self.nickname}: {message}\n", self.session_id)
        return True

    def _receive_loop(self) -> None:
        try:
            time.sleep(WELCOME_DELAY)
            self.send(f"Welcome, {self.nickname}! Type /help for a list of commands.\n")
            while self._running:
                try:
                    data = self.sock.recv(RECEIVE_SIZE)
                except OSError as error:
                    if self._running:
                        log.error("Error receiving data from client %d: %s", self.session_id, error)
                    break
                if not data:
                    log.info("Client %d (%s) disconnected", self.session_id, self.nickname)
                    break
                if not self.handle_message(data.decode("utf-8", errors="replace")):
                    break
        finally:
            with self._condition:
                self._running = False
                self._condition.notify_all()
            if self._send_thread is not None:
                self._send_thread.join()
            self._close_socket()

    def _send_loop(self) -> None:
        while True:
            with self._condition:
                self._condition.wait_for(lambda: bool(self._queue) or not self._running)
                if not self._queue:
                    return
                message = self._queue.popleft()
            if not message:
                continue
            try:
                self.sock.sendall(message.encode("utf-8"))
            except OSError as error:
                log.error("Failed to send message to client %d: %s", self.session_id, error)
                with self._condition:
                    self._running = False
                    self._queue.clear()
                    self._condition.notify_all()
                self._shutdown_socket()
                return

    def _shutdown_socket(self) -> None:
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    def _close_socket(self) -> None:
        with self._close_lock:
            self.sock.close()