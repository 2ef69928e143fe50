"""A multi-client TCP chat server that relays each line to the other clients."""

from __future__ import annotations

import logging
import socket
import threading

from tcpnetkit.chat_session import ChatSession
from tcpnetkit.thread_pool import ThreadPool

log = logging.getLogger(__name__)

_ACCEPT_POLL = 0.2


class ChatServer:
    """Listens on a TCP port and serves each client from a thread pool.

    The socket is bound and listening as soon as the server is constructed;
    :meth:`run` then accepts connections until :meth:`stop` is called.
    """

    def __init__(self, port: int, num_threads: int = 4, host: str = "") -> None:
        self._clients: dict[int, ChatSession] = {}
        self._clients_lock = threading.Lock()
        self._next_client_id = 0
        self._stop_event = threading.Event()

        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            self._listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._listener.bind((host, port))
            self._listener.listen(socket.SOMAXCONN)
            self._listener.settimeout(_ACCEPT_POLL)
        except OSError:
            self._listener.close()
            raise
        self._port = self._listener.getsockname()[1]
        self._pool = ThreadPool(num_threads)
        log.info("Chat server initialized on port %d", self._port)

    @property
    def port(self) -> int:
        """The port the server is bound to."""
        return self._port

    @property
    def clients(self) -> dict[int, ChatSession]:
        """A snapshot of the connected sessions keyed by client id."""
        with self._clients_lock:
            return dict(self._clients)

    @property
    def stopped(self) -> bool:
        """Whether :meth:`stop` has been called."""
        return self._stop_event.is_set()

    def run(self) -> None:
        """Accept connections until the server is stopped."""
        log.info("Starting chat server...")
        try:
            while not self._stop_event.is_set():
                try:
                    conn, address = self._listener.accept()
                except socket.timeout:
                    continue
                except OSError as error:
                    if not self._stop_event.is_set():
                        log.error("Failed to accept client connection: %s", error)
                    continue
                conn.settimeout(None)
                log.info("Accepted connection from %s:%d", address[0], address[1])
                try:
                    self._pool.submit(self._handle_client, conn)
                except RuntimeError:
                    conn.close()
        finally:
            self._pool.close()
        log.info("Chat server stopped.")

    def stop(self) -> None:
        """Stop accepting connections and disconnect every client."""
        log.info("Stopping chat server...")
        self._stop_event.set()
        self._listener.close()
        self._pool.stop()
        with self._clients_lock:
            sessions = list(self._clients.values())
            self._clients.clear()
        for session in sessions:
            session.stop()

    def add_client(self, session: ChatSession) -> bool:
        """Register a session. Returns False if the server is already stopping."""
        with self._clients_lock:
            if self._stop_event.is_set():
                return False
            self._clients[session.session_id] = session
            return True

    def remove_client(self, client_id: int) -> None:
        """Forget a session; unknown ids are ignored."""
        with self._clients_lock:
            self._clients.pop(client_id, None)

    def broadcast(self, message: str, sender_id: int = -1) -> None:
        """Queue ``message`` for every client except ``sender_id``."""
        with self._clients_lock:
            for client_id, session in self._clients.items():
                if client_id != sender_id:
                    session.send(message)

    def _handle_client(self, conn: socket.socket) -> None:
        with self._clients_lock:
            client_id = self._next_client_id
            self._next_client_id += 1
        session = ChatSession(client_id, conn, self.broadcast)
        if not self.add_client(session):
            conn.close()
            return
        session.start()
        session.wait()
        self.remove_client(client_id)
        log.info("Client %d disconnected", client_id)