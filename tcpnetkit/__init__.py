"""TCP chat room and file transfer servers and clients over plain sockets."""

__version__ = "1.0.0"