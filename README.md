# tcpnetkit

This package contains two small TCP applications. Both are built on sockets and a worker thread pool.

- **Chat room**: many clients join one server at the same time. The server sends each message from a client to all the other clients. The sender's nickname goes in front of the message.
- **File transfer**: a server stores uploaded files in a directory and returns them when asked. A client uploads and downloads files.

The package needs only the standard library and Python 3.10 or later.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Chat room

Start the server. The port defaults to 8080, and the server listens on all interfaces:

```
tcpnetkit-chat-server 8080
```

Connect a client. The server address defaults to `127.0.0.1` and the port to `8080`:

```
tcpnetkit-chat-client 127.0.0.1 8080
```

The client first asks for a nickname and sends it as `/nick <name>`. After that it reads lines from standard input and sends each line that is not empty. Text from the server is printed as it arrives. Until a client chooses a nickname, the server calls it `User<id>`, where the id counts up from 0.

The server understands these commands:

| Command                | Effect                                   |
|------------------------|------------------------------------------|
| `/nick <new_nickname>` | change your nickname                     |
| `/help`                | list the commands                        |
| `/quit`                | the server replies `Goodbye!` and closes |

The server sends anything else to every other connected client as `<nickname>: <message>`.

Both commands refuse a port outside 1–65535. SIGINT (Ctrl+C) or SIGTERM has these effects:

- On the server, it stops accepting connections and disconnects every client.
- On the client, it closes the connection.

From Python:

```python
from tcpnetkit.chat_server import ChatServer

server = ChatServer(9000, 4, "127.0.0.1")   # bound and listening immediately
server.run()                                 # blocks until server.stop() is called
```

`ChatServer` has these members:

- `port`: the bound port. Pass port `0` to get a free port.
- `clients`: a snapshot of the connected `ChatSession` objects, keyed by id.
- `broadcast(message, sender_id)`: sends `message` to every client except the sender.

```python
import sys
from tcpnetkit.chat_client import ChatClient

client = ChatClient("127.0.0.1", 9000)
client.connect()                 # ValueError for a non-IPv4 address, OSError on failure
client.run(sys.stdin, sys.stdout)
client.disconnect()
```

`run` blocks until one of these happens:

- the user types `/quit`
- the input runs out
- the server closes the connection

`tcpnetkit.chat_session.ChatSession` serves one connected client. Its `handle_message` method applies the command rules above to one piece of input. The `broadcast` callable you give it receives every chat line.

## File transfer

Start the server. It takes a port (default 8080) and a storage directory (default `.`). The directory is created if it does not exist:

```
tcpnetkit-file-server 8080 ./storage
```

Upload and download:

```
tcpnetkit-file-client 127.0.0.1 8080 upload ./notes.txt
tcpnetkit-file-client 127.0.0.1 8080 upload ./notes.txt remote_notes.txt
tcpnetkit-file-client 127.0.0.1 8080 download remote_notes.txt
tcpnetkit-file-client 127.0.0.1 8080 download remote_notes.txt ./copy.txt
```

If you give no remote name, an upload is stored under the base name of the local file. If you give no local path, a download is saved under the remote name. The command exits with status 0 on success and 1 on failure.

The server refuses a filename in these cases:

- it is empty
- it starts with `/`
- it contains `..`
- it resolves to a path outside the storage directory

Size limits:

- The client will not upload a file larger than 100 MiB.
- The server will not send a file larger than 100 MiB.
- The server rejects any message body larger than 100 MiB plus 1 KiB.

Each connection carries one request and its response. The server waits at most 30 seconds for a request by default.

From Python:

```python
from tcpnetkit.file_client import FileClient, TransferError

with FileClient(30) as client:
    client.connect("127.0.0.1", 8080)
    try:
        client.upload_file("notes.txt", "notes.txt")
    except TransferError as err:
        print("upload failed:", err)
```

`download_file(remote_filename, local_path)` returns the number of bytes written. If the server answers with an error, `TransferError` is raised.

To run a server from Python, create `FileServer(port, storage_path, timeout_seconds, host)` and call `start()`. `start()` blocks until `stop()` is called. Once the server is listening, its `port` attribute gives the port. `resolve_path(filename)` returns the storage path for a name. It raises `ValueError` for any name the server would refuse.

### Wire format

Each message begins with a header of two unsigned 32-bit little-endian integers: the message type and the payload length. The payload that follows is the file name, then a NUL byte, then the file data.

The message types are:

| Type              | Value |
|-------------------|-------|
| upload request    | 1     |
| download request  | 2     |
| upload response   | 3     |
| download response | 4     |
| error             | 5     |

An error message carries its text as data.

`tcpnetkit.protocol` provides `Message`, `MessageType`, `encode_message`, `decode_message`, `send_message` and `receive_message`. Malformed or oversized input raises `ProtocolError`. `receive_message` raises these other errors:

- `TimeoutError` when the peer stays silent too long.
- `ConnectionError` when the peer closes in the middle of a message.

### Thread pool

Both servers hand each connection to `tcpnetkit.thread_pool.ThreadPool`. You can also use the pool on its own:

```python
from tcpnetkit.thread_pool import ThreadPool

with ThreadPool(4) as pool:
    future = pool.submit(pow, 2, 10)
    print(future.result())   # 1024
```

`stop()` stops the pool from accepting tasks. Tasks already queued still run. `close()` also waits for the workers to finish. Submitting to a stopped pool raises `RuntimeError`.

## What it does not do

- Connections are plain TCP: no encryption and no authentication.
- Clients take IPv4 addresses only, not host names.
- The chat server keeps no message history and no list of who is online. Messages reach only the clients connected at that moment.
- The file server has no commands to list, delete or rename stored files.