[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tcpnetkit"
version = "1.0.0"
description = "A multi-client TCP chat room and a TCP file transfer server and client, built on plain sockets and threads."
requires-python = ">=3.10"
dependencies = []
keywords = ["tcp", "chat", "file-transfer", "sockets", "thread-pool", "networking"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Chat",
    "Topic :: Communications :: File Sharing",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
tcpnetkit-chat-server = "tcpnetkit.chat_cli:server_main"
tcpnetkit-chat-client = "tcpnetkit.chat_cli:client_main"
tcpnetkit-file-server = "tcpnetkit.file_server:main"
tcpnetkit-file-client = "tcpnetkit.file_client:main"

[tool.hatch.build.targets.wheel]
packages = ["tcpnetkit"]

[tool.hatch.build.targets.sdist]
include = ["tcpnetkit", "tests", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"
