"""Shared fixtures for the FTP server tests.

Unit tests drive a Session over an in-memory control socket; the data
channel always uses real localhost sockets. End-to-end tests start an
FTPListener on an ephemeral port and talk to it with ftplib.
"""

import ftplib
import re
import socket
import threading

import pytest

from ftpserver.config import ServerConfig
from ftpserver.server_core import FTPListener, Session

PASV_RE = re.compile(r"\((\d+),(\d+),(\d+),(\d+),(\d+),(\d+)\)")


def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def parse_pasv(reply):
    """Returns (ip, port) from a 227 reply."""
    m = PASV_RE.search(reply)
    assert m, "Not a PASV reply: {!r}".format(reply)
    nums = [int(n) for n in m.groups()]
    return ".".join(str(n) for n in nums[:4]), nums[4] * 256 + nums[5]


class FakeControlSocket:
    """Records everything the server writes on the control connection."""

    def __init__(self):
        self.sent = bytearray()
        self.closed = False

    def sendall(self, data):
        self.sent.extend(data)

    def getsockname(self):
        return ("127.0.0.1", 21)

    def shutdown(self, how):
        pass

    def close(self):
        self.closed = True

    def replies(self):
        return self.sent.decode().split("\r\n")[:-1]

    def codes(self):
        return [r[:3] for r in self.replies()]

    def last(self):
        return self.replies()[-1]

    def clear(self):
        self.sent.clear()


@pytest.fixture
def ftp_root(tmp_path):
    root = tmp_path / "root"
    root.mkdir()
    return root


@pytest.fixture
def passive_range():
    port = free_port()
    return port, min(port + 20, 65535)


@pytest.fixture
def config(ftp_root, passive_range):
    return ServerConfig(
        bind_ip="127.0.0.1",
        control_port=0,
        advertised_ip="127.0.0.1",
        passive_port_min=passive_range[0],
        passive_port_max=passive_range[1],
        root_directory=str(ftp_root),
        anonymous_enabled=True,
        username="alice",
        password="secret",
    )


@pytest.fixture
def session(config):
    s = Session(FakeControlSocket(), ("127.0.0.1", 50000), config)
    yield s
    s.state.close_data_channel()


@pytest.fixture
def logged_in(session):
    session.handle_line("USER anonymous\r\n")
    session.client_socket.clear()
    return session


def open_data_connection(session):
    """Sends PASV and connects to the announced port, like a client would."""
    session.handle_line("PASV\r\n")
    ip, port = parse_pasv(session.client_socket.last())
    return socket.create_connection((ip, port), timeout=5)


def recv_all(sock):
    chunks = []
    for chunk in iter(lambda: sock.recv(4096), b""):
        chunks.append(chunk)
    return b"".join(chunks)


@pytest.fixture
def running_server(config):
    listener = FTPListener(config)
    listener.bind()
    t = threading.Thread(target=listener.serve_forever, daemon=True)
    t.start()
    yield listener
    listener.shutdown()
    t.join(timeout=5)


def connect_ftp(listener):
    host, port = listener.server_address
    client = ftplib.FTP()
    client.connect(host, port, timeout=5)
    return client


@pytest.fixture
def ftp(running_server):
    client = connect_ftp(running_server)
    yield client
    client.close()
