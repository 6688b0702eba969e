import socket

from ftpserver.config import WILDCARD_IP


class DataChannel:
    """
    Single-use passive listener opened by PASV.
    It accepts exactly one data connection and is closed after that use.
    """

    def __init__(self, listener, port):
        self.listener = listener
        self.port = port

    @property
    def closed(self):
        return self.listener is None

    def accept(self):
        """Blocks until the client opens the data connection; returns the connected socket."""
        if self.listener is None:
            raise OSError("Data channel already closed")
        conn, addr = self.listener.accept()
        conn.settimeout(None)
        print(f"[DATA] Data connection from {addr[0]}:{addr[1]} on port {self.port}")
        return conn

    def close(self):
        if self.listener is None:
            return
        try:
            self.listener.close()
        except OSError as e:
            print(f"[PASV] Error closing listener on port {self.port}: {e}")
        self.listener = None


def open_passive_channel(bind_ip, ports):
    """
    Scans the port range in ascending order and returns a DataChannel bound
    to the first free port, or None if every port is busy.
    """
    for port in ports:
        s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            s.bind((bind_ip, port))
            s.listen(1)
        except OSError:
            s.close()
            print(f"[PASV] Port {port} was busy")
            continue
        return DataChannel(s, port)
    return None


def advertised_ip_for(config, control_socket=None):
    """IP announced in the 227 reply for this session."""
    if config.bind_ip != WILDCARD_IP:
        return config.bind_ip
    if config.advertised_ip.startswith("127.") and control_socket is not None:
        # Prefer the real local address of the control connection
        try:
            local_ip = control_socket.getsockname()[0]
        except OSError:
            local_ip = None
        if local_ip and not local_ip.startswith("127.") and local_ip != WILDCARD_IP:
            return local_ip
    return config.advertised_ip


def pasv_reply(ip, port):
    h1, h2, h3, h4 = ip.split(".")
    return f"227 Entering Passive Mode ({h1},{h2},{h3},{h4},{port // 256},{port % 256})."
