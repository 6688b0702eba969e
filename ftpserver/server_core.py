import socket
import threading

from ftpserver.dispatcher import CommandDispatcher, parse_command
from ftpserver.session import SessionState

ACCEPT_POLL_INTERVAL = 0.5   # seconds between shutdown checks in the accept loop
LISTEN_BACKLOG = 10


class Session:
    """One control connection: its state, and the loop that reads its commands."""

    def __init__(self, client_socket, client_addr, config, dispatcher=None):
        self.client_socket = client_socket
        self.client_addr = client_addr
        self.client_ip = client_addr[0]
        self.config = config
        self.state = SessionState()
        self.dispatcher = dispatcher or CommandDispatcher()

    def reply(self, message):
        self.client_socket.sendall(f"{message}\r\n".encode(errors="surrogateescape"))

    def handle_line(self, line):
        """Returns True when the session must end."""
        cmd = parse_command(line)
        if cmd is None:
            return False
        shown = "PASS ****" if cmd.verb == "PASS" else line.strip()
        shown = shown.encode(errors="backslashreplace").decode()
        print(f"[CORE] Command from {self.client_addr}: {shown}")
        return self.dispatcher.dispatch(cmd, self)

    def run(self):
        self.reply("220 FTP Server ready.")
        with self.client_socket.makefile("rb") as rfile:
            for raw in rfile:
                if self.handle_line(raw.decode(errors="surrogateescape")):
                    break

    def close(self):
        self.state.close_data_channel()
        try:
            self.client_socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass    # peer already gone
        self.client_socket.close()


def handle_client(client_socket, address, config, dispatcher=None):
    session = Session(client_socket, address, config, dispatcher)
    print(f"[CORE] Connection established from {address}")
    try:
        session.run()
    except ConnectionResetError:
        print(f"[CORE] Connection reset by {address}")
    except OSError as e:
        print(f"[ERROR][CORE] Socket error with {address}: {e}")
    except Exception as e:
        # A single client must never take the whole server down
        print(f"[ERROR][CORE] Error in client handler {address}: {e!r}")
    finally:
        session.close()
        print(f"[CORE] Connection closed with {address}")


class FTPListener:
    """Accepts control connections and runs one thread per client."""

    def __init__(self, config):
        self.config = config
        self.dispatcher = CommandDispatcher()
        self.server_socket = None
        self._stop = threading.Event()

    def bind(self):
        server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            server_socket.bind((self.config.bind_ip, self.config.control_port))
            server_socket.listen(LISTEN_BACKLOG)
        except OSError:
            server_socket.close()
            raise
        server_socket.settimeout(ACCEPT_POLL_INTERVAL)
        self.server_socket = server_socket
        return self.server_address

    @property
    def server_address(self):
        return self.server_socket.getsockname()

    def serve_forever(self):
        if self.server_socket is None:
            self.bind()
        host, port = self.server_address
        print(f"[CORE] FTP server listening on {host}:{port}, root {self.config.root_directory}")
        try:
            while not self._stop.is_set():
                try:
                    client_socket, address = self.server_socket.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if self._stop.is_set():
                        break
                    print(f"[ERROR][CORE] Accept failed: {e}")
                    continue
                self._start_session(client_socket, address)
        finally:
            self.server_socket.close()
            print("[CORE] FTP server stopped")

    def _start_session(self, client_socket, address):
        try:
            client_socket.settimeout(None)
            client_socket.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            t = threading.Thread(target=handle_client,
                                 args=(client_socket, address, self.config, self.dispatcher),
                                 daemon=True)
            t.start()
        except (OSError, RuntimeError) as e:
            print(f"[ERROR][CORE] Could not start session for {address}: {e}")
            client_socket.close()

    def shutdown(self):
        self._stop.set()


def start_ftp_server(config):
    listener = FTPListener(config)
    listener.bind()
    try:
        listener.serve_forever()
    except KeyboardInterrupt:
        print("[CORE] Server stopped from keyboard")
        listener.shutdown()
