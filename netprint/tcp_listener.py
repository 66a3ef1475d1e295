"""
TCP mode: dump each connection's byte stream, one connection at a time.
"""

import logging
import socket

from .config import ListenerConfig, format_addr
from .output import OutputSink, copy_record_newline, finish_entry

logger = logging.getLogger("netprint.tcp")

POLL_INTERVAL = 1.0


def create_server_socket(host: str, port: int, sock_type: int) -> socket.socket:
    """
    Resolve ``host`` and bind a socket of the given type to it.

    An empty host binds every interface. IPv4 wins when the host resolves to
    both families.
    """
    infos = socket.getaddrinfo(host or None, port, socket.AF_UNSPEC, sock_type, 0, socket.AI_PASSIVE)
    infos.sort(key=lambda info: info[0] != socket.AF_INET)
    family, _, proto, _, sockaddr = infos[0]
    sock = socket.socket(family, sock_type, proto)
    try:
        if sock_type == socket.SOCK_STREAM:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(sockaddr)
    except OSError:
        sock.close()
        raise
    return sock


class TCPListener:
    """
    Sequential raw TCP listener.

    Attributes:
        config (ListenerConfig): Startup configuration
        sink (OutputSink): Transcript output
        server_socket (socket): Listening socket, set by bind()
        running (bool): Cleared by stop() to end the accept loop
    """

    def __init__(self, config: ListenerConfig, sink: OutputSink):
        self.config = config
        self.sink = sink
        self.server_socket = None
        self.running = False

    @property
    def server_address(self):
        return self.server_socket.getsockname()[:2]

    def bind(self):
        self.server_socket = create_server_socket(self.config.host, self.config.port, socket.SOCK_STREAM)
        self.server_socket.listen(5)
        self.server_socket.settimeout(POLL_INTERVAL)
        self.running = True

    def handle_connection(self, conn: socket.socket, addr):
        """
        Copy one connection to the transcript until the peer closes it.

        A read error ends the connection early, without the disconnected
        marker, and leaves the listener running. Connections are handled one
        at a time, so the sink is not held across the blocking read.
        """
        peer = format_addr(addr)
        self.sink.println(f">>>>> {peer} connected.")
        try:
            with conn.makefile("rb", buffering=0) as stream:
                nbytes, newline = copy_record_newline(self.sink, stream)
        except OSError as e:
            logger.warning(f"Reading from {peer} failed: {e}")
            return
        finish_entry(self.sink, nbytes, newline, "(No data transmitted.)")
        self.sink.println(f">>>>> {peer} disconnected.")

    def serve_forever(self):
        """
        Accept and handle connections until stop() is called.

        Raises:
            OSError: The listening socket failed
        """
        while self.running:
            try:
                conn, addr = self.server_socket.accept()
            except socket.timeout:
                continue
            except OSError:
                if not self.running:
                    break
                raise

            logger.debug(f"Accepted connection from {format_addr(addr)}")
            conn.settimeout(None)
            try:
                self.handle_connection(conn, addr)
            finally:
                conn.close()

    def start(self):
        self.bind()
        self.sink.println(f"Now accepting raw TCP requests on {self.config.addr}")
        self.serve_forever()

    def stop(self):
        self.running = False
        self.cleanup()

    def cleanup(self):
        if self.server_socket:
            self.server_socket.close()
