"""
UDP mode: dump every datagram in arrival order.
"""

import logging
import socket

from .config import ListenerConfig, format_addr
from .output import OutputSink
from .tcp_listener import POLL_INTERVAL, create_server_socket

logger = logging.getLogger("netprint.udp")

# Large enough for any packet seen in practice; longer datagrams are truncated.
UDP_BUFFER_SIZE = 10 * 1024


class UDPListener:
    """
    Single-socket UDP listener.

    Attributes:
        config (ListenerConfig): Startup configuration
        sink (OutputSink): Transcript output
        sock (socket): Bound datagram socket, set by bind()
        running (bool): Cleared by stop() to end the receive loop
    """

    def __init__(self, config: ListenerConfig, sink: OutputSink):
        self.config = config
        self.sink = sink
        self.sock = None
        self.running = False

    @property
    def server_address(self):
        return self.sock.getsockname()[:2]

    def bind(self):
        self.sock = create_server_socket(self.config.host, self.config.port, socket.SOCK_DGRAM)
        self.sock.settimeout(POLL_INTERVAL)
        self.running = True

    def handle_packet(self, data: bytes, addr):
        with self.sink:
            self.sink.println(f">>>>> Received a packet from {format_addr(addr)}")
            if not data:
                self.sink.println("(No data transmitted.)")
                return
            self.sink.write(data)
            if not data.endswith(b"\n"):
                self.sink.println()

    def serve_forever(self):
        """
        Receive datagrams until stop() is called.

        Raises:
            OSError: Receiving on the socket failed
        """
        while self.running:
            try:
                data, addr = self.sock.recvfrom(UDP_BUFFER_SIZE)
            except socket.timeout:
                continue
            except OSError:
                if not self.running:
                    break
                raise
            logger.debug(f"Received {len(data)} bytes from {format_addr(addr)}")
            self.handle_packet(data, addr)

    def start(self):
        self.bind()
        self.sink.println(f"Now accepting raw UDP requests on {self.config.addr}")
        self.serve_forever()

    def stop(self):
        self.running = False
        if self.sock:
            self.sock.close()
