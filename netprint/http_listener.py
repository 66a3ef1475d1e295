"""
HTTP mode: print every request body and answer with a canned response.
"""

import logging
import socket
import time
from urllib.parse import quote

from flask import Flask, Response, request
from werkzeug.exceptions import ClientDisconnected
from werkzeug.serving import make_server

from .config import ListenerConfig
from .output import OutputSink, copy_record_newline, finish_entry
from .tcp_listener import create_server_socket

logger = logging.getLogger("netprint.http")


class RequestAborted(ConnectionAbortedError):
    """
    The request body could not be read.

    Derives from ConnectionError so werkzeug treats it as a dropped
    connection and writes no response at all.
    """


class AcceptFailed(Exception):
    """Carries an accept() error out of socketserver, which would drop it."""

    def __init__(self, error: OSError):
        super().__init__(str(error))
        self.error = error


def request_uri() -> str:
    """
    Request target exactly as the client sent it.

    The werkzeug server keeps the undecoded target in REQUEST_URI. Other WSGI
    servers may not, in which case the path is re-encoded.
    """
    raw = request.environ.get("REQUEST_URI") or request.environ.get("RAW_URI")
    if raw:
        return raw
    uri = quote(request.path, safe="/:@!$&'()*+,;=~")
    if request.query_string:
        uri += "?" + request.query_string.decode("latin-1")
    return uri


def create_app(config: ListenerConfig, sink: OutputSink) -> Flask:
    """
    Build the Flask app that answers every request the same way.

    The handler runs as a before_request hook, ahead of URL matching, so any
    method on any path reaches it; unknown verbs never turn into a 405.

    Args:
        config: Startup configuration (delay, response code and text)
        sink: Shared transcript output

    Returns:
        Flask: The WSGI application
    """
    app = Flask("netprint")
    # Let RequestAborted reach the server instead of becoming a 500.
    app.config["PROPAGATE_EXCEPTIONS"] = True

    @app.before_request
    def catch_all():
        with sink:
            sink.println(f">>>>> Request: {request_uri()}")
            try:
                nbytes, newline = copy_record_newline(sink, request.stream)
            except (OSError, ClientDisconnected) as e:
                logger.warning(f"Reading body of {request.method} {request.path} failed: {e}")
                raise RequestAborted(str(e)) from e
            finish_entry(sink, nbytes, newline, "(Empty body.)")

            if config.delay > 0:
                time.sleep(config.delay)

            return Response(
                config.response_text,
                status=config.response_code,
                content_type="text/plain; charset=utf-8",
            )

    return app


class HTTPListener:
    """
    Threaded HTTP server around the catch-all app.

    Attributes:
        config (ListenerConfig): Startup configuration
        sink (OutputSink): Shared transcript output
        app (Flask): The catch-all application
        server: werkzeug server, set by bind()
    """

    def __init__(self, config: ListenerConfig, sink: OutputSink):
        self.config = config
        self.sink = sink
        self.app = create_app(config, sink)
        self.server = None
        self._accept = None

    @property
    def server_address(self):
        return self.server.server_address[:2]

    def bind(self):
        """
        Create the listening socket.

        The socket is bound here rather than by werkzeug, which would print
        bind errors to stderr and exit on its own. Bind errors propagate.
        """
        if not self.config.verbose:
            logging.getLogger("werkzeug").setLevel(logging.WARNING)
        sock = create_server_socket(self.config.host, self.config.port, socket.SOCK_STREAM)
        try:
            sock.listen(128)
            self.server = make_server(
                self.config.host, self.config.port, self.app, threaded=True, fd=sock.fileno()
            )
        finally:
            # werkzeug works on a duplicate of the descriptor.
            sock.close()
        self._accept = self.server.get_request
        self.server.get_request = self.accept_connection

    def accept_connection(self):
        """
        Accept the next client for the werkzeug server.

        socketserver ignores accept() errors and keeps polling; wrapping them
        makes a broken listening socket end serve_forever() instead.
        """
        try:
            return self._accept()
        except OSError as e:
            raise AcceptFailed(e) from e

    def serve_forever(self):
        """
        Serve until stop() is called.

        Raises:
            OSError: Accepting on the listening socket failed
        """
        try:
            self.server.serve_forever()
        except AcceptFailed as e:
            raise e.error

    def start(self):
        """Bind, announce and serve until stop() is called."""
        self.bind()
        self.sink.println(f"Now accepting HTTP requests on {self.config.addr}")
        self.serve_forever()

    def stop(self):
        if self.server:
            self.server.shutdown()
            self.server.server_close()
