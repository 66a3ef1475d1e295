"""
Command line entry point.

    netprint                       # HTTP on localhost:7702
    netprint --tcp --addr :9000    # raw TCP on every interface
    netprint --udp                 # raw UDP
    netprint --delay 2s --response-code 503 --response-text busy
"""

import argparse
import logging
import signal
import sys

from .config import DEFAULT_ADDR, ConfigError, ListenerConfig, Mode, parse_duration
from .http_listener import HTTPListener
from .output import OutputSink, SinkHandler
from .tcp_listener import TCPListener
from .udp_listener import UDPListener

logger = logging.getLogger("netprint")

LISTENERS = {
    Mode.HTTP: HTTPListener,
    Mode.TCP: TCPListener,
    Mode.UDP: UDPListener,
}


def duration(text):
    try:
        return parse_duration(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser():
    parser = argparse.ArgumentParser(
        prog="netprint",
        description="Print everything received over HTTP, TCP or UDP to stdout.",
    )
    parser.add_argument("-a", "--addr", default=DEFAULT_ADDR,
                        help=f"The address on which netprint listens (default: {DEFAULT_ADDR})")
    parser.add_argument("--tcp", action="store_true", help="Accept raw TCP requests instead of HTTP")
    parser.add_argument("--udp", action="store_true", help="Accept raw UDP packets instead of HTTP")
    # HTTP-only options default to None so explicit use can be detected.
    parser.add_argument("--delay", type=duration, default=None,
                        help="How long to delay before responding, e.g. 500ms or 2s (HTTP only)")
    parser.add_argument("--response-code", type=int, default=None,
                        help="Response code for HTTP requests (default: 200)")
    parser.add_argument("--response-text", default=None, help="Response body for HTTP requests")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output and HTTP access lines")
    return parser


def setup_logging(sink, verbose=False):
    """Send log records through the transcript sink so they land on stdout in order."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[SinkHandler(sink)],
        force=True,
    )


def main(argv=None, sink=None):
    """
    Parse arguments, validate them and run the selected listener.

    Exits with status 1 on any configuration or socket error and with 0 when
    interrupted.
    """
    args = build_parser().parse_args(argv)
    sink = sink or OutputSink()
    setup_logging(sink, args.verbose)

    try:
        config = ListenerConfig.from_args(args)
    except ConfigError as e:
        logger.error(str(e))
        sys.exit(1)

    listener = LISTENERS[config.mode](config, sink)

    def shutdown(signum=None, frame=None):
        logger.info("Shutting down...")
        sys.exit(0)

    # werkzeug swallows KeyboardInterrupt inside serve_forever, so Ctrl-C is
    # handled here rather than left to the default handler.
    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        listener.start()
    except OSError as e:
        logger.error(f"{config.mode.name} listener on {config.addr} failed: {e}")
        sys.exit(1)
    finally:
        listener.stop()


if __name__ == "__main__":
    main()
