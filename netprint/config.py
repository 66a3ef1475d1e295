"""
Startup configuration for netprint.

The configuration is built once from the command line and handed to
whichever listener the selected mode needs. It never changes afterwards.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

DEFAULT_ADDR = "localhost:7702"
DEFAULT_RESPONSE_CODE = 200

# Options that only make sense when answering HTTP requests, in the order
# they are checked.
HTTP_ONLY_OPTIONS = ("response_code", "response_text", "delay")

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


class ConfigError(Exception):
    """Raised for any invalid combination of startup options."""


class Mode(Enum):
    HTTP = "http"
    TCP = "tcp"
    UDP = "udp"


def parse_duration(text: str) -> float:
    """
    Parse a duration such as ``1.5s``, ``250ms`` or ``1m30s``.

    Args:
        text: Duration string; a bare ``0`` is also accepted

    Returns:
        float: Duration in seconds (negative values are kept as given)

    Raises:
        ValueError: The text is not a valid duration
    """
    value = text.strip()
    sign = 1.0
    if value[:1] in ("-", "+"):
        sign = -1.0 if value[0] == "-" else 1.0
        value = value[1:]

    if value == "0":
        return 0.0
    if not value:
        raise ValueError(f"invalid duration {text!r}")

    total = 0.0
    pos = 0
    while pos < len(value):
        match = _DURATION_PART.match(value, pos)
        if not match:
            raise ValueError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return sign * total


def split_host_port(addr: str) -> Tuple[str, int]:
    """
    Split ``host:port`` into its parts.

    ``:7702`` means every interface and yields an empty host. IPv6 hosts must
    be bracketed, e.g. ``[::1]:7702``.
    """
    if addr.startswith("["):
        end = addr.find("]")
        if end == -1 or addr[end + 1:end + 2] != ":":
            raise ConfigError(f"Invalid listen address: {addr}")
        host, port_text = addr[1:end], addr[end + 2:]
    else:
        host, sep, port_text = addr.rpartition(":")
        if not sep:
            raise ConfigError(f"Invalid listen address: {addr} (missing port)")
        if ":" in host:
            raise ConfigError(f"Invalid listen address: {addr} (too many colons)")

    if not port_text.isdigit() or int(port_text) > 65535:
        raise ConfigError(f"Invalid listen address: {addr} (bad port)")
    return host, int(port_text)


def format_addr(address) -> str:
    """Render a socket address tuple as ``host:port`` (``[host]:port`` for IPv6)."""
    host, port = address[0], address[1]
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


@dataclass(frozen=True)
class ListenerConfig:
    """
    Immutable process-wide settings.

    Attributes:
        addr (str): Listen address as ``host:port``
        mode (Mode): Transport selected at startup
        delay (float): Seconds to wait before answering an HTTP request
        response_code (int): HTTP status code sent back
        response_text (bytes): HTTP response body
        verbose (bool): Emit debug logs and the HTTP access log
    """

    addr: str = DEFAULT_ADDR
    mode: Mode = Mode.HTTP
    delay: float = 0.0
    response_code: int = DEFAULT_RESPONSE_CODE
    response_text: bytes = b""
    verbose: bool = False

    @property
    def host(self) -> str:
        return split_host_port(self.addr)[0]

    @property
    def port(self) -> int:
        return split_host_port(self.addr)[1]

    @classmethod
    def from_args(cls, args) -> "ListenerConfig":
        """
        Build and validate a configuration from parsed command line arguments.

        HTTP-only options are ``None`` on ``args`` unless the user supplied
        them, which is how explicitly set options are told apart from
        defaults.

        Raises:
            ConfigError: Conflicting or out-of-range options
        """
        mode = Mode.HTTP
        if args.tcp:
            if args.udp:
                raise ConfigError("Cannot specify both --tcp and --udp.")
            mode = Mode.TCP
        if args.udp:
            mode = Mode.UDP

        if mode is not Mode.HTTP:
            for option in HTTP_ONLY_OPTIONS:
                if getattr(args, option) is not None:
                    flag = option.replace("_", "-")
                    raise ConfigError(f"Cannot specify --{flag} except in HTTP mode.")

        response_code = _pick(args.response_code, DEFAULT_RESPONSE_CODE)
        if response_code < 100 or response_code >= 600:
            raise ConfigError(f"Invalid HTTP response code: {response_code}")

        # Validate the address now so a bad one never reaches a socket.
        split_host_port(args.addr)

        return cls(
            addr=args.addr,
            mode=mode,
            delay=max(_pick(args.delay, 0.0), 0.0),
            response_code=response_code,
            response_text=_pick(args.response_text, "").encode("utf-8"),
            verbose=bool(getattr(args, "verbose", False)),
        )


def _pick(value: Optional[object], default):
    return default if value is None else value
