"""netprint: a diagnostic listener that prints whatever it receives."""

from .config import ConfigError, ListenerConfig, Mode
from .output import OutputSink, copy_record_newline

__version__ = "1.0.0"

__all__ = ["ConfigError", "ListenerConfig", "Mode", "OutputSink", "copy_record_newline"]
