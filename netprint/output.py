"""
Shared transcript output.

Every listener writes through one OutputSink. HTTP requests are served on
several threads at once, so a request holds the sink for its whole entry
(marker, body, trailing newline, delay) to keep entries from interleaving.
"""

import logging
import sys
import threading

COPY_BUFFER_SIZE = 32 * 1024


class ShortWriteError(OSError):
    """The output stream accepted fewer bytes than it was given."""


class OutputSink:
    """
    Lock-guarded binary output stream.

    Attributes:
        stream: Binary stream that receives the transcript
        lock (threading.RLock): Held for a whole transcript entry
    """

    def __init__(self, stream=None):
        """
        Args:
            stream: Binary stream to write to (default: stdout's buffer)
        """
        self.stream = stream if stream is not None else sys.stdout.buffer
        self.lock = threading.RLock()

    def __enter__(self):
        self.lock.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.lock.release()
        return False

    def write(self, data: bytes) -> int:
        """
        Write raw bytes and flush.

        Raises:
            ShortWriteError: The stream reported a short write
        """
        with self.lock:
            written = self.stream.write(data)
            if written is not None and written < len(data):
                raise ShortWriteError(f"short write: {written} of {len(data)} bytes")
            self.stream.flush()
        return len(data)

    def println(self, text: str = "") -> None:
        self.write(text.encode("utf-8") + b"\n")


def copy_record_newline(sink: OutputSink, src, bufsize: int = COPY_BUFFER_SIZE):
    """
    Stream everything from ``src`` to the sink.

    Reads ``bufsize`` bytes at a time until ``src.read`` returns an empty
    chunk. Read and write errors propagate to the caller.

    Args:
        sink: Destination sink
        src: Object with a ``read(n)`` method returning bytes
        bufsize: Largest chunk held in memory at once

    Returns:
        tuple: (bytes copied, whether the last byte copied was a newline)
    """
    total = 0
    last = b""
    while True:
        chunk = src.read(bufsize)
        if not chunk:
            break
        sink.write(chunk)
        total += len(chunk)
        last = chunk[-1:]
    return total, total > 0 and last == b"\n"


def finish_entry(sink: OutputSink, nbytes: int, newline: bool, empty_marker: str) -> None:
    """Close a payload dump so the next transcript line starts on its own line."""
    if nbytes == 0:
        sink.println(empty_marker)
    elif not newline:
        sink.println()


class SinkHandler(logging.Handler):
    """Logging handler that writes formatted records through an OutputSink."""

    def __init__(self, sink: OutputSink, level=logging.NOTSET):
        super().__init__(level)
        self.sink = sink

    def emit(self, record):
        try:
            self.sink.println(self.format(record))
        except Exception:
            self.handleError(record)
