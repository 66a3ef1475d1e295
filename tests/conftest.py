import io
import threading
import time

import pytest

from netprint.config import ListenerConfig
from netprint.output import OutputSink


class Transcript:
    """In-memory sink plus helpers to read back what was written."""

    def __init__(self):
        self.buffer = io.BytesIO()
        self.sink = OutputSink(self.buffer)

    @property
    def data(self):
        # Read without the sink lock so a stuck writer cannot stall a test.
        return self.buffer.getvalue()

    def lock_is_free(self, timeout=1.0):
        """Whether another thread can take the sink lock right now."""
        result = []

        def try_acquire():
            acquired = self.sink.lock.acquire(timeout=timeout)
            if acquired:
                self.sink.lock.release()
            result.append(acquired)

        thread = threading.Thread(target=try_acquire)
        thread.start()
        thread.join(timeout + 1)
        return result == [True]

    def wait_for(self, needle, count=1, timeout=5.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.data.count(needle) >= count:
                return self.data
            time.sleep(0.02)
        raise AssertionError(f"{needle!r} never appeared in transcript: {self.data!r}")


@pytest.fixture
def transcript():
    return Transcript()


@pytest.fixture
def run_listener(transcript):
    """Start a listener on an ephemeral loopback port in a background thread."""
    started = []

    def _run(listener_cls, **overrides):
        overrides.setdefault("addr", "127.0.0.1:0")
        config = ListenerConfig(**overrides)
        listener = listener_cls(config, transcript.sink)
        listener.bind()
        thread = threading.Thread(target=listener.serve_forever, daemon=True)
        thread.start()
        started.append((listener, thread))
        return listener

    yield _run

    for listener, thread in started:
        listener.stop()
        thread.join(timeout=5)
