import socket
import struct
import threading

import pytest

from netprint.config import ListenerConfig, format_addr
from netprint.tcp_listener import TCPListener


def send_and_close(address, payload=b""):
    sock = socket.create_connection(address, timeout=5)
    local = sock.getsockname()
    if payload:
        sock.sendall(payload)
    sock.close()
    return format_addr(local)


def test_connection_with_trailing_newline(run_listener, transcript):
    listener = run_listener(TCPListener)
    peer = send_and_close(listener.server_address, b"hello\n")
    data = transcript.wait_for(b"disconnected.\n")
    assert data == (
        f">>>>> {peer} connected.\n".encode()
        + b"hello\n"
        + f">>>>> {peer} disconnected.\n".encode()
    )


def test_connection_without_trailing_newline(run_listener, transcript):
    listener = run_listener(TCPListener)
    peer = send_and_close(listener.server_address, b"no newline")
    data = transcript.wait_for(b"disconnected.\n")
    assert data == f">>>>> {peer} connected.\nno newline\n>>>>> {peer} disconnected.\n".encode()


def test_empty_connection(run_listener, transcript):
    listener = run_listener(TCPListener)
    peer = send_and_close(listener.server_address)
    data = transcript.wait_for(b"disconnected.\n")
    assert data == f">>>>> {peer} connected.\n(No data transmitted.)\n>>>>> {peer} disconnected.\n".encode()


def test_connections_are_handled_one_at_a_time(run_listener, transcript):
    listener = run_listener(TCPListener)
    first = socket.create_connection(listener.server_address, timeout=5)
    first.sendall(b"first ")
    transcript.wait_for(b"first ")

    second = socket.create_connection(listener.server_address, timeout=5)
    second.sendall(b"second\n")
    second.close()

    first.sendall(b"done\n")
    first.close()

    text = transcript.wait_for(b"disconnected.\n", count=2).decode()
    assert text.index("first done\n") < text.index("disconnected.") < text.index("second\n")


def test_reset_connection_does_not_stop_listener(run_listener, transcript):
    listener = run_listener(TCPListener)
    sock = socket.create_connection(listener.server_address, timeout=5)
    sock.sendall(b"partial")
    transcript.wait_for(b"partial")
    # SO_LINGER with a zero timeout makes close() send a RST.
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
    sock.close()

    peer = send_and_close(listener.server_address, b"still alive\n")
    data = transcript.wait_for(f">>>>> {peer} disconnected.\n".encode())
    assert b"still alive\n" in data


def test_sink_is_free_while_waiting_on_a_peer(run_listener, transcript):
    listener = run_listener(TCPListener)
    idle = socket.create_connection(listener.server_address, timeout=5)
    try:
        transcript.wait_for(b"connected.\n")
        assert transcript.lock_is_free()
    finally:
        idle.close()


class BrokenListeningSocket:
    def accept(self):
        raise OSError(24, "Too many open files")

    def close(self):
        pass


def test_accept_error_is_fatal(transcript):
    listener = TCPListener(None, transcript.sink)
    listener.server_socket = BrokenListeningSocket()
    listener.running = True
    with pytest.raises(OSError, match="Too many open files"):
        listener.serve_forever()


def test_accept_error_after_stop_ends_quietly(transcript):
    listener = TCPListener(None, transcript.sink)
    listener.server_socket = BrokenListeningSocket()
    listener.running = False
    listener.serve_forever()


def test_banner_is_a_plain_transcript_line(transcript):
    listener = TCPListener(ListenerConfig(addr="127.0.0.1:0"), transcript.sink)
    thread = threading.Thread(target=listener.start, daemon=True)
    thread.start()
    try:
        data = transcript.wait_for(b"Now accepting")
        assert data == b"Now accepting raw TCP requests on 127.0.0.1:0\n"
    finally:
        listener.stop()
        thread.join(5)
