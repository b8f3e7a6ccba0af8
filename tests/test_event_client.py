import contextlib
import io
import socket
import threading

import pytest

from netdrills import event_client
from netdrills.event_client import EventClient, FrameReader
from netdrills.framing import encode_length, recv_frame, send_frame
from netdrills.work_server import WorkServer, handle_request


@contextlib.contextmanager
def _peer(behaviour):
    listener = socket.create_server(("127.0.0.1", 0))
    port = listener.getsockname()[1]

    def serve():
        try:
            conn, _ = listener.accept()
        except OSError:
            return
        with conn:
            try:
                behaviour(conn)
            except Exception:
                pass

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    try:
        yield port
    finally:
        listener.close()
        thread.join(5)


def _reverse_echo(conn):
    send_frame(conn, recv_frame(conn)[::-1])


def _silent(conn):
    while conn.recv(1024):
        pass


def _read_and_close(conn):
    recv_frame(conn)


def _poll_until_frames(client, attempts=50):
    for _ in range(attempts):
        if not client.is_connected():
            return []
        frames = client.poll(0.1)
        if frames:
            return frames
    return []


def test_frame_reader_whole_frame():
    reader = FrameReader()
    assert reader.feed(b"\x03\x00\x00\x00\x00\x00\x00\x00abc") == [b"abc"]


def test_frame_reader_byte_by_byte():
    reader = FrameReader()
    data = encode_length(5) + b"hello"
    collected = []
    for byte in data:
        collected.extend(reader.feed(bytes([byte])))
    assert collected == [b"hello"]


def test_frame_reader_several_frames_and_remainder():
    reader = FrameReader()
    data = encode_length(2) + b"ab" + encode_length(3) + b"cde" + encode_length(4) + b"f"
    assert reader.feed(data) == [b"ab", b"cde"]
    assert reader.feed(b"ghi") == [b"fghi"]


def test_frame_reader_skips_empty_frame():
    reader = FrameReader()
    assert reader.feed(encode_length(0) + encode_length(1) + b"z") == [b"z"]


def test_send_request_requires_connection():
    client = EventClient(log=lambda line: None)
    with pytest.raises(ConnectionError):
        client.send_request(b"data")


def test_poll_without_connection_is_empty():
    client = EventClient(log=lambda line: None)
    assert client.poll(0) == []


def test_request_and_response():
    lines = []
    received = []
    with _peer(_reverse_echo) as port:
        with EventClient(received.append, timeout=5.0, log=lines.append) as client:
            assert client.connect_to_host("127.0.0.1", port) is True
            assert client.is_connected()
            client.send_request(b"abc")
            frames = _poll_until_frames(client)
    assert frames == [b"cba"]
    assert received == [b"cba"]
    assert "Connected to host." in lines


def test_connect_failure_returns_false():
    probe = socket.create_server(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    lines = []
    client = EventClient(log=lines.append)
    assert client.connect_to_host("127.0.0.1", port) is False
    assert not client.is_connected()
    assert any(line.startswith("Error") for line in lines)


def test_timeout_aborts_connection():
    lines = []
    with _peer(_silent) as port:
        client = EventClient(timeout=0.2, log=lines.append)
        assert client.connect_to_host("127.0.0.1", port)
        client.send_request(b"ping")
        frames = client.poll(2.0)
        assert frames == []
        assert not client.is_connected()
    assert "Timeout occurred." in lines


def test_peer_close_disconnects():
    lines = []
    with _peer(_read_and_close) as port:
        client = EventClient(timeout=5.0, log=lines.append)
        assert client.connect_to_host("127.0.0.1", port)
        client.send_request(b"ping")
        assert _poll_until_frames(client) == []
        assert not client.is_connected()
    assert "Disconnected from host." in lines


def test_main_against_work_server(monkeypatch, capsys):
    server = WorkServer(0, handle_request, "127.0.0.1", log=lambda line: None)
    server.start()
    try:
        monkeypatch.setattr("sys.stdin", io.StringIO("0\n"))
        code = event_client.main(["--port", str(server.port)])
    finally:
        server.stop()
    out = capsys.readouterr().out
    assert code == 0
    assert "Received response message:" in out
    assert '"isComplete": true' in out