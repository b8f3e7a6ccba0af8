import queue
import socket
import threading

import pytest

from netdrills.framing import FrameError, encode_length
from netdrills.messages import Person
from netdrills.sessions import check_op, main, run_client, run_server


def _start_server(**kwargs):
    ports = queue.Queue()
    results = queue.Queue()

    def run():
        try:
            results.put(run_server(0, ready=ports.put, **kwargs))
        except Exception as exc:  # surfaced through the queue
            results.put(exc)

    threading.Thread(target=run, daemon=True).start()
    return ports.get(timeout=5), results


def _raw_server(action):
    listener = socket.create_server(("127.0.0.1", 0))
    port = listener.getsockname()[1]

    def run():
        with listener:
            connection, _ = listener.accept()
            with connection:
                action(connection)

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return port, thread


def _free_port():
    probe = socket.socket()
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    return port


def test_check_op_raises_given_error():
    error = ConnectionResetError("reset")
    with pytest.raises(ConnectionResetError) as excinfo:
        check_op(error, 0, 8)
    assert excinfo.value is error


def test_check_op_length_mismatch():
    with pytest.raises(FrameError) as excinfo:
        check_op(None, 3, 8)
    assert excinfo.value.received == 3
    assert excinfo.value.expected == 8
    assert "expected data length" in str(excinfo.value)


def test_round_trip_person():
    person = Person(id=42, name="Ada", email="ada@example.com")
    port, results = _start_server(person=person, timeout=5.0)
    received = run_client("127.0.0.1", port, 5.0)
    assert received == person
    assert results.get(timeout=5) == len(person.to_bytes())


def test_default_person_is_sent():
    port, results = _start_server(timeout=5.0)
    received = run_client("127.0.0.1", port, 5.0)
    assert received.id == 1000
    assert results.get(timeout=5) == len(received.to_bytes())


def test_truncated_payload_raises_frame_error():
    port, thread = _raw_server(lambda conn: conn.sendall(encode_length(10) + b"abc"))
    with pytest.raises(FrameError) as excinfo:
        run_client("127.0.0.1", port, 5.0)
    thread.join(5)
    assert excinfo.value.received == 3
    assert excinfo.value.expected == 10


def test_client_times_out_when_nothing_arrives():
    release = threading.Event()
    port, thread = _raw_server(lambda conn: release.wait(5))
    try:
        with pytest.raises(TimeoutError):
            run_client("127.0.0.1", port, 0.2)
    finally:
        release.set()
        thread.join(5)


def test_server_times_out_without_client():
    with pytest.raises(TimeoutError):
        run_server(0, timeout=0.2)


def test_main_client_prints_person(capsys):
    port, results = _start_server(timeout=5.0)
    assert main(["client", "--port", str(port), "--timeout", "5"]) == 0
    out = capsys.readouterr().out
    assert "Received message is [" in out
    assert '"id": 1000' in out
    assert results.get(timeout=5) > 0


def test_main_client_reports_failure(capsys):
    port = _free_port()
    code = main(["client", "--port", str(port), "--timeout", "1"])
    out = capsys.readouterr().out
    assert code > 0
    assert "Background thread caught exception" in out