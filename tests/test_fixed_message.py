import errno
import queue
import socket
import threading

import pytest

from netdrills.fixed_message import (
    main,
    receive_message,
    send_message,
    serve_message,
    serve_receive,
)
from netdrills.framing import FrameError

MESSAGE = b"Hello\nWorld!"


def _in_background(target, **kwargs):
    ports = queue.Queue()
    result = {}

    def run():
        try:
            result["value"] = target(0, ready=ports.put, **kwargs)
        except BaseException as exc:  # reported to the test through ``result``
            result["error"] = exc
            ports.put(None)

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    port = ports.get(timeout=5)
    assert port is not None, result.get("error")
    return thread, port, result


def _closed_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
        probe.bind(("127.0.0.1", 0))
        return probe.getsockname()[1]


def test_serve_message_then_receive():
    thread, port, result = _in_background(serve_message, data=MESSAGE)
    received = receive_message("127.0.0.1", port, len(MESSAGE))
    thread.join(timeout=5)
    assert received == MESSAGE
    assert result["value"] == len(MESSAGE)


def test_send_message_to_serve_receive():
    thread, port, result = _in_background(serve_receive, size=len(MESSAGE))
    sent = send_message("127.0.0.1", port, MESSAGE)
    thread.join(timeout=5)
    assert sent == len(MESSAGE)
    assert result["value"] == MESSAGE


def test_receive_more_than_sent_raises_frame_error():
    thread, port, _ = _in_background(serve_message, data=MESSAGE)
    with pytest.raises(FrameError) as info:
        receive_message("127.0.0.1", port, 20)
    thread.join(timeout=5)
    assert info.value.received == len(MESSAGE)
    assert info.value.expected == 20


def test_receive_from_closed_port_is_refused():
    with pytest.raises(ConnectionRefusedError):
        receive_message("127.0.0.1", _closed_port(), len(MESSAGE))


def test_invalid_address_is_rejected():
    with pytest.raises(ValueError):
        send_message("not-an-address", 8172, MESSAGE)


def test_main_receive_prints_message(capsys):
    thread, port, _ = _in_background(serve_message, data=MESSAGE)
    code = main(["receive", "127.0.0.1", str(port)])
    thread.join(timeout=5)
    assert code == 0
    assert capsys.readouterr().out == "Received message is [Hello\nWorld!]\n"


def test_main_send_delivers_default_message():
    thread, port, result = _in_background(serve_receive, size=len(MESSAGE))
    code = main(["send", "127.0.0.1", str(port)])
    thread.join(timeout=5)
    assert code == 0
    assert result["value"] == MESSAGE


def test_main_reports_refused_connection(capsys):
    code = main(["receive", "127.0.0.1", str(_closed_port())])
    assert code == errno.ECONNREFUSED
    assert "ec.value = " in capsys.readouterr().err