import errno
import ipaddress
import socket
import threading
import time

import pytest

from netdrills.basics import (
    Endpoint,
    accept_connection,
    any_endpoint,
    bind_acceptor,
    connect_to,
    main,
    make_endpoint,
    open_acceptor,
    open_socket,
    resolve,
)


def _free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
        probe.bind(("127.0.0.1", 0))
        return probe.getsockname()[1]


def _connect_with_retry(port, deadline=5.0):
    end = time.monotonic() + deadline
    while True:
        try:
            return socket.create_connection(("127.0.0.1", port), timeout=1)
        except ConnectionRefusedError:
            if time.monotonic() > end:
                raise
            time.sleep(0.02)


def test_make_endpoint_fields():
    endpoint = make_endpoint("127.0.0.1", 3333)
    assert endpoint.address == ipaddress.ip_address("127.0.0.1")
    assert endpoint.port == 3333
    assert str(endpoint) == "127.0.0.1:3333"
    assert endpoint.family == socket.AF_INET


def test_make_endpoint_ipv6():
    endpoint = make_endpoint("::1", 80)
    assert endpoint.address.version == 6
    assert endpoint.family == socket.AF_INET6


def test_make_endpoint_rejects_bad_address():
    with pytest.raises(ValueError):
        make_endpoint("not-an-address", 1)


def test_endpoint_rejects_bad_port():
    with pytest.raises(ValueError):
        make_endpoint("127.0.0.1", 70000)


def test_any_endpoint_is_wildcard():
    endpoint = any_endpoint(3333)
    assert endpoint == Endpoint(ipaddress.IPv4Address("0.0.0.0"), 3333)


def test_open_socket_is_ipv4_stream():
    with open_socket() as sock:
        assert sock.family == socket.AF_INET
        assert sock.type == socket.SOCK_STREAM


def test_open_acceptor_is_ipv4_stream():
    with open_acceptor() as sock:
        assert (sock.family, sock.type) == (socket.AF_INET, socket.SOCK_STREAM)


def test_resolve_numeric_host():
    assert resolve("127.0.0.1", "80") == [make_endpoint("127.0.0.1", 80)]


def test_resolve_unknown_service_fails():
    with pytest.raises(OSError):
        resolve("127.0.0.1", "no-such-service-here")


def test_bind_acceptor_on_wildcard():
    with bind_acceptor(0) as acceptor:
        host, port = acceptor.getsockname()
        assert host == str(any_endpoint(0).address)
        assert port > 0


def test_bind_acceptor_port_in_use():
    with bind_acceptor(0) as first:
        port = first.getsockname()[1]
        with pytest.raises(OSError) as info:
            bind_acceptor(port)
        assert info.value.errno == errno.EADDRINUSE


def test_connect_to_listening_server():
    with socket.socket() as server:
        server.bind(("127.0.0.1", 0))
        server.listen()
        port = server.getsockname()[1]
        with connect_to("127.0.0.1", port) as client:
            assert client.getpeername() == ("127.0.0.1", port)


def test_connect_to_refused():
    port = _free_port()
    with pytest.raises(ConnectionRefusedError):
        connect_to("127.0.0.1", port)


def test_accept_connection_returns_connected_socket():
    port = _free_port()
    result = {}
    thread = threading.Thread(
        target=lambda: result.setdefault("conn", accept_connection(port, 30))
    )
    thread.start()
    client = _connect_with_retry(port)
    thread.join(timeout=5)
    conn = result["conn"]
    try:
        assert conn.getsockname()[1] == port
        assert conn.getpeername() == client.getsockname()
    finally:
        conn.close()
        client.close()


def test_main_endpoint_ok(capsys):
    assert main(["endpoint", "127.0.0.1", "3333"]) == 0
    assert capsys.readouterr().out.strip() == "127.0.0.1:3333"


def test_main_endpoint_bad_address(capsys):
    assert main(["endpoint", "bogus"]) == errno.EINVAL
    assert f"ec.value = {errno.EINVAL}" in capsys.readouterr().err


def test_main_resolve(capsys):
    assert main(["resolve", "127.0.0.1", "80"]) == 0
    assert "127.0.0.1:80" in capsys.readouterr().out.splitlines()


def test_main_connect_refused(capsys):
    port = _free_port()
    code = main(["connect", "127.0.0.1", str(port)])
    assert code == errno.ECONNREFUSED
    assert f"ec.value = {errno.ECONNREFUSED}" in capsys.readouterr().err