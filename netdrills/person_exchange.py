"""Exchange a framed Person record, optionally over TLS, and scatter/gather reads."""

from __future__ import annotations

import argparse
import socket
import ssl
import sys
from typing import Callable, List, Optional, Sequence, Tuple

from netdrills.basics import bind_acceptor, connect_to
from netdrills.buffers import iota_buffer, zero_buffer
from netdrills.framing import (
    LENGTH_PREFIX,
    FrameError,
    decode_length,
    encode_length,
    recv_exactly,
    recv_frame,
    send_frame,
)
from netdrills.messages import Person

DEFAULT_ADDRESS = "127.0.0.1"
DEFAULT_PORT = 8172
PATTERN_SIZE = 1024 * 4
DEFAULT_CHUNK_SIZES = (1024 * 2,) * 4

ReadyCallback = Optional[Callable[[int], object]]


def _default_person() -> Person:
    return Person(id=1000, name="Jane Doe", email="jane.doe@example.com")


def _accept_one(port: int, ready: ReadyCallback) -> socket.socket:
    with bind_acceptor(port) as acceptor:
        acceptor.listen(socket.SOMAXCONN)
        if ready is not None:
            ready(acceptor.getsockname()[1])
        connection, _ = acceptor.accept()
    return connection


def serve_person(
    port: int, person: Optional[Person] = None, ready: ReadyCallback = None
) -> int:
    """Accept one client and send it ``person`` as a frame; return the payload size."""
    payload = (person if person is not None else _default_person()).to_bytes()
    with _accept_one(port, ready) as connection:
        send_frame(connection, payload)
    return len(payload)


def receive_person(address: str, port: int) -> Person:
    """Connect and receive one framed Person."""
    with connect_to(address, port) as sock:
        return Person.from_bytes(recv_frame(sock))


def serve_person_tls(
    port: int,
    certfile: str,
    keyfile: str,
    password: Optional[str] = None,
    ready: ReadyCallback = None,
) -> Person:
    """Accept one TLS client and receive a framed Person from it."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(certfile, keyfile, password=password)
    with _accept_one(port, ready) as connection:
        with context.wrap_socket(connection, server_side=True) as stream:
            return Person.from_bytes(recv_frame(stream))


def send_person_tls(
    address: str, port: int, cafile: str, person: Optional[Person] = None
) -> int:
    """Connect over TLS, verifying the peer against ``cafile``, and send a Person."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_REQUIRED
    context.load_verify_locations(cafile)
    payload = (person if person is not None else _default_person()).to_bytes()
    with connect_to(address, port) as sock:
        with context.wrap_socket(sock) as stream:
            send_frame(stream, payload)
    return len(payload)


def serve_pattern(port: int, ready: ReadyCallback = None) -> int:
    """Accept one client and send it two counting buffers behind one length prefix."""
    parts = [iota_buffer(PATTERN_SIZE), iota_buffer(PATTERN_SIZE)]
    total = sum(len(part) for part in parts)
    with _accept_one(port, ready) as connection:
        connection.sendall(encode_length(total))
        for part in parts:
            connection.sendall(part)
    return total


def receive_pattern(
    address: str, port: int, chunk_sizes: Sequence[int] = DEFAULT_CHUNK_SIZES
) -> Tuple[int, List[bytearray]]:
    """Receive a length-prefixed payload scattered across buffers of ``chunk_sizes``.

    Returns the announced length and the buffers, filled in order.
    """
    chunks = [zero_buffer(size) for size in chunk_sizes]
    capacity = sum(len(chunk) for chunk in chunks)
    with connect_to(address, port) as sock:
        length = decode_length(recv_exactly(sock, LENGTH_PREFIX.size))
        if length > capacity:
            raise FrameError(
                f"payload of {length} bytes exceeds buffer capacity {capacity}",
                received=0,
                expected=length,
            )
        remaining = length
        for chunk in chunks:
            if not remaining:
                break
            part = min(len(chunk), remaining)
            chunk[:part] = recv_exactly(sock, part)
            remaining -= part
    return length, chunks


def _report(code: int, message: str) -> int:
    print(f"Error occured! Error code = {code}. Message: {message}", file=sys.stderr)
    return code


def _run(args: argparse.Namespace) -> int:
    if args.mode == "person":
        if args.server:
            print("Running server variant...")
            size = len(_default_person().to_bytes())
            print(f"Before: {size}")
            serve_person(args.port)
            print("After: 0")
        else:
            print("Running client variant...")
            person = receive_person(args.address, args.port)
            print(f"Received message is [{person.to_json()}]")
    elif args.mode == "tls":
        if args.server:
            print("Running server variant...")
            person = serve_person_tls(args.port, args.cert, args.key, args.password)
            print(f"Received message is [{person.to_json()}]")
        else:
            print("Running client variant...")
            size = len(_default_person().to_bytes())
            print(f"Before: {size}")
            send_person_tls(args.address, args.port, args.ca)
            print("After: 0")
    else:
        if args.server:
            print("Running server variant...")
            serve_pattern(args.port)
        else:
            print("Running client variant...")
            length, _ = receive_pattern(args.address, args.port)
            print(f"Received {length} bytes.")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Allowed options")
    parser.add_argument(
        "mode", nargs="?", choices=["person", "tls", "pattern"], default="person"
    )
    parser.add_argument("--server", action="store_true", help="Run as server")
    parser.add_argument("--client", action="store_true", help="Run as client")
    parser.add_argument("--address", default=DEFAULT_ADDRESS)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--cert", default="server.crt")
    parser.add_argument("--key", default="server.key")
    parser.add_argument("--password", default=None)
    parser.add_argument("--ca", default="server.crt")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not (args.server or args.client):
        parser.print_help()
        return 1
    try:
        return _run(args)
    except FrameError as exc:
        return _report(1, str(exc))
    except ValueError as exc:
        return _report(22, str(exc))
    except OSError as exc:
        code = exc.errno if isinstance(exc.errno, int) and exc.errno > 0 else 1
        return _report(code, exc.strerror or str(exc))


if __name__ == "__main__":
    sys.exit(main())