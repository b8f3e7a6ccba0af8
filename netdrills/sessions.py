"""Send and receive one framed Person record from a background worker thread."""

from __future__ import annotations

import argparse
import errno
import socket
import sys
import threading
from typing import Callable, Dict, Optional, Sequence

from netdrills.basics import bind_acceptor, connect_to
from netdrills.framing import LENGTH_PREFIX, FrameError, decode_length, encode_length
from netdrills.messages import Person

DEFAULT_ADDRESS = "127.0.0.1"
DEFAULT_PORT = 8174
DEFAULT_TIMEOUT = 10.0

ReadyCallback = Optional[Callable[[int], object]]


def _default_person() -> Person:
    return Person(id=1000, name="Jane Doe", email="jane.doe@example.com")


def check_op(
    error: Optional[BaseException], received: int, expected: int
) -> None:
    """Raise ``error`` if set, or FrameError if ``received`` differs from ``expected``."""
    if error is not None:
        raise error
    if received != expected:
        raise FrameError(
            "Failed to read/write expected data length",
            received=received,
            expected=expected,
        )


def _read_up_to(sock: socket.socket, size: int) -> bytes:
    data = bytearray()
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            break
        data += chunk
    return bytes(data)


def _read(sock: socket.socket, size: int) -> bytes:
    data = b""
    error: Optional[OSError] = None
    try:
        data = _read_up_to(sock, size)
    except OSError as exc:
        error = exc
    check_op(error, len(data), size)
    return data


def _write(sock: socket.socket, data: bytes) -> None:
    view = memoryview(bytes(data))
    sent = 0
    error: Optional[OSError] = None
    try:
        while sent < len(view):
            count = sock.send(view[sent:])
            if count == 0:
                break
            sent += count
    except OSError as exc:
        error = exc
    check_op(error, sent, len(view))


def run_client(
    address: str = DEFAULT_ADDRESS,
    port: int = DEFAULT_PORT,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
) -> Person:
    """Connect, read one length-prefixed Person and return it."""
    with connect_to(address, port) as sock:
        sock.settimeout(timeout)
        length = decode_length(_read(sock, LENGTH_PREFIX.size))
        return Person.from_bytes(_read(sock, length))


def run_server(
    port: int = DEFAULT_PORT,
    person: Optional[Person] = None,
    ready: ReadyCallback = None,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
) -> int:
    """Accept one client, send it ``person`` as a frame and return the payload size.

    ``ready`` is called with the bound port once the server is listening.
    """
    payload = (person if person is not None else _default_person()).to_bytes()
    with bind_acceptor(port) as acceptor:
        acceptor.listen(socket.SOMAXCONN)
        acceptor.settimeout(timeout)
        if ready is not None:
            ready(acceptor.getsockname()[1])
        connection, _ = acceptor.accept()
    with connection:
        connection.settimeout(timeout)
        _write(connection, encode_length(len(payload)))
        _write(connection, payload)
    return len(payload)


def _error_code(error: BaseException) -> int:
    if isinstance(error, FrameError):
        return errno.ECANCELED
    if isinstance(error, OSError) and isinstance(error.errno, int) and error.errno > 0:
        return error.errno
    if isinstance(error, ValueError):
        return errno.EINVAL
    return 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Exchange one Person in the background.")
    parser.add_argument("role", choices=["client", "server"])
    parser.add_argument("--address", default=DEFAULT_ADDRESS)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    outcome: Dict[str, object] = {}

    def work() -> None:
        try:
            if args.role == "client":
                outcome["person"] = run_client(args.address, args.port, args.timeout)
            else:
                outcome["size"] = run_server(args.port, timeout=args.timeout)
        except (FrameError, OSError, ValueError) as exc:
            outcome["error"] = exc

    worker = threading.Thread(target=work, name="session-worker")
    worker.start()
    print("Waiting for background thread to finish...")
    worker.join()

    error = outcome.get("error")
    if isinstance(error, BaseException):
        code = _error_code(error)
        print(
            f"Background thread caught exception. Error code = {code}. Message: {error}"
        )
        return code
    person = outcome.get("person")
    if isinstance(person, Person):
        print(f"Received message is [{person.to_json()}]")
    return 0


if __name__ == "__main__":
    sys.exit(main())