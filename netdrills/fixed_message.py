"""Send or receive a single fixed-size message over TCP."""

from __future__ import annotations

import argparse
import socket
import sys
from typing import Callable, Optional, Sequence

from netdrills.basics import bind_acceptor, connect_to
from netdrills.framing import FrameError, recv_exactly

DEFAULT_ADDRESS = "127.0.0.1"
DEFAULT_PORT = 8172
DEFAULT_MESSAGE = "Hello\nWorld!"
DEFAULT_SIZE = 12
LISTEN_BACKLOG = 4096

ReadyCallback = Optional[Callable[[int], object]]


def _accept_one(port: int, backlog: int, ready: ReadyCallback) -> socket.socket:
    with bind_acceptor(port) as acceptor:
        acceptor.listen(backlog)
        if ready is not None:
            ready(acceptor.getsockname()[1])
        connection, _ = acceptor.accept()
    return connection


def send_message(address: str, port: int, data: bytes) -> int:
    """Connect to ``address``:``port``, write all of ``data`` and return its length."""
    payload = bytes(data)
    with connect_to(address, port) as sock:
        sock.sendall(payload)
    return len(payload)


def serve_message(
    port: int,
    data: bytes,
    backlog: int = LISTEN_BACKLOG,
    ready: ReadyCallback = None,
) -> int:
    """Accept one connection on ``port``, write ``data`` to it and return its length.

    ``ready`` is called with the bound port once the server is listening.
    """
    payload = bytes(data)
    with _accept_one(port, backlog, ready) as connection:
        connection.sendall(payload)
    return len(payload)


def receive_message(address: str, port: int, size: int = DEFAULT_SIZE) -> bytes:
    """Connect to ``address``:``port`` and read exactly ``size`` bytes."""
    with connect_to(address, port) as sock:
        return recv_exactly(sock, size)


def serve_receive(
    port: int,
    size: int = DEFAULT_SIZE,
    backlog: int = LISTEN_BACKLOG,
    ready: ReadyCallback = None,
) -> bytes:
    """Accept one connection on ``port`` and read exactly ``size`` bytes from it."""
    with _accept_one(port, backlog, ready) as connection:
        return recv_exactly(connection, size)


def _report(code: int, message: str) -> int:
    print(f"ec.value = {code}, ec.message = {message}", file=sys.stderr)
    return code


def _show(data: bytes) -> None:
    print(f"Received message is [{data.decode('utf-8', 'replace')}]")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Exchange one fixed-size message.")
    commands = parser.add_subparsers(dest="command", required=True)

    sub = commands.add_parser("send", help="connect and send a message")
    sub.add_argument("address", nargs="?", default=DEFAULT_ADDRESS)
    sub.add_argument("port", nargs="?", type=int, default=DEFAULT_PORT)
    sub.add_argument("--data", default=DEFAULT_MESSAGE)

    sub = commands.add_parser("serve", help="accept a client and send it a message")
    sub.add_argument("port", nargs="?", type=int, default=DEFAULT_PORT)
    sub.add_argument("--data", default=DEFAULT_MESSAGE)
    sub.add_argument("--backlog", type=int, default=LISTEN_BACKLOG)

    sub = commands.add_parser("receive", help="connect and receive a message")
    sub.add_argument("address", nargs="?", default=DEFAULT_ADDRESS)
    sub.add_argument("port", nargs="?", type=int, default=DEFAULT_PORT)
    sub.add_argument("--size", type=int, default=DEFAULT_SIZE)

    sub = commands.add_parser(
        "serve-receive", help="accept a client and receive a message from it"
    )
    sub.add_argument("port", nargs="?", type=int, default=DEFAULT_PORT)
    sub.add_argument("--size", type=int, default=DEFAULT_SIZE)
    sub.add_argument("--backlog", type=int, default=LISTEN_BACKLOG)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        if args.command == "send":
            send_message(args.address, args.port, args.data.encode("utf-8"))
        elif args.command == "serve":
            serve_message(args.port, args.data.encode("utf-8"), args.backlog)
        elif args.command == "receive":
            _show(receive_message(args.address, args.port, args.size))
        else:
            _show(serve_receive(args.port, args.size, args.backlog))
    except FrameError as exc:
        return _report(1, str(exc))
    except ValueError as exc:
        return _report(22, str(exc))
    except OSError as exc:
        code = exc.errno if isinstance(exc.errno, int) and exc.errno > 0 else 1
        return _report(code, exc.strerror or str(exc))
    return 0


if __name__ == "__main__":
    sys.exit(main())