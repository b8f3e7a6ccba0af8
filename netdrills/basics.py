"""TCP endpoints, sockets, acceptors and name resolution."""

from __future__ import annotations

import argparse
import errno
import ipaddress
import socket
import sys
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

DEFAULT_ENDPOINT_PORT = 3333
DEFAULT_SERVICE_PORT = 8172
DEFAULT_BACKLOG = 30


@dataclass(frozen=True)
class Endpoint:
    """An IP address paired with a TCP port."""

    address: IPAddress
    port: int

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"port {self.port} is out of range 0..65535")

    @property
    def family(self) -> socket.AddressFamily:
        return socket.AF_INET if self.address.version == 4 else socket.AF_INET6

    @property
    def sockaddr(self) -> tuple:
        return (str(self.address), self.port)

    def __str__(self) -> str:
        return f"{self.address}:{self.port}"


def make_endpoint(address: str, port: int) -> Endpoint:
    """Build an endpoint from a textual IP address; raises ValueError if invalid."""
    return Endpoint(ipaddress.ip_address(address), port)


def any_endpoint(port: int) -> Endpoint:
    """The IPv4 wildcard endpoint on the given port."""
    return Endpoint(ipaddress.IPv4Address(0), port)


def open_socket() -> socket.socket:
    """Open an unconnected IPv4 TCP socket."""
    return socket.socket(socket.AF_INET, socket.SOCK_STREAM)


def open_acceptor() -> socket.socket:
    """Open an IPv4 TCP socket meant for accepting connections."""
    return socket.socket(socket.AF_INET, socket.SOCK_STREAM)


def resolve(host: str, service: str) -> List[Endpoint]:
    """Resolve a host and service into the TCP endpoints they name."""
    infos = socket.getaddrinfo(host, service, type=socket.SOCK_STREAM)
    return [make_endpoint(sockaddr[0], sockaddr[1]) for *_, sockaddr in infos]


def bind_acceptor(port: int) -> socket.socket:
    """Open an acceptor and bind it to the wildcard address on ``port``."""
    endpoint = any_endpoint(port)
    acceptor = open_acceptor()
    try:
        acceptor.bind(endpoint.sockaddr)
    except OSError:
        acceptor.close()
        raise
    return acceptor


def connect_to(address: str, port: int) -> socket.socket:
    """Open a socket and connect it to ``address``:``port``."""
    endpoint = make_endpoint(address, port)
    sock = socket.socket(endpoint.family, socket.SOCK_STREAM)
    try:
        sock.connect(endpoint.sockaddr)
    except OSError:
        sock.close()
        raise
    return sock


def accept_connection(port: int, backlog: int = DEFAULT_BACKLOG) -> socket.socket:
    """Listen on ``port`` and return the first accepted connection."""
    with bind_acceptor(port) as acceptor:
        acceptor.listen(backlog)
        connection, _ = acceptor.accept()
    return connection


def _report(code: int, message: str) -> int:
    print(f"ec.value = {code}, ec.message = {message}", file=sys.stderr)
    return code


def _cmd_endpoint(args: argparse.Namespace) -> int:
    print(make_endpoint(args.address, args.port))
    return 0


def _cmd_any(args: argparse.Namespace) -> int:
    print(any_endpoint(args.port))
    return 0


def _cmd_open_socket(args: argparse.Namespace) -> int:
    with open_socket():
        pass
    return 0


def _cmd_open_acceptor(args: argparse.Namespace) -> int:
    with open_acceptor():
        pass
    return 0


def _cmd_resolve(args: argparse.Namespace) -> int:
    for endpoint in resolve(args.host, args.service):
        print(endpoint)
    return 0


def _cmd_bind(args: argparse.Namespace) -> int:
    with bind_acceptor(args.port):
        pass
    return 0


def _cmd_connect(args: argparse.Namespace) -> int:
    print("Connecting client socket...")
    with connect_to(args.address, args.port):
        pass
    return 0


def _cmd_accept(args: argparse.Namespace) -> int:
    print("Start accepting...")
    with accept_connection(args.port, args.backlog) as connection:
        print("Connection established.")
        host, port = connection.getsockname()[:2]
        print(make_endpoint(host, port))
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Basic TCP socket operations.")
    commands = parser.add_subparsers(dest="command", required=True)

    def add(name: str, handler: Callable[[argparse.Namespace], int], help_text: str):
        sub = commands.add_parser(name, help=help_text)
        sub.set_defaults(handler=handler)
        return sub

    sub = add("endpoint", _cmd_endpoint, "parse an address into an endpoint")
    sub.add_argument("address", nargs="?", default="127.0.0.1")
    sub.add_argument("port", nargs="?", type=int, default=DEFAULT_ENDPOINT_PORT)

    sub = add("any", _cmd_any, "show the wildcard endpoint")
    sub.add_argument("port", nargs="?", type=int, default=DEFAULT_ENDPOINT_PORT)

    add("open-socket", _cmd_open_socket, "open a TCP socket")
    add("open-acceptor", _cmd_open_acceptor, "open a TCP acceptor")

    sub = add("resolve", _cmd_resolve, "resolve a host name")
    sub.add_argument("host", nargs="?", default="google.com")
    sub.add_argument("service", nargs="?", default="80")

    sub = add("bind", _cmd_bind, "bind an acceptor")
    sub.add_argument("port", nargs="?", type=int, default=DEFAULT_SERVICE_PORT)

    sub = add("connect", _cmd_connect, "connect to a server")
    sub.add_argument("address", nargs="?", default="127.0.0.1")
    sub.add_argument("port", nargs="?", type=int, default=DEFAULT_SERVICE_PORT)

    sub = add("accept", _cmd_accept, "accept one connection")
    sub.add_argument("port", nargs="?", type=int, default=DEFAULT_SERVICE_PORT)
    sub.add_argument("--backlog", type=int, default=DEFAULT_BACKLOG)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        return args.handler(args)
    except ValueError as exc:
        return _report(errno.EINVAL, str(exc))
    except OSError as exc:
        code = exc.errno if isinstance(exc.errno, int) and exc.errno > 0 else 1
        return _report(code, exc.strerror or str(exc))


if __name__ == "__main__":
    sys.exit(main())