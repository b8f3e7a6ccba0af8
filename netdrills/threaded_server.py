"""A work-load server that runs its listener and each client on their own threads."""

from __future__ import annotations

import argparse
import errno
import socket
import sys
import threading
import time
from typing import Callable, Iterable, Iterator, Optional, Sequence, Set

from netdrills.basics import make_endpoint
from netdrills.event_client import FrameReader
from netdrills.framing import encode_length
from netdrills.messages import WorkMessage, WorkRequest, WorkResponse

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8172
_ACCEPT_POLL = 0.1
_RECV_SIZE = 64 * 1024
_UINT32_MAX = 2**32 - 1

RequestHandler = Callable[[int, bytes], bytes]
Logger = Callable[[str], object]


def on_request(descriptor: int, payload: bytes) -> bytes:
    """Report the request, work for its load in milliseconds and return the response."""
    print(
        f"Handling request from client {descriptor} "
        f"in thread {threading.get_ident()}."
    )
    try:
        request = WorkMessage.from_bytes(payload).work_request or WorkRequest()
    except ValueError:
        print("Failed to convert request message to JSON.", file=sys.stderr)
        request = WorkRequest()
    else:
        shown = WorkMessage(work_request=request).to_json()
        print(f"Received request message from client {descriptor}:\n{shown}\n", end="")
    time.sleep(request.workload / 1000)
    response = WorkResponse(job_id=request.job_id, is_complete=True)
    return WorkMessage(work_response=response).to_bytes()


class ClientThread(threading.Thread):
    """Serves one connected socket: each request frame is answered with a frame.

    The handler receives the socket's descriptor and the request payload and
    returns the response payload. ``on_disconnected`` is called with this
    thread once the connection is gone.
    """

    def __init__(
        self,
        sock: socket.socket,
        handler: RequestHandler = on_request,
        on_disconnected: Optional[Callable[["ClientThread"], object]] = None,
        log: Logger = print,
    ) -> None:
        super().__init__(name="threaded-client", daemon=True)
        self._sock = sock
        self._handler = handler
        self._on_disconnected = on_disconnected
        self._log = log
        self._closing = False

    def run(self) -> None:
        self._log(f"Client thread: {threading.get_ident()}.")
        reader = FrameReader()
        try:
            with self._sock:
                descriptor = self._sock.fileno()
                while True:
                    try:
                        data = self._sock.recv(_RECV_SIZE)
                    except OSError as exc:
                        if not self._closing:
                            code = exc.errno if isinstance(exc.errno, int) else -1
                            self._log(f"Error {code} occurred: {exc.strerror or exc}.")
                        break
                    if not data:
                        self._log("Disconnected from host.")
                        break
                    if not all(
                        self._answer(descriptor, payload)
                        for payload in reader.feed(data)
                    ):
                        break
        finally:
            if self._on_disconnected is not None:
                self._on_disconnected(self)

    def _answer(self, descriptor: int, payload: bytes) -> bool:
        try:
            response = bytes(self._handler(descriptor, payload))
        except Exception as exc:
            self._log(f"Request from client {descriptor} failed: {exc}")
            return False
        try:
            self._sock.sendall(encode_length(len(response)) + response)
        except OSError as exc:
            code = exc.errno if isinstance(exc.errno, int) else -1
            self._log(f"Error {code} occurred: {exc.strerror or exc}.")
            return False
        return True

    def _shutdown(self) -> None:
        self._closing = True
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass


class ServerThread(threading.Thread):
    """Listens on a port and starts a ClientThread for every connection.

    The port is bound when the object is created, so binding errors are
    raised there; ``port`` then reports the bound port.
    """

    def __init__(
        self,
        port: int = DEFAULT_PORT,
        handler: RequestHandler = on_request,
        host: str = DEFAULT_HOST,
        log: Logger = print,
    ) -> None:
        super().__init__(name="threaded-server", daemon=True)
        endpoint = make_endpoint(host, port)
        listener = socket.socket(endpoint.family, socket.SOCK_STREAM)
        try:
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind(endpoint.sockaddr)
            listener.listen(socket.SOMAXCONN)
            listener.settimeout(_ACCEPT_POLL)
        except OSError:
            listener.close()
            raise
        self._listener = listener
        self._port = listener.getsockname()[1]
        self._handler = handler
        self._log = log
        self._lock = threading.Lock()
        self._clients: Set[ClientThread] = set()
        self._stopping = threading.Event()

    @property
    def port(self) -> int:
        return self._port

    def run(self) -> None:
        self._log(f"Server thread: {threading.get_ident()}.")
        while not self._stopping.is_set():
            try:
                sock, _ = self._listener.accept()
            except socket.timeout:
                continue
            except OSError as exc:
                if not self._stopping.is_set():
                    self._log(f"Error {exc.errno} occurred: {exc.strerror or exc}.")
                return
            sock.settimeout(None)
            client = ClientThread(sock, self._handler, self._forget, self._log)
            with self._lock:
                self._clients.add(client)
            client.start()

    def stop(self) -> None:
        """Stop accepting, disconnect every client and wait for all threads."""
        self._stopping.set()
        if self.is_alive() and threading.current_thread() is not self:
            self.join()
        self._listener.close()
        with self._lock:
            clients = list(self._clients)
        for client in clients:
            client._shutdown()
        for client in clients:
            if client.is_alive():
                client.join()

    def _forget(self, client: ClientThread) -> None:
        with self._lock:
            self._clients.discard(client)


def _numbers(lines: Iterable[str]) -> Iterator[int]:
    for line in lines:
        for token in line.split():
            try:
                value = int(token)
            except ValueError:
                return
            if not 0 <= value <= _UINT32_MAX:
                return
            yield value


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Serve work-load requests on threads.")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)

    print(f"Main thread: {threading.get_ident()}.")
    try:
        server = ServerThread(args.port, on_request, args.host)
    except ValueError as exc:
        print(f"Error {errno.EINVAL} occurred: {exc}.", file=sys.stderr)
        return errno.EINVAL
    except OSError as exc:
        code = exc.errno if isinstance(exc.errno, int) and exc.errno > 0 else 1
        print(f"Error {code} occurred: {exc.strerror or exc}.", file=sys.stderr)
        return code

    server.start()
    try:
        for _ in _numbers(sys.stdin):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())