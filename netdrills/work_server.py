"""A multi-client server that answers framed work-load requests."""

from __future__ import annotations

import argparse
import errno
import socket
import sys
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence

from netdrills.basics import make_endpoint
from netdrills.framing import FrameError, recv_frame, send_frame
from netdrills.messages import WorkMessage, WorkRequest, WorkResponse

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8172
_ACCEPT_POLL = 0.1

RequestHandler = Callable[[int, bytes], bytes]
Logger = Callable[[str], object]


def handle_request(client_id: int, payload: bytes) -> bytes:
    """Report the request, work for its load in milliseconds and return the response."""
    try:
        request = WorkMessage.from_bytes(payload).work_request or WorkRequest()
    except ValueError:
        print("Failed to convert request message to JSON.", file=sys.stderr)
        request = WorkRequest()
    else:
        shown = WorkMessage(work_request=request).to_json()
        print(f"Received request message from client {client_id}:\n{shown}\n", end="")
    time.sleep(request.workload / 1000)
    response = WorkResponse(job_id=request.job_id, is_complete=True)
    return WorkMessage(work_response=response).to_bytes()


@dataclass(eq=False)
class _Connection:
    sock: socket.socket
    thread: threading.Thread


class WorkServer:
    """Accepts clients and serves each one on its own thread.

    Every client repeatedly sends a frame; the server passes its payload and
    the client's id to ``on_request`` and sends back the returned bytes as a
    frame. Any read, write or handler failure disconnects that client.
    """

    def __init__(
        self,
        port: int = DEFAULT_PORT,
        on_request: RequestHandler = handle_request,
        host: str = DEFAULT_HOST,
        log: Logger = print,
    ) -> None:
        self._endpoint = make_endpoint(host, port)
        self._on_request = on_request
        self._log = log
        self._lock = threading.Lock()
        self._clients: Dict[int, _Connection] = {}
        self._next_id = 0
        self._stopping = threading.Event()
        self._listener: Optional[socket.socket] = None
        self._accept_thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        """The bound port once started, otherwise the configured one."""
        if self._listener is not None:
            return self._listener.getsockname()[1]
        return self._endpoint.port

    def start(self) -> None:
        """Bind, listen and begin accepting clients in the background."""
        if self._listener is not None:
            raise RuntimeError("server already started")
        listener = socket.socket(self._endpoint.family, socket.SOCK_STREAM)
        try:
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind(self._endpoint.sockaddr)
            listener.listen(socket.SOMAXCONN)
            listener.settimeout(_ACCEPT_POLL)
        except OSError:
            listener.close()
            raise
        self._stopping.clear()
        self._listener = listener
        self._accept_thread = threading.Thread(
            target=self._accept_loop, name="work-server-accept", daemon=True
        )
        self._accept_thread.start()

    def stop(self) -> None:
        """Stop accepting, disconnect every client and wait for their threads."""
        self._stopping.set()
        if self._accept_thread is not None:
            self._accept_thread.join()
            self._accept_thread = None
        if self._listener is not None:
            self._listener.close()
            self._listener = None
        with self._lock:
            connections = list(self._clients.values())
        for connection in connections:
            try:
                connection.sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
        for connection in connections:
            connection.thread.join()

    def client_count(self) -> int:
        """The number of clients currently connected."""
        with self._lock:
            return len(self._clients)

    def __enter__(self) -> "WorkServer":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _accept_loop(self) -> None:
        listener = self._listener
        assert listener is not None
        while not self._stopping.is_set():
            try:
                sock, _ = listener.accept()
            except socket.timeout:
                continue
            except OSError as exc:
                if not self._stopping.is_set():
                    self._log(f"Error code = {exc.errno}.\nMessage: {exc}\n")
                return
            sock.settimeout(None)
            with self._lock:
                client_id = self._next_id
                self._next_id += 1
                thread = threading.Thread(
                    target=self._serve_client,
                    args=(client_id, sock),
                    name=f"work-client-{client_id}",
                    daemon=True,
                )
                self._clients[client_id] = _Connection(sock, thread)
            self._log(f"New client connected with id {client_id}.")
            thread.start()

    def _serve_client(self, client_id: int, sock: socket.socket) -> None:
        try:
            with sock:
                while not self._stopping.is_set():
                    try:
                        payload = recv_frame(sock)
                    except (FrameError, OSError):
                        break
                    try:
                        response = self._on_request(client_id, payload)
                    except Exception as exc:
                        self._log(f"Request from client {client_id} failed: {exc}")
                        break
                    try:
                        send_frame(sock, bytes(response))
                    except OSError:
                        break
        finally:
            with self._lock:
                self._clients.pop(client_id, None)
            self._log(f"Client with id {client_id} disconnected.")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Serve work-load requests.")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)

    try:
        server = WorkServer(args.port, handle_request, args.host)
        server.start()
    except ValueError as exc:
        print(f"Error code = {errno.EINVAL}.\nMessage: {exc}\n", end="")
        return errno.EINVAL
    except OSError as exc:
        code = exc.errno if isinstance(exc.errno, int) and exc.errno > 0 else 1
        print(f"Error code = {code}.\nMessage: {exc.strerror or exc}\n", end="")
        return code

    try:
        for _ in sys.stdin:
            pass
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())