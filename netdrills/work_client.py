"""A request/response client for the work-load service."""

from __future__ import annotations

import argparse
import errno
import socket
import sys
import time
from typing import Callable, Iterable, Iterator, Optional, Sequence

from netdrills.basics import connect_to
from netdrills.framing import LENGTH_PREFIX, FrameError, decode_length, send_frame
from netdrills.messages import WorkMessage, WorkRequest

DEFAULT_ADDRESS = "127.0.0.1"
DEFAULT_PORT = 8172
DEFAULT_TIMEOUT = 5.0
_UINT32_MAX = 2**32 - 1


class Client:
    """Sends framed requests and waits, with a timeout, for framed responses.

    Any failure during an exchange closes the connection and calls
    ``on_disconnect``; the client may then connect again.
    """

    def __init__(
        self,
        on_disconnect: Optional[Callable[[], object]] = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
    ) -> None:
        self._sock: Optional[socket.socket] = None
        self._on_disconnect = on_disconnect
        self.timeout = timeout

    def connect(self, address: str, port: int) -> None:
        """Connect to ``address``:``port``, dropping any previous connection."""
        self.close()
        self._sock = connect_to(address, port)

    def is_connected(self) -> bool:
        return self._sock is not None

    def communicate(self, payload: bytes) -> bytes:
        """Send one request frame and return the payload of the response frame.

        Raises TimeoutError if the response does not arrive in time and
        ConnectionError on any other failure.
        """
        sock = self._sock
        if sock is None:
            raise ConnectionError("not connected")
        try:
            sock.settimeout(None)
            send_frame(sock, payload)
            deadline = None if self.timeout is None else time.monotonic() + self.timeout
            length = decode_length(self._receive(sock, LENGTH_PREFIX.size, deadline))
            return self._receive(sock, length, deadline)
        except TimeoutError:
            self._disconnect()
            raise
        except (OSError, FrameError) as exc:
            self._disconnect()
            raise ConnectionError(f"connection lost: {exc}") from exc

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _disconnect(self) -> None:
        self.close()
        if self._on_disconnect is not None:
            self._on_disconnect()

    @staticmethod
    def _receive(sock: socket.socket, size: int, deadline: Optional[float]) -> bytes:
        buffer = bytearray(size)
        view = memoryview(buffer)
        received = 0
        while received < size:
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TimeoutError("Timeout occurred.")
                sock.settimeout(remaining)
            count = sock.recv_into(view[received:])
            if count == 0:
                raise FrameError(
                    f"connection closed after {received} of {size} bytes",
                    received=received,
                    expected=size,
                )
            received += count
        return bytes(buffer)


def _loads(lines: Iterable[str]) -> Iterator[int]:
    """Yield unsigned 32-bit loads until the input ends or stops being numeric."""
    for line in lines:
        for token in line.split():
            try:
                value = int(token)
            except ValueError:
                return
            if not 0 <= value <= _UINT32_MAX:
                return
            yield value


def _print_error(error: BaseException) -> int:
    if isinstance(error, OSError) and isinstance(error.errno, int) and error.errno > 0:
        code = error.errno
    elif isinstance(error, ValueError):
        code = errno.EINVAL
    else:
        code = 1
    print(f"Error code = {code}.\nMessage: {error}\n", end="")
    return code


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Send work loads read from stdin.")
    parser.add_argument("--address", default=DEFAULT_ADDRESS)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT)
    args = parser.parse_args(argv)

    with Client(lambda: print("Disconnected from server."), args.timeout) as client:
        try:
            client.connect(args.address, args.port)
        except (OSError, ValueError) as exc:
            return _print_error(exc)

        for job_id, load in enumerate(_loads(sys.stdin), start=1):
            if not client.is_connected():
                try:
                    client.connect(args.address, args.port)
                except (OSError, ValueError) as exc:
                    return _print_error(exc)
            request = WorkMessage(work_request=WorkRequest(job_id=job_id, workload=load))
            try:
                payload = client.communicate(request.to_bytes())
            except OSError as exc:
                _print_error(exc)
                continue
            try:
                response = WorkMessage.from_bytes(payload)
            except ValueError:
                print("Failed to convert response message to JSON.", file=sys.stderr)
                continue
            print(f"Received response message: {response.to_json()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())