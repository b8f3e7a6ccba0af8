"""An event-driven work-load client that polls its socket for framed responses."""

from __future__ import annotations

import argparse
import select
import socket
import sys
import time
from typing import Callable, Iterable, Iterator, List, Optional, Sequence

from netdrills.framing import LENGTH_PREFIX, decode_length, encode_length
from netdrills.messages import WorkMessage, WorkRequest

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8172
DEFAULT_TIMEOUT = 5.0
CONNECT_TIMEOUT = 5.0
_RECV_SIZE = 64 * 1024
_UINT32_MAX = 2**32 - 1

ResponseHandler = Callable[[bytes], object]
Logger = Callable[[str], object]


class FrameReader:
    """Reassembles length-prefixed frames from arbitrarily split chunks.

    A frame whose length prefix is zero carries nothing and is skipped.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._pending: Optional[int] = None

    def feed(self, data: bytes) -> List[bytes]:
        """Add received bytes and return every payload that is now complete."""
        self._buffer += data
        frames: List[bytes] = []
        while True:
            if self._pending is None:
                if len(self._buffer) < LENGTH_PREFIX.size:
                    break
                self._pending = decode_length(bytes(self._buffer[: LENGTH_PREFIX.size]))
                del self._buffer[: LENGTH_PREFIX.size]
                if self._pending == 0:
                    self._pending = None
                    continue
            if len(self._buffer) < self._pending:
                break
            frames.append(bytes(self._buffer[: self._pending]))
            del self._buffer[: self._pending]
            self._pending = None
        return frames


class EventClient:
    """Sends framed requests and delivers framed responses as they arrive.

    After ``send_request`` a response must arrive within ``timeout`` seconds;
    otherwise the next ``poll`` aborts the connection.
    """

    def __init__(
        self,
        on_response: Optional[ResponseHandler] = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        log: Logger = print,
    ) -> None:
        self._on_response = on_response
        self.timeout = timeout
        self._log = log
        self._sock: Optional[socket.socket] = None
        self._reader = FrameReader()
        self._deadline: Optional[float] = None

    def connect_to_host(self, host: str, port: int) -> bool:
        """Connect, waiting up to five seconds; return whether it succeeded."""
        self.close()
        try:
            sock = socket.create_connection((host, port), timeout=CONNECT_TIMEOUT)
        except OSError as exc:
            self._report(exc)
            return False
        sock.settimeout(None)
        self._sock = sock
        self._log("Connected to host.")
        return True

    def is_connected(self) -> bool:
        return self._sock is not None

    def send_request(self, payload: bytes) -> None:
        """Send one request frame and start the response timeout."""
        sock = self._sock
        if sock is None:
            raise ConnectionError("not connected")
        if self.timeout is not None:
            self._deadline = time.monotonic() + self.timeout
        try:
            sock.sendall(encode_length(len(payload)) + bytes(payload))
        except OSError as exc:
            self._report(exc)
            self._drop()
            raise ConnectionError(f"connection lost: {exc}") from exc

    def poll(self, timeout: Optional[float] = None) -> List[bytes]:
        """Wait up to ``timeout`` seconds for data and return completed responses.

        With ``timeout`` None the wait lasts until data arrives or the response
        timeout runs out.
        """
        sock = self._sock
        if sock is None:
            return []
        wait = timeout
        if self._deadline is not None:
            remaining = max(0.0, self._deadline - time.monotonic())
            wait = remaining if wait is None else min(wait, remaining)
        readable, _, _ = select.select([sock], [], [], wait)
        if readable:
            try:
                data = sock.recv(_RECV_SIZE)
            except OSError as exc:
                self._report(exc)
                self._drop()
                return []
            if not data:
                self._log("Disconnected from host.")
                self._drop()
                return []
            frames = self._reader.feed(data)
            if frames:
                self._deadline = None
                if self._on_response is not None:
                    for frame in frames:
                        self._on_response(frame)
            return frames
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._log("Timeout occurred.")
            self._drop()
        return []

    def close(self) -> None:
        self._drop()

    def __enter__(self) -> "EventClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _report(self, exc: OSError) -> None:
        code = exc.errno if isinstance(exc.errno, int) else -1
        self._log(f"Error {code} occurred: {exc.strerror or exc}.")

    def _drop(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None
        self._deadline = None
        self._reader = FrameReader()


def _loads(lines: Iterable[str]) -> Iterator[int]:
    for line in lines:
        for token in line.split():
            try:
                value = int(token)
            except ValueError:
                return
            if not 0 <= value <= _UINT32_MAX:
                return
            yield value


def _show_response(payload: bytes) -> None:
    try:
        message = WorkMessage.from_bytes(payload)
    except ValueError:
        print("Failed to convert response message to JSON.", file=sys.stderr)
        return
    print(f"Received response message: {message.to_json()}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Send work loads read from stdin.")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT)
    args = parser.parse_args(argv)

    with EventClient(_show_response, args.timeout) as client:
        for job_id, load in enumerate(_loads(sys.stdin), start=1):
            if not client.is_connected():
                client.connect_to_host(args.host, args.port)
            request = WorkMessage(work_request=WorkRequest(job_id=job_id, workload=load))
            try:
                client.send_request(request.to_bytes())
            except ConnectionError:
                continue
            while client.is_connected():
                if client.poll():
                    break
    return 0


if __name__ == "__main__":
    sys.exit(main())