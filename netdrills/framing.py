"""Length-prefixed framing over stream sockets."""

from __future__ import annotations

import socket
import struct
from dataclasses import dataclass, field
from typing import Optional

from netdrills.buffers import StreamBuffer

LENGTH_PREFIX = struct.Struct("<Q")
MAX_LENGTH = 2**64 - 1


class FrameError(Exception):
    """A frame could not be read or decoded in full."""

    def __init__(
        self,
        message: str,
        received: Optional[int] = None,
        expected: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.received = received
        self.expected = expected


@dataclass
class Session:
    """A connected socket together with the frame being sent or received."""

    sock: socket.socket
    data: StreamBuffer = field(default_factory=StreamBuffer)
    data_len: int = 0


def encode_length(length: int) -> bytes:
    """Encode a payload length as the 8-byte little-endian prefix."""
    if not 0 <= length <= MAX_LENGTH:
        raise ValueError(f"frame length {length} does not fit in 64 bits")
    return LENGTH_PREFIX.pack(length)


def decode_length(data: bytes) -> int:
    """Decode an 8-byte length prefix."""
    if len(data) != LENGTH_PREFIX.size:
        raise FrameError(
            "length prefix has the wrong size",
            received=len(data),
            expected=LENGTH_PREFIX.size,
        )
    (length,) = LENGTH_PREFIX.unpack(data)
    return length


def recv_exactly(sock: socket.socket, size: int) -> bytes:
    """Read exactly ``size`` bytes, raising FrameError if the stream ends first."""
    buffer = bytearray(size)
    view = memoryview(buffer)
    received = 0
    while received < size:
        count = sock.recv_into(view[received:])
        if count == 0:
            raise FrameError(
                f"connection closed after {received} of {size} bytes",
                received=received,
                expected=size,
            )
        received += count
    return bytes(buffer)


def send_frame(sock: socket.socket, payload: bytes) -> None:
    """Send a length prefix followed by the payload."""
    sock.sendall(encode_length(len(payload)) + bytes(payload))


def recv_frame(sock: socket.socket) -> bytes:
    """Receive one length-prefixed payload."""
    length = decode_length(recv_exactly(sock, LENGTH_PREFIX.size))
    return recv_exactly(sock, length)