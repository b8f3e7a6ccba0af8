"""Byte buffers: a growable stream buffer and fixed-size helpers."""

from __future__ import annotations

import argparse
import sys
from typing import Iterator, Optional, Sequence, Union

_WHITESPACE = b" \t\n\r\x0b\x0c"

BytesLike = Union[bytes, bytearray, memoryview, str]


class StreamBuffer:
    """A FIFO byte buffer: data is written at the end and read from the front."""

    def __init__(self, data: BytesLike = b"") -> None:
        self._data = bytearray()
        if data:
            self.write(data)

    def write(self, data: BytesLike) -> int:
        """Append data (text is stored as UTF-8) and return the bytes added."""
        chunk = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        self._data += chunk
        return len(chunk)

    def read(self, size: int = -1) -> bytes:
        """Remove and return up to ``size`` bytes; all of them if ``size`` < 0."""
        if size < 0:
            size = len(self._data)
        chunk = bytes(self._data[:size])
        del self._data[:size]
        return chunk

    def consume(self, size: int) -> None:
        """Discard up to ``size`` bytes from the front."""
        if size < 0:
            raise ValueError("cannot consume a negative number of bytes")
        del self._data[:size]

    def words(self) -> Iterator[bytes]:
        """Yield whitespace-separated words, consuming them as they are read."""
        while True:
            stripped = self._data.lstrip(_WHITESPACE)
            del self._data[: len(self._data) - len(stripped)]
            if not self._data:
                return
            end = next(
                (pos for pos, byte in enumerate(self._data) if byte in _WHITESPACE),
                len(self._data),
            )
            yield self.read(end)

    def __len__(self) -> int:
        return len(self._data)

    def __bytes__(self) -> bytes:
        return bytes(self._data)


def zero_buffer(size: int) -> bytearray:
    """A writable buffer of ``size`` zero bytes."""
    if size < 0:
        raise ValueError("buffer size must not be negative")
    return bytearray(size)


def iota_buffer(size: int) -> bytes:
    """A read-only buffer counting up from zero, wrapping after 255."""
    if size < 0:
        raise ValueError("buffer size must not be negative")
    return bytes(value & 0xFF for value in range(size))


def main(argv: Optional[Sequence[str]] = None) -> int:
    argparse.ArgumentParser(description="Stream buffer demonstration.").parse_args(argv)
    buffer = StreamBuffer()
    buffer.write("Some\nText")
    for word in buffer.words():
        print(f"Received message is [{word.decode('utf-8', 'replace')}]")

    buffer.write("Some\nMore\nText")
    text = buffer.read(100).decode("utf-8", "replace")
    print(f"Received message is [{text}]")
    return 0


if __name__ == "__main__":
    sys.exit(main())