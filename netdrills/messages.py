"""Person and work-load messages with a compact binary and JSON form."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Tuple

_VARINT = 0
_FIXED64 = 1
_LENGTH_DELIMITED = 2
_FIXED32 = 5

_UINT32_MAX = 2**32 - 1
_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1
_UINT64_MASK = 2**64 - 1


def _encode_varint(value: int) -> bytes:
    out = bytearray()
    while True:
        bits = value & 0x7F
        value >>= 7
        if value:
            out.append(bits | 0x80)
        else:
            out.append(bits)
            return bytes(out)


def _key(number: int, wire_type: int) -> bytes:
    return _encode_varint((number << 3) | wire_type)


def _varint_field(number: int, value: int) -> bytes:
    if not value:
        return b""
    return _key(number, _VARINT) + _encode_varint(value)


def _bytes_field(number: int, data: bytes, always: bool = False) -> bytes:
    if not data and not always:
        return b""
    return _key(number, _LENGTH_DELIMITED) + _encode_varint(len(data)) + data


def _check_uint32(name: str, value: int) -> int:
    if not 0 <= value <= _UINT32_MAX:
        raise ValueError(f"{name} {value} is out of range for uint32")
    return value


def _iter_fields(data: bytes) -> Iterator[Tuple[int, int, object]]:
    """Yield (field number, wire type, value) for every field in ``data``."""
    view = memoryview(bytes(data))
    pos = 0

    def read_varint() -> int:
        nonlocal pos
        result = 0
        for shift in range(0, 70, 7):
            if pos >= len(view):
                raise ValueError("truncated varint")
            byte = view[pos]
            pos += 1
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return result
        raise ValueError("varint is too long")

    def take(size: int) -> bytes:
        nonlocal pos
        if pos + size > len(view):
            raise ValueError("truncated field")
        chunk = bytes(view[pos : pos + size])
        pos += size
        return chunk

    while pos < len(view):
        key = read_varint()
        number, wire_type = key >> 3, key & 0x07
        if number == 0:
            raise ValueError("invalid field number 0")
        if wire_type == _VARINT:
            yield number, wire_type, read_varint()
        elif wire_type == _FIXED64:
            yield number, wire_type, take(8)
        elif wire_type == _LENGTH_DELIMITED:
            yield number, wire_type, take(read_varint())
        elif wire_type == _FIXED32:
            yield number, wire_type, take(4)
        else:
            raise ValueError(f"unsupported wire type {wire_type}")


def _expect(wire_type: int, wanted: int, number: int) -> None:
    if wire_type != wanted:
        raise ValueError(f"field {number} has wire type {wire_type}, expected {wanted}")


def _to_json(fields: dict) -> str:
    return json.dumps(fields, indent=1, ensure_ascii=False)


@dataclass
class Person:
    """A person record: identifier, name and e-mail address."""

    id: int = 0
    name: str = ""
    email: str = ""

    def to_bytes(self) -> bytes:
        if not _INT32_MIN <= self.id <= _INT32_MAX:
            raise ValueError(f"id {self.id} is out of range for int32")
        return (
            _varint_field(1, self.id & _UINT64_MASK)
            + _bytes_field(2, self.name.encode("utf-8"))
            + _bytes_field(3, self.email.encode("utf-8"))
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "Person":
        person = cls()
        for number, wire_type, value in _iter_fields(data):
            if number == 1:
                _expect(wire_type, _VARINT, number)
                raw = value & 0xFFFFFFFF
                person.id = raw - 2**32 if raw > _INT32_MAX else raw
            elif number == 2:
                _expect(wire_type, _LENGTH_DELIMITED, number)
                person.name = value.decode("utf-8")
            elif number == 3:
                _expect(wire_type, _LENGTH_DELIMITED, number)
                person.email = value.decode("utf-8")
        return person

    def to_json(self) -> str:
        fields = {}
        if self.id:
            fields["id"] = self.id
        if self.name:
            fields["name"] = self.name
        if self.email:
            fields["email"] = self.email
        return _to_json(fields)


@dataclass
class WorkRequest:
    """A job asking the server to work for ``workload`` milliseconds."""

    job_id: int = 0
    workload: int = 0

    def _encode(self) -> bytes:
        return _varint_field(1, _check_uint32("job_id", self.job_id)) + _varint_field(
            2, _check_uint32("workload", self.workload)
        )

    @classmethod
    def _decode(cls, data: bytes) -> "WorkRequest":
        request = cls()
        for number, wire_type, value in _iter_fields(data):
            if number == 1:
                _expect(wire_type, _VARINT, number)
                request.job_id = value & 0xFFFFFFFF
            elif number == 2:
                _expect(wire_type, _VARINT, number)
                request.workload = value & 0xFFFFFFFF
        return request

    def _fields(self) -> dict:
        fields = {}
        if self.job_id:
            fields["jobId"] = self.job_id
        if self.workload:
            fields["workload"] = self.workload
        return fields


@dataclass
class WorkResponse:
    """The outcome of a job."""

    job_id: int = 0
    is_complete: bool = False

    def _encode(self) -> bytes:
        return _varint_field(1, _check_uint32("job_id", self.job_id)) + _varint_field(
            2, int(bool(self.is_complete))
        )

    @classmethod
    def _decode(cls, data: bytes) -> "WorkResponse":
        response = cls()
        for number, wire_type, value in _iter_fields(data):
            if number == 1:
                _expect(wire_type, _VARINT, number)
                response.job_id = value & 0xFFFFFFFF
            elif number == 2:
                _expect(wire_type, _VARINT, number)
                response.is_complete = bool(value)
        return response

    def _fields(self) -> dict:
        fields = {}
        if self.job_id:
            fields["jobId"] = self.job_id
        if self.is_complete:
            fields["isComplete"] = True
        return fields


@dataclass
class WorkMessage:
    """Either a work request or a work response, never both."""

    work_request: Optional[WorkRequest] = None
    work_response: Optional[WorkResponse] = None

    def __post_init__(self) -> None:
        if self.work_request is not None and self.work_response is not None:
            raise ValueError("a work message holds a request or a response, not both")

    def to_bytes(self) -> bytes:
        if self.work_request is not None:
            return _bytes_field(1, self.work_request._encode(), always=True)
        if self.work_response is not None:
            return _bytes_field(2, self.work_response._encode(), always=True)
        return b""

    @classmethod
    def from_bytes(cls, data: bytes) -> "WorkMessage":
        message = cls()
        for number, wire_type, value in _iter_fields(data):
            if number == 1:
                _expect(wire_type, _LENGTH_DELIMITED, number)
                message.work_request = WorkRequest._decode(value)
                message.work_response = None
            elif number == 2:
                _expect(wire_type, _LENGTH_DELIMITED, number)
                message.work_response = WorkResponse._decode(value)
                message.work_request = None
        return message

    def to_json(self) -> str:
        fields = {}
        if self.work_request is not None:
            fields["workRequest"] = self.work_request._fields()
        elif self.work_response is not None:
            fields["workResponse"] = self.work_response._fields()
        return _to_json(fields)


def process_work_request(
    payload: bytes, sleep: Callable[[float], object] = time.sleep
) -> bytes:
    """Perform the requested work and return the encoded completion response."""
    request = WorkMessage.from_bytes(payload).work_request or WorkRequest()
    sleep(request.workload / 1000)
    response = WorkResponse(job_id=request.job_id, is_complete=True)
    return WorkMessage(work_response=response).to_bytes()