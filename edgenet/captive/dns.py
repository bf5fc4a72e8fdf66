"""A DNS responder that answers every A query with one fixed address."""

from __future__ import annotations

import ipaddress
import logging
import struct
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional, Union

log = logging.getLogger(__name__)

HEADER_LEN = 12

_TYPE_A = 1
_CLASS_IN = 1
_OPCODE_QUERY = 0
_RCODE_NOERROR = 0
_RCODE_NOTIMP = 4

_QR = 0x8000
_RD = 0x0100

_MAX_NAME_LEN = 255
_MAX_TTL = 0xFFFFFFFF


class DnsError(Exception):
    """Base class of errors raised while answering a DNS request."""


class ShortBufferError(DnsError):
    """The reply does not fit in the allowed size."""

    def __init__(self, message: str = "ShortBuf") -> None:
        super().__init__(message)


class InvalidMessageError(DnsError):
    """The request is not a well-formed DNS message."""

    def __init__(self, message: str = "InvalidMessage") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class _Question:
    labels: tuple[bytes, ...]
    qtype: int
    qclass: int

    def name_wire(self) -> bytes:
        return b"".join(bytes([len(label)]) + label for label in self.labels) + b"\x00"

    def wire(self) -> bytes:
        return self.name_wire() + struct.pack(">HH", self.qtype, self.qclass)


def _parse_name(message: bytes, offset: int) -> tuple[tuple[bytes, ...], int]:
    """Parse a possibly compressed name; return its labels and the offset after it."""
    labels = []
    length = 1
    resume: Optional[int] = None
    visited = set()
    pos = offset

    while True:
        if pos >= len(message):
            raise InvalidMessageError("name runs past the end of the message")
        head = message[pos]
        kind = head & 0xC0
        if kind == 0xC0:
            if pos + 1 >= len(message):
                raise InvalidMessageError("truncated compression pointer")
            target = ((head & 0x3F) << 8) | message[pos + 1]
            if resume is None:
                resume = pos + 2
            if target in visited:
                raise InvalidMessageError("compression pointer loop")
            visited.add(target)
            pos = target
            continue
        if kind:
            raise InvalidMessageError("unsupported label type")
        if head == 0:
            break
        label = message[pos + 1 : pos + 1 + head]
        if len(label) < head:
            raise InvalidMessageError("label runs past the end of the message")
        length += head + 1
        if length > _MAX_NAME_LEN:
            raise InvalidMessageError("name too long")
        labels.append(bytes(label))
        pos += head + 1

    return tuple(labels), (pos + 1 if resume is None else resume)


def _parse_questions(
    message: bytes, count: int
) -> tuple[list[_Question], Optional[InvalidMessageError]]:
    """Parse up to ``count`` questions; stop at the first malformed one and return its error."""
    questions = []
    pos = HEADER_LEN
    for _ in range(count):
        try:
            labels, pos = _parse_name(message, pos)
            if pos + 4 > len(message):
                raise InvalidMessageError("truncated question")
            qtype, qclass = struct.unpack_from(">HH", message, pos)
        except InvalidMessageError as err:
            return questions, err
        pos += 4
        questions.append(_Question(labels, qtype, qclass))
    return questions, None


def _ttl_seconds(ttl: Union[timedelta, float, int]) -> int:
    seconds = ttl.total_seconds() if isinstance(ttl, timedelta) else ttl
    seconds = int(seconds)
    if seconds < 0:
        raise ValueError("TTL must not be negative")
    return min(seconds, _MAX_TTL)


def reply(
    request: bytes,
    ip: Any,
    ttl: Union[timedelta, float, int],
    max_size: int = 512,
) -> bytes:
    """Build the reply to a DNS request.

    Every question of type A and class IN is answered with ``ip``; other
    questions are echoed without an answer. Requests that are not standard
    queries get a NOTIMP reply. Raises InvalidMessageError for a malformed
    request and ShortBufferError when the reply exceeds ``max_size`` bytes.
    """
    request = bytes(request)
    address = ipaddress.IPv4Address(ip)
    ttl_secs = _ttl_seconds(ttl)

    if len(request) < HEADER_LEN:
        raise InvalidMessageError("message shorter than a DNS header")
    if max_size < HEADER_LEN:
        raise ShortBufferError()

    msg_id, flags, qdcount = struct.unpack_from(">HHH", request)
    opcode = (flags >> 11) & 0x0F
    rd = flags & _RD
    log.debug("Processing message id=%d flags=%#06x qdcount=%d", msg_id, flags, qdcount)

    if opcode != _OPCODE_QUERY:
        log.debug("Message is not of type Query, replying with NotImp")
        reply_flags = (opcode << 11) | rd | _RCODE_NOTIMP
        return struct.pack(">HHHHHH", msg_id, reply_flags, 0, 0, 0, 0)

    questions, parse_error = _parse_questions(request, qdcount)

    body = bytearray()
    size = HEADER_LEN
    for question in questions:
        wire = question.wire()
        size += len(wire)
        if size > max_size:
            raise ShortBufferError()
        body += wire

    if parse_error is not None:
        raise parse_error

    answers = 0
    for question in questions:
        if question.qtype == _TYPE_A and question.qclass == _CLASS_IN:
            record = (
                question.name_wire()
                + struct.pack(">HHIH", _TYPE_A, _CLASS_IN, ttl_secs, 4)
                + address.packed
            )
            size += len(record)
            if size > max_size:
                raise ShortBufferError()
            body += record
            answers += 1
            log.debug("Answering %r with %s", question, address)
        else:
            log.debug("Question %r is not of type A, not answering", question)

    reply_flags = _QR | (opcode << 11) | rd | _RCODE_NOERROR
    header = struct.pack(">HHHHHH", msg_id, reply_flags, len(questions), answers, 0, 0)
    return header + bytes(body)