"""Protocol-buffer wire format of bitswap messages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Iterator

from .cid import Cid, CidError, _encode_uvarint, cast_cid

_VARINT = 0
_FIXED64 = 1
_LEN = 2
_FIXED32 = 5
_MASK64 = (1 << 64) - 1


class DecodeError(ValueError):
    """Raised when protobuf data cannot be decoded."""


class WantType(IntEnum):
    BLOCK = 0
    HAVE = 1


class BlockPresenceType(IntEnum):
    HAVE = 0
    DONT_HAVE = 1


def _key(number: int, wire: int) -> bytes:
    return _encode_uvarint((number << 3) | wire)


def _varint_field(number: int, value: int) -> bytes:
    return _key(number, _VARINT) + _encode_uvarint(value & _MASK64)


def _bytes_field(number: int, payload: bytes) -> bytes:
    return _key(number, _LEN) + _encode_uvarint(len(payload)) + payload


def _cid_bytes(c: Cid | None) -> bytes:
    return b"" if c is None else c.to_bytes()


def cid_size(c: Cid | None) -> int:
    """Encoded size of a cid field's payload; 0 for a missing cid."""
    return len(_cid_bytes(c))


@dataclass
class ProtoEntry:
    block: Cid | None = None
    priority: int = 0
    cancel: bool = False
    want_type: WantType = WantType.BLOCK
    send_dont_have: bool = False

    def marshal(self) -> bytes:
        parts = [_bytes_field(1, _cid_bytes(self.block))]
        if self.priority:
            parts.append(_varint_field(2, self.priority))
        if self.cancel:
            parts.append(_varint_field(3, 1))
        if self.want_type:
            parts.append(_varint_field(4, int(self.want_type)))
        if self.send_dont_have:
            parts.append(_varint_field(5, 1))
        return b"".join(parts)

    def size(self) -> int:
        return len(self.marshal())


@dataclass
class ProtoWantlist:
    entries: list[ProtoEntry] = field(default_factory=list)
    full: bool = False


@dataclass
class ProtoBlock:
    prefix: bytes = b""
    data: bytes = b""


@dataclass
class ProtoBlockPresence:
    cid: Cid | None = None
    type: BlockPresenceType = BlockPresenceType.HAVE

    def marshal(self) -> bytes:
        parts = [_bytes_field(1, _cid_bytes(self.cid))]
        if self.type:
            parts.append(_varint_field(2, int(self.type)))
        return b"".join(parts)

    def size(self) -> int:
        return len(self.marshal())


def _marshal_wantlist(wl: ProtoWantlist) -> bytes:
    parts = [_bytes_field(1, entry.marshal()) for entry in wl.entries]
    if wl.full:
        parts.append(_varint_field(2, 1))
    return b"".join(parts)


def _marshal_block(block: ProtoBlock) -> bytes:
    parts = []
    if block.prefix:
        parts.append(_bytes_field(1, block.prefix))
    if block.data:
        parts.append(_bytes_field(2, block.data))
    return b"".join(parts)


@dataclass
class ProtoMessage:
    wantlist: ProtoWantlist = field(default_factory=ProtoWantlist)
    blocks: list[bytes] = field(default_factory=list)
    payload: list[ProtoBlock] = field(default_factory=list)
    block_presences: list[ProtoBlockPresence] = field(default_factory=list)
    pending_bytes: int = 0

    def marshal(self) -> bytes:
        parts = [_bytes_field(1, _marshal_wantlist(self.wantlist))]
        parts.extend(_bytes_field(2, data) for data in self.blocks)
        parts.extend(_bytes_field(3, _marshal_block(b)) for b in self.payload)
        parts.extend(_bytes_field(4, p.marshal()) for p in self.block_presences)
        if self.pending_bytes:
            parts.append(_varint_field(5, self.pending_bytes))
        return b"".join(parts)

    def size(self) -> int:
        return len(self.marshal())

    def unmarshal(self, data: bytes) -> None:
        """Replace this message's contents with the decoded data."""
        wantlist = ProtoWantlist()
        blocks: list[bytes] = []
        payload: list[ProtoBlock] = []
        presences: list[ProtoBlockPresence] = []
        pending = 0
        for number, wire, value in _fields(bytes(data)):
            if number == 1:
                _expect(wire, _LEN, "wantlist")
                _merge_wantlist(wantlist, value)
            elif number == 2:
                _expect(wire, _LEN, "blocks")
                blocks.append(value)
            elif number == 3:
                _expect(wire, _LEN, "payload")
                payload.append(_decode_block(value))
            elif number == 4:
                _expect(wire, _LEN, "blockPresences")
                presences.append(_decode_presence(value))
            elif number == 5:
                _expect(wire, _VARINT, "pendingBytes")
                pending = _int32(value)
        self.wantlist = wantlist
        self.blocks = blocks
        self.payload = payload
        self.block_presences = presences
        self.pending_bytes = pending


def unmarshal_message(data: bytes) -> ProtoMessage:
    """Decode a ProtoMessage from its wire form."""
    message = ProtoMessage()
    message.unmarshal(data)
    return message


def _read_uvarint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise DecodeError("unexpected end of data")
        if shift >= 64:
            raise DecodeError("integer overflow")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if byte < 0x80:
            return result & _MASK64, pos
        shift += 7


def _take(data: bytes, pos: int, length: int) -> tuple[bytes, int]:
    end = pos + length
    if end > len(data):
        raise DecodeError("unexpected end of data")
    return data[pos:end], end


def _fields(data: bytes) -> Iterator[tuple[int, int, int | bytes]]:
    pos = 0
    while pos < len(data):
        key, pos = _read_uvarint(data, pos)
        number, wire = key >> 3, key & 7
        if number == 0:
            raise DecodeError("illegal field number 0")
        value: int | bytes
        if wire == _VARINT:
            value, pos = _read_uvarint(data, pos)
        elif wire == _LEN:
            length, pos = _read_uvarint(data, pos)
            value, pos = _take(data, pos, length)
        elif wire == _FIXED64:
            value, pos = _take(data, pos, 8)
        elif wire == _FIXED32:
            value, pos = _take(data, pos, 4)
        else:
            raise DecodeError(f"unsupported wire type {wire}")
        yield number, wire, value


def _expect(wire: int, expected: int, name: str) -> None:
    if wire != expected:
        raise DecodeError(f"wrong wire type {wire} for field {name}")


def _int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value >= 1 << 31 else value


def _decode_cid(payload: bytes) -> Cid:
    try:
        return cast_cid(payload)
    except CidError as exc:
        raise DecodeError(f"invalid cid: {exc}") from exc


def _enum(cls, value: int):
    try:
        return cls(value)
    except ValueError:
        raise DecodeError(f"unknown {cls.__name__} value {value}") from None


def _decode_entry(data: bytes) -> ProtoEntry:
    entry = ProtoEntry()
    for number, wire, value in _fields(data):
        if number == 1:
            _expect(wire, _LEN, "block")
            entry.block = _decode_cid(value)
        elif number == 2:
            _expect(wire, _VARINT, "priority")
            entry.priority = _int32(value)
        elif number == 3:
            _expect(wire, _VARINT, "cancel")
            entry.cancel = value != 0
        elif number == 4:
            _expect(wire, _VARINT, "wantType")
            entry.want_type = _enum(WantType, _int32(value))
        elif number == 5:
            _expect(wire, _VARINT, "sendDontHave")
            entry.send_dont_have = value != 0
    return entry


def _merge_wantlist(wl: ProtoWantlist, data: bytes) -> None:
    for number, wire, value in _fields(data):
        if number == 1:
            _expect(wire, _LEN, "entries")
            wl.entries.append(_decode_entry(value))
        elif number == 2:
            _expect(wire, _VARINT, "full")
            wl.full = value != 0


def _decode_block(data: bytes) -> ProtoBlock:
    block = ProtoBlock()
    for number, wire, value in _fields(data):
        if number == 1:
            _expect(wire, _LEN, "prefix")
            block.prefix = value
        elif number == 2:
            _expect(wire, _LEN, "data")
            block.data = value
    return block


def _decode_presence(data: bytes) -> ProtoBlockPresence:
    presence = ProtoBlockPresence()
    for number, wire, value in _fields(data):
        if number == 1:
            _expect(wire, _LEN, "cid")
            presence.cid = _decode_cid(value)
        elif number == 2:
            _expect(wire, _VARINT, "type")
            presence.type = _enum(BlockPresenceType, _int32(value))
    return presence