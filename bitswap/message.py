"""Bitswap messages: building, encoding and decoding."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, BinaryIO

from .cid import (
    Block,
    Cid,
    _encode_uvarint,
    new_block,
    new_block_with_cid,
    new_cid_v0,
    prefix_from_bytes,
    sha256_multihash,
)
from .pb import (
    BlockPresenceType,
    DecodeError,
    ProtoBlock,
    ProtoBlockPresence,
    ProtoEntry,
    ProtoMessage,
    WantType,
    unmarshal_message,
)

MESSAGE_SIZE_MAX = 1 << 22
_MAX_INT32 = (1 << 31) - 1


@dataclass
class MessageEntry:
    """A wantlist entry in a message, with cancel and DONT_HAVE flags."""

    cid: Cid
    priority: int = 0
    want_type: WantType = WantType.BLOCK
    cancel: bool = False
    send_dont_have: bool = False

    def to_pb(self) -> ProtoEntry:
        return ProtoEntry(
            block=self.cid,
            priority=self.priority,
            cancel=self.cancel,
            want_type=self.want_type,
            send_dont_have=self.send_dont_have,
        )

    def size(self) -> int:
        """Size of the entry on the wire."""
        return self.to_pb().size()


@dataclass(frozen=True)
class BlockPresence:
    """A HAVE or DONT_HAVE for a cid."""

    cid: Cid
    type: BlockPresenceType


def max_entry_size() -> int:
    """Largest size a single wantlist entry can take on the wire."""
    c = new_cid_v0(sha256_multihash(b"cid"))
    entry = MessageEntry(
        cid=c,
        priority=_MAX_INT32,
        want_type=WantType.HAVE,
        cancel=True,
        send_dont_have=True,
    )
    return entry.size()


def block_presence_size(c: Cid) -> int:
    """Size on the wire of a block presence for c."""
    return ProtoBlockPresence(cid=c, type=BlockPresenceType.HAVE).size()


class BitSwapMessage:
    """A message of the bitswap protocol: wants, blocks and block presences."""

    def __init__(self, full: bool = False) -> None:
        self.full = full
        self.pending_bytes = 0
        self._wantlist: dict[Cid, MessageEntry] = {}
        self._blocks: dict[Cid, Block] = {}
        self._presences: dict[Cid, BlockPresenceType] = {}

    def clone(self) -> BitSwapMessage:
        msg = BitSwapMessage(self.full)
        msg._wantlist = {c: replace(e) for c, e in self._wantlist.items()}
        msg._blocks = dict(self._blocks)
        msg._presences = dict(self._presences)
        msg.pending_bytes = self.pending_bytes
        return msg

    def reset(self, full: bool) -> None:
        """Clear the message so it can be reused."""
        self.full = full
        self._wantlist.clear()
        self._blocks.clear()
        self._presences.clear()
        self.pending_bytes = 0

    def empty(self) -> bool:
        return not (self._blocks or self._wantlist or self._presences)

    def wantlist(self) -> list[MessageEntry]:
        return [replace(e) for e in self._wantlist.values()]

    def blocks(self) -> list[Block]:
        return list(self._blocks.values())

    def block_presences(self) -> list[BlockPresence]:
        return [BlockPresence(c, t) for c, t in self._presences.items()]

    def _presences_of(self, kind: BlockPresenceType) -> list[Cid]:
        return [c for c, t in self._presences.items() if t == kind]

    def haves(self) -> list[Cid]:
        return self._presences_of(BlockPresenceType.HAVE)

    def dont_haves(self) -> list[Cid]:
        return self._presences_of(BlockPresenceType.DONT_HAVE)

    def remove(self, c: Cid) -> None:
        self._wantlist.pop(c, None)

    def cancel(self, c: Cid) -> int:
        """Add a CANCEL for c; return the size of a new entry, else 0."""
        return self._add_entry(c, 0, True, WantType.BLOCK, False)

    def add_entry(
        self, c: Cid, priority: int, want_type: WantType, send_dont_have: bool
    ) -> int:
        """Add a want for c; return the size of a new entry, else 0."""
        return self._add_entry(c, priority, False, want_type, send_dont_have)

    def _add_entry(
        self,
        c: Cid,
        priority: int,
        cancel: bool,
        want_type: WantType,
        send_dont_have: bool,
    ) -> int:
        existing = self._wantlist.get(c)
        if existing is not None:
            if existing.want_type == want_type:
                existing.priority = priority
            if cancel:
                existing.cancel = True
            if send_dont_have:
                existing.send_dont_have = True
            if want_type == WantType.BLOCK and existing.want_type == WantType.HAVE:
                existing.want_type = want_type
            return 0
        entry = MessageEntry(
            cid=c,
            priority=priority,
            want_type=want_type,
            cancel=cancel,
            send_dont_have=send_dont_have,
        )
        self._wantlist[c] = entry
        return entry.size()

    def add_block(self, block: Block) -> None:
        self._presences.pop(block.cid, None)
        self._blocks[block.cid] = block

    def add_block_presence(self, c: Cid, presence_type: BlockPresenceType) -> None:
        if c in self._blocks:
            return
        self._presences[c] = presence_type

    def add_have(self, c: Cid) -> None:
        self.add_block_presence(c, BlockPresenceType.HAVE)

    def add_dont_have(self, c: Cid) -> None:
        self.add_block_presence(c, BlockPresenceType.DONT_HAVE)

    def size(self) -> int:
        return (
            sum(len(b.data) for b in self._blocks.values())
            + sum(block_presence_size(c) for c in self._presences)
            + sum(e.size() for e in self._wantlist.values())
        )

    def _proto_base(self) -> ProtoMessage:
        pbm = ProtoMessage()
        pbm.wantlist.entries = [e.to_pb() for e in self._wantlist.values()]
        pbm.wantlist.full = self.full
        return pbm

    def to_proto_v0(self) -> ProtoMessage:
        """Protobuf form for peers speaking bitswap 1.0.0 or older."""
        pbm = self._proto_base()
        pbm.blocks = [b.data for b in self._blocks.values()]
        return pbm

    def to_proto_v1(self) -> ProtoMessage:
        """Protobuf form for peers speaking bitswap 1.1.0 or newer."""
        pbm = self._proto_base()
        pbm.payload = [
            ProtoBlock(prefix=b.cid.prefix().to_bytes(), data=b.data)
            for b in self._blocks.values()
        ]
        pbm.block_presences = [
            ProtoBlockPresence(cid=c, type=t) for c, t in self._presences.items()
        ]
        pbm.pending_bytes = self.pending_bytes
        return pbm

    def to_net_v0(self, writer: BinaryIO) -> None:
        _write(writer, self.to_proto_v0())

    def to_net_v1(self, writer: BinaryIO) -> None:
        _write(writer, self.to_proto_v1())

    def loggable(self) -> dict[str, Any]:
        return {
            "blocks": [str(c) for c in self._blocks],
            "wants": self.wantlist(),
        }


def _write(writer: BinaryIO, pbm: ProtoMessage) -> None:
    body = pbm.marshal()
    writer.write(_encode_uvarint(len(body)) + body)


def from_proto(pbm: ProtoMessage) -> BitSwapMessage:
    """Build a message from its decoded protobuf form."""
    msg = BitSwapMessage(pbm.wantlist.full)
    for e in pbm.wantlist.entries:
        if e.block is None:
            raise DecodeError("missing cid")
        msg._add_entry(e.block, e.priority, e.cancel, e.want_type, e.send_dont_have)

    for data in pbm.blocks:
        msg.add_block(new_block(data))

    for b in pbm.payload:
        prefix = prefix_from_bytes(b.prefix)
        c = prefix.sum(b.data)
        msg.add_block(new_block_with_cid(b.data, c))

    for presence in pbm.block_presences:
        if presence.cid is None:
            raise DecodeError("missing cid")
        msg.add_block_presence(presence.cid, presence.type)

    msg.pending_bytes = pbm.pending_bytes
    return msg


def _read_length(reader: BinaryIO) -> int:
    result = 0
    shift = 0
    first = True
    while True:
        byte = reader.read(1)
        if not byte:
            raise EOFError("end of stream" if first else "truncated length prefix")
        first = False
        value = byte[0]
        result |= (value & 0x7F) << shift
        if value < 0x80:
            return result
        shift += 7
        if shift >= 64:
            raise DecodeError("length prefix overflows 64 bits")


def from_net(reader: BinaryIO) -> BitSwapMessage:
    """Read one length-delimited message from a binary stream."""
    length = _read_length(reader)
    if length > MESSAGE_SIZE_MAX:
        raise DecodeError("message too large")
    chunks = []
    remaining = length
    while remaining:
        chunk = reader.read(remaining)
        if not chunk:
            raise EOFError("truncated message")
        chunks.append(chunk)
        remaining -= len(chunk)
    return from_proto(unmarshal_message(b"".join(chunks)))