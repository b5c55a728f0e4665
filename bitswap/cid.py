"""Content identifiers (CIDs), CID prefixes and content-addressed blocks."""

from __future__ import annotations

import base64
import binascii
import hashlib
from dataclasses import dataclass

DAG_PROTOBUF = 0x70
RAW = 0x55

IDENTITY = 0x00
SHA1 = 0x11
SHA2_256 = 0x12
SHA2_512 = 0x13
SHA3_512 = 0x14
SHA3_384 = 0x15
SHA3_256 = 0x16
SHA3_224 = 0x17

_HASH_NAMES = {
    SHA1: "sha1",
    SHA2_256: "sha256",
    SHA2_512: "sha512",
    SHA3_512: "sha3_512",
    SHA3_384: "sha3_384",
    SHA3_256: "sha3_256",
    SHA3_224: "sha3_224",
}

_MASK64 = (1 << 64) - 1
_B58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_B58_INDEX = {ch: idx for idx, ch in enumerate(_B58_ALPHABET)}


class CidError(ValueError):
    """Raised for malformed CIDs, prefixes or multihashes."""


def _encode_uvarint(value: int) -> bytes:
    if value < 0:
        raise ValueError("uvarint cannot encode a negative value")
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def _decode_uvarint(data: bytes, offset: int = 0) -> tuple[int, int]:
    result = 0
    shift = 0
    for pos, byte in enumerate(data[offset:offset + 10], start=offset):
        result |= (byte & 0x7F) << shift
        if byte < 0x80:
            if result > _MASK64:
                raise CidError("varint overflows 64 bits")
            return result, pos + 1
        shift += 7
    raise CidError("truncated or overlong varint")


def _b58encode(data: bytes) -> str:
    number = int.from_bytes(data, "big")
    chars = []
    while number:
        number, rem = divmod(number, 58)
        chars.append(_B58_ALPHABET[rem])
    leading = len(data) - len(data.lstrip(b"\0"))
    return "1" * leading + "".join(reversed(chars))


def _b58decode(text: str) -> bytes:
    number = 0
    for ch in text:
        try:
            number = number * 58 + _B58_INDEX[ch]
        except KeyError:
            raise CidError(f"invalid base58 character {ch!r}") from None
    leading = len(text) - len(text.lstrip("1"))
    body = number.to_bytes((number.bit_length() + 7) // 8, "big")
    return b"\0" * leading + body


def _parse_multihash(multihash: bytes) -> tuple[int, int]:
    """Return the (hash code, digest length) of a well-formed multihash."""
    code, pos = _decode_uvarint(multihash, 0)
    length, pos = _decode_uvarint(multihash, pos)
    if len(multihash) - pos != length:
        raise CidError("multihash length does not match its digest")
    return code, length


def _multihash_sum(data: bytes, code: int, length: int) -> bytes:
    if code == IDENTITY:
        if length not in (-1, len(data)):
            raise CidError("identity hash length must equal the data length")
        digest = bytes(data)
    else:
        name = _HASH_NAMES.get(code)
        if name is None:
            raise CidError(f"unsupported hash function 0x{code:x}")
        digest = hashlib.new(name, data).digest()
        if length >= 0:
            if length > len(digest):
                raise CidError("requested digest length exceeds hash output")
            digest = digest[:length]
    return _encode_uvarint(code) + _encode_uvarint(len(digest)) + digest


def sha256_multihash(data: bytes) -> bytes:
    """Return the sha2-256 multihash of data."""
    return bytes([SHA2_256, 32]) + hashlib.sha256(data).digest()


@dataclass(frozen=True, repr=False)
class Cid:
    """A content identifier: version, codec and multihash."""

    version: int
    codec: int
    multihash: bytes

    def __post_init__(self) -> None:
        mh = bytes(self.multihash)
        object.__setattr__(self, "multihash", mh)
        if self.version == 0:
            if (
                self.codec != DAG_PROTOBUF
                or len(mh) != 34
                or mh[0] != SHA2_256
                or mh[1] != 32
            ):
                raise CidError("a version 0 cid must be a dag-pb sha2-256 hash")
        elif self.version == 1:
            _parse_multihash(mh)
        else:
            raise CidError(f"invalid cid version {self.version}")

    def to_bytes(self) -> bytes:
        """Binary form of the cid."""
        if self.version == 0:
            return self.multihash
        return _encode_uvarint(1) + _encode_uvarint(self.codec) + self.multihash

    def prefix(self) -> Prefix:
        """The prefix describing how this cid was built."""
        if self.version == 0:
            return Prefix(0, DAG_PROTOBUF, SHA2_256, 32)
        code, length = _parse_multihash(self.multihash)
        return Prefix(self.version, self.codec, code, length)

    def __str__(self) -> str:
        if self.version == 0:
            return _b58encode(self.multihash)
        encoded = base64.b32encode(self.to_bytes()).decode("ascii")
        return "b" + encoded.rstrip("=").lower()

    def __repr__(self) -> str:
        return f"Cid({self})"


@dataclass(frozen=True)
class Prefix:
    """Cid metadata needed to hash data into a cid; mh_length -1 means default."""

    version: int
    codec: int
    mh_type: int
    mh_length: int = -1

    def to_bytes(self) -> bytes:
        return b"".join(
            _encode_uvarint(value & _MASK64)
            for value in (self.version, self.codec, self.mh_type, self.mh_length)
        )

    def sum(self, data: bytes) -> Cid:
        """Hash data and build the cid this prefix describes."""
        multihash = _multihash_sum(data, self.mh_type, self.mh_length)
        if self.version == 0:
            return new_cid_v0(multihash)
        if self.version == 1:
            return new_cid_v1(self.codec, multihash)
        raise CidError("invalid cid version")


def new_cid_v0(multihash: bytes) -> Cid:
    return Cid(0, DAG_PROTOBUF, multihash)


def new_cid_v1(codec: int, multihash: bytes) -> Cid:
    return Cid(1, codec, multihash)


def cast_cid(data: bytes) -> Cid:
    """Parse a cid from its binary form."""
    data = bytes(data)
    if len(data) == 34 and data[0] == SHA2_256 and data[1] == 32:
        return Cid(0, DAG_PROTOBUF, data)
    version, pos = _decode_uvarint(data, 0)
    if version != 1:
        raise CidError(f"expected 1 as the cid version number, got: {version}")
    codec, pos = _decode_uvarint(data, pos)
    return Cid(1, codec, data[pos:])


def decode_cid(text: str) -> Cid:
    """Parse a cid from its string form."""
    if not text:
        raise CidError("cid string is empty")
    if len(text) == 46 and text.startswith("Qm"):
        return cast_cid(_b58decode(text))
    base, body = text[0], text[1:]
    try:
        if base == "z":
            raw = _b58decode(body)
        elif base in ("b", "B"):
            raw = base64.b32decode(body.upper() + "=" * (-len(body) % 8))
        elif base in ("f", "F"):
            raw = bytes.fromhex(body)
        else:
            raise CidError(f"unsupported multibase prefix {base!r}")
    except (binascii.Error, ValueError) as exc:
        if isinstance(exc, CidError):
            raise
        raise CidError(f"invalid cid string: {exc}") from exc
    return cast_cid(raw)


def prefix_from_bytes(data: bytes) -> Prefix:
    """Parse a prefix from the form written by Prefix.to_bytes."""
    values = []
    pos = 0
    for _ in range(4):
        value, pos = _decode_uvarint(data, pos)
        values.append(value)
    version, codec, mh_type, mh_length = values
    if mh_length >= 1 << 63:
        mh_length -= 1 << 64
    return Prefix(version, codec, mh_type, mh_length)


@dataclass(frozen=True)
class Block:
    """Raw data together with its cid."""

    data: bytes
    cid: Cid


def new_block(data: bytes) -> Block:
    """Make a block whose cid is the version 0 sha2-256 cid of data."""
    data = bytes(data)
    return Block(data, new_cid_v0(sha256_multihash(data)))


def new_block_with_cid(data: bytes, cid: Cid) -> Block:
    return Block(bytes(data), cid)