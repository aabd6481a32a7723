"""Content identifiers: parsing, encoding and hashing of CBOR blocks."""

from __future__ import annotations

import base64
import binascii
import hashlib
from dataclasses import dataclass
from typing import Callable

DAG_PB = 0x70
DAG_CBOR = 0x71
SHA2_256 = 0x12

_SHA2_256_LENGTH = 32
_B58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_B58_INDEX = {char: index for index, char in enumerate(_B58_ALPHABET)}


class CidError(ValueError):
    """Raised when a content identifier cannot be parsed or is malformed."""


def _b58encode(data: bytes) -> str:
    zeros = len(data) - len(data.lstrip(b"\0"))
    number = int.from_bytes(data, "big")
    chars = []
    while number:
        number, remainder = divmod(number, 58)
        chars.append(_B58_ALPHABET[remainder])
    return "1" * zeros + "".join(reversed(chars))


def _b58decode(text: str) -> bytes:
    number = 0
    for char in text:
        try:
            number = number * 58 + _B58_INDEX[char]
        except KeyError:
            raise CidError(f"invalid base58 character {char!r}") from None
    zeros = len(text) - len(text.lstrip("1"))
    return b"\0" * zeros + number.to_bytes((number.bit_length() + 7) // 8, "big")


def _b32decode(text: str) -> bytes:
    padded = text.upper() + "=" * (-len(text) % 8)
    try:
        return base64.b32decode(padded)
    except binascii.Error as err:
        raise CidError(f"invalid base32 data: {err}") from err


def _b32encode(data: bytes) -> str:
    return base64.b32encode(data).decode("ascii").rstrip("=").lower()


def _hexdecode(text: str) -> bytes:
    try:
        return bytes.fromhex(text)
    except ValueError as err:
        raise CidError(f"invalid hex data: {err}") from err


_MULTIBASE: dict[str, Callable[[str], bytes]] = {
    "b": _b32decode,
    "B": _b32decode,
    "z": _b58decode,
    "f": _hexdecode,
    "F": _hexdecode,
}


def _read_varint(data: bytes, pos: int) -> tuple[int, int]:
    value = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise CidError("varint is truncated")
        byte = data[pos]
        pos += 1
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value, pos
        shift += 7
        if shift >= 63:
            raise CidError("varint is too large")


def _write_varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _multihash_end(data: bytes, pos: int) -> int:
    _, pos = _read_varint(data, pos)
    length, pos = _read_varint(data, pos)
    end = pos + length
    if end > len(data):
        raise CidError("multihash length inconsistent")
    return end


@dataclass(frozen=True)
class Cid:
    """A version 0 or version 1 content identifier."""

    version: int
    codec: int
    multihash: bytes

    def __post_init__(self) -> None:
        if self.version not in (0, 1):
            raise CidError(f"unsupported cid version {self.version}")
        if self.version == 0 and self.codec != DAG_PB:
            raise CidError("cid version 0 only supports the dag-pb codec")
        if _multihash_end(self.multihash, 0) != len(self.multihash):
            raise CidError("trailing bytes in multihash")

    @classmethod
    def from_bytes(cls, data: bytes) -> Cid:
        """Parse the binary form of a content identifier."""
        data = bytes(data)
        if len(data) == 34 and data[0] == SHA2_256 and data[1] == _SHA2_256_LENGTH:
            return cls(0, DAG_PB, data)
        version, pos = _read_varint(data, 0)
        if version != 1:
            raise CidError(f"expected 1 as the cid version number, got: {version}")
        codec, pos = _read_varint(data, pos)
        end = _multihash_end(data, pos)
        if end != len(data):
            raise CidError("trailing bytes in cid")
        return cls(1, codec, data[pos:end])

    @property
    def hash_code(self) -> int:
        return _read_varint(self.multihash, 0)[0]

    @property
    def digest(self) -> bytes:
        _, pos = _read_varint(self.multihash, 0)
        length, pos = _read_varint(self.multihash, pos)
        return self.multihash[pos:pos + length]

    def to_bytes(self) -> bytes:
        if self.version == 0:
            return self.multihash
        return _write_varint(1) + _write_varint(self.codec) + self.multihash

    def encode(self) -> str:
        """Return the canonical string form of the identifier."""
        if self.version == 0:
            return _b58encode(self.multihash)
        return "b" + _b32encode(self.to_bytes())

    def __str__(self) -> str:
        return self.encode()


def decode(text: str) -> Cid:
    """Parse a content identifier from its string form."""
    if not text:
        raise CidError("cid too short")
    if len(text) == 46 and text.startswith("Qm"):
        cid = Cid.from_bytes(_b58decode(text))
        if cid.version != 0:
            raise CidError("invalid version 0 cid")
        return cid
    decoder = _MULTIBASE.get(text[0])
    if decoder is None:
        raise CidError(f"unsupported multibase prefix {text[0]!r}")
    return Cid.from_bytes(decoder(text[1:]))


def cid_for_cbor(data: bytes) -> Cid:
    """Return the dag-cbor identifier of an encoded CBOR block."""
    digest = hashlib.sha256(data).digest()
    multihash = _write_varint(SHA2_256) + _write_varint(len(digest)) + digest
    return Cid(1, DAG_CBOR, multihash)