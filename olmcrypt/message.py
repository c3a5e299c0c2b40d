"""Normal Olm messages and their wire encoding."""

from __future__ import annotations

import binascii
from dataclasses import dataclass, field

from .shared_secret import (
    Curve25519PublicKey,
    InvalidKeyError,
    _base64_decode,
    _base64_encode,
)

MAC_LENGTH = 32
TRUNCATED_MAC_LENGTH = 8

_MAC_TRUNCATED_VERSION = 3
_VERSION = 4

_RATCHET_TAG = b"\x0a"
_INDEX_TAG = b"\x10"
_CIPHER_TAG = b"\x22"

_WIRE_VARINT = 0
_WIRE_FIXED64 = 1
_WIRE_LENGTH_DELIMITED = 2
_WIRE_FIXED32 = 5


class DecodeError(ValueError):
    """An Olm message could not be decoded."""


def _encode_varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _read_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    for shift in range(0, 70, 7):
        if pos >= len(data):
            raise DecodeError("Truncated varint in protobuf payload")
        byte = data[pos]
        pos += 1
        if shift == 63 and byte > 1:
            raise DecodeError("Invalid varint in protobuf payload")
        result |= (byte & 0x7F) << shift
        if byte < 0x80:
            return result, pos
    raise DecodeError("Invalid varint in protobuf payload")


def _take(data: bytes, pos: int, length: int) -> tuple[bytes, int]:
    end = pos + length
    if end > len(data):
        raise DecodeError("Truncated field in protobuf payload")
    return data[pos:end], end


def _decode_protobuf(
    data: bytes, bytes_fields: frozenset[int], varint_fields: frozenset[int]
) -> dict[int, bytes | int]:
    """Decode the given known fields of a protobuf payload, skipping unknown ones."""
    fields: dict[int, bytes | int] = {}
    pos = 0
    while pos < len(data):
        key, pos = _read_varint(data, pos)
        if key > 0xFFFFFFFF:
            raise DecodeError(f"Invalid protobuf key value: {key}")
        wire_type = key & 0x7
        number = key >> 3
        if number == 0:
            raise DecodeError("Invalid protobuf tag value: 0")

        if number in bytes_fields and wire_type != _WIRE_LENGTH_DELIMITED:
            raise DecodeError(f"Invalid wire type {wire_type} for field {number}")
        if number in varint_fields and wire_type != _WIRE_VARINT:
            raise DecodeError(f"Invalid wire type {wire_type} for field {number}")

        value: bytes | int
        if wire_type == _WIRE_VARINT:
            value, pos = _read_varint(data, pos)
        elif wire_type == _WIRE_FIXED64:
            value, pos = _take(data, pos, 8)
        elif wire_type == _WIRE_LENGTH_DELIMITED:
            length, pos = _read_varint(data, pos)
            value, pos = _take(data, pos, length)
        elif wire_type == _WIRE_FIXED32:
            value, pos = _take(data, pos, 4)
        else:
            raise DecodeError(f"Unsupported protobuf wire type: {wire_type}")

        if number in bytes_fields or number in varint_fields:
            fields[number] = value
    return fields


@dataclass
class Message:
    """An encrypted Olm message with the metadata needed to decrypt it."""

    version: int
    ratchet_key: Curve25519PublicKey
    chain_index: int
    ciphertext: bytes = field(repr=False)
    mac: bytes = field(repr=False)

    @classmethod
    def new(cls, ratchet_key: Curve25519PublicKey, chain_index: int, ciphertext: bytes) -> Message:
        """Create a message with a full-length, not yet computed, MAC."""
        return cls(_VERSION, ratchet_key, chain_index, bytes(ciphertext), bytes(MAC_LENGTH))

    @classmethod
    def new_truncated_mac(
        cls, ratchet_key: Curve25519PublicKey, chain_index: int, ciphertext: bytes
    ) -> Message:
        """Create a message with a truncated, not yet computed, MAC."""
        return cls(
            _MAC_TRUNCATED_VERSION,
            ratchet_key,
            chain_index,
            bytes(ciphertext),
            bytes(TRUNCATED_MAC_LENGTH),
        )

    def mac_truncated(self) -> bool:
        """Whether this message carries a truncated MAC."""
        return self.version == _MAC_TRUNCATED_VERSION

    @classmethod
    def from_bytes(cls, data: bytes) -> Message:
        """Decode a message from the format described in to_bytes."""
        data = bytes(data)
        if not data:
            raise DecodeError("The message is missing a version byte")
        version = data[0]

        if version == _VERSION:
            mac_length = MAC_LENGTH
        elif version == _MAC_TRUNCATED_VERSION:
            mac_length = TRUNCATED_MAC_LENGTH
        else:
            raise DecodeError(
                f"Invalid message version: expected {_VERSION}, got {version}"
            )

        if len(data) < mac_length + 2:
            raise DecodeError(f"The message was too short: {len(data)} bytes")

        fields = _decode_protobuf(
            data[1 : len(data) - mac_length],
            bytes_fields=frozenset({1, 4}),
            varint_fields=frozenset({2}),
        )
        mac = data[len(data) - mac_length :]

        try:
            ratchet_key = Curve25519PublicKey.from_bytes(fields.get(1, b""))
        except InvalidKeyError as error:
            raise DecodeError(f"Invalid ratchet key: {error}") from error

        return cls(
            version=version,
            ratchet_key=ratchet_key,
            chain_index=int(fields.get(2, 0)),
            ciphertext=bytes(fields.get(4, b"")),
            mac=mac,
        )

    def to_bytes(self) -> bytes:
        """Encode the message.

        The format is a version byte, a protobuf-style payload holding the
        ratchet key (tag 0x0A), the chain index (tag 0x10) and the ciphertext
        (tag 0x22), followed by the MAC.
        """
        return self.to_mac_bytes() + self.mac

    @classmethod
    def from_base64(cls, text: str) -> Message:
        """Decode a message from its base64 encoding."""
        try:
            data = _base64_decode(text)
        except (binascii.Error, ValueError) as error:
            raise DecodeError(f"Invalid base64 in message: {error}") from error
        return cls.from_bytes(data)

    def to_base64(self) -> str:
        """Encode the message as unpadded base64."""
        return _base64_encode(self.to_bytes())

    def to_mac_bytes(self) -> bytes:
        """Return the bytes the MAC is computed over: everything but the MAC."""
        ratchet_key = self.ratchet_key.to_bytes()
        return b"".join(
            (
                bytes([self.version]),
                _RATCHET_TAG,
                _encode_varint(len(ratchet_key)),
                ratchet_key,
                _INDEX_TAG,
                _encode_varint(self.chain_index),
                _CIPHER_TAG,
                _encode_varint(len(self.ciphertext)),
                self.ciphertext,
            )
        )

    def set_mac(self, mac: bytes) -> None:
        """Store a full MAC, truncating it if this message uses truncated MACs."""
        mac = bytes(mac)
        self.mac = mac[:TRUNCATED_MAC_LENGTH] if self.mac_truncated() else mac