"""Key verification using short authentication strings (SAS).

Two parties exchange ephemeral Curve25519 public keys, derive a shared
secret, and then compare a short string (emojis or decimals) derived from
it. The shared secret can also authenticate the identity keys being verified
with a MAC.
"""

from __future__ import annotations

import binascii
import hashlib
import hmac
from dataclasses import dataclass

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .shared_secret import (
    Curve25519PublicKey,
    Curve25519SecretKey,
    InvalidKeyError,
    _base64_decode,
    _base64_encode,
)

_SAS_LENGTH = 6
_MAC_KEY_LENGTH = 32
_MAX_HKDF_OUTPUT = 255 * 32


class InvalidCountError(ValueError):
    """The requested number of SAS bytes was too large."""

    def __init__(self) -> None:
        super().__init__("The given count of bytes was too large")


class SasError(Exception):
    """The SAS MAC could not be validated."""


@dataclass(frozen=True)
class Mac:
    """The output of a SAS MAC calculation."""

    data: bytes

    def to_base64(self) -> str:
        """Return the unpadded base64 encoding of the MAC."""
        return _base64_encode(self.data)

    def __bytes__(self) -> bytes:
        return self.data

    @classmethod
    def from_bytes(cls, data: bytes) -> Mac:
        """Create a MAC from raw bytes."""
        return cls(bytes(data))

    @classmethod
    def from_base64(cls, text: str) -> Mac:
        """Create a MAC from its base64 encoding; raises ValueError if invalid."""
        try:
            return cls(_base64_decode(text))
        except (binascii.Error, ValueError) as error:
            raise ValueError(f"Invalid base64 in MAC: {error}") from error


@dataclass(frozen=True)
class SasBytes:
    """Six bytes derived from a shared secret, shown to users as a short string."""

    bytes: bytes

    def __post_init__(self) -> None:
        if len(self.bytes) != _SAS_LENGTH:
            raise ValueError(f"SAS bytes must be {_SAS_LENGTH} long, got {len(self.bytes)}")

    def emoji_indices(self) -> tuple[int, ...]:
        """The indices of the seven emojis that represent these bytes."""
        return self.bytes_to_emoji_index(self.bytes)

    def decimals(self) -> tuple[int, int, int]:
        """The three four-digit numbers that represent these bytes."""
        return self.bytes_to_decimal(self.bytes)

    @staticmethod
    def bytes_to_emoji_index(data: bytes) -> tuple[int, ...]:
        """Split the first 42 bits of six bytes into seven 6-bit indices."""
        num = int.from_bytes(bytes(data[:_SAS_LENGTH]), "big")
        return tuple((num >> shift) & 63 for shift in range(42, 0, -6))

    @staticmethod
    def bytes_to_decimal(data: bytes) -> tuple[int, int, int]:
        """Convert six bytes into three numbers in 1000..9191; the sixth byte is unused."""
        b = bytes(data)
        first = (b[0] << 5) | (b[1] >> 3)
        second = ((b[1] & 0x7) << 10) | (b[2] << 2) | (b[3] >> 6)
        third = ((b[3] & 0x3F) << 7) | (b[4] >> 1)
        return first + 1000, second + 1000, third + 1000


class Sas:
    """An ephemeral key pair used to establish a shared SAS secret."""

    __slots__ = ("_secret_key", "_public_key")

    def __init__(self) -> None:
        self._secret_key = Curve25519SecretKey.generate()
        self._public_key = self._secret_key.public_key()

    def public_key(self) -> Curve25519PublicKey:
        """The public key to send to the other party."""
        return self._public_key

    def diffie_hellman(self, their_public_key: Curve25519PublicKey) -> EstablishedSas:
        """Establish the shared secret with the other party's public key.

        Raises InvalidKeyError if the key does not contribute to the secret.
        """
        shared_secret = self._secret_key.diffie_hellman(their_public_key)
        if not any(shared_secret):
            raise InvalidKeyError("The public key was non-contributory")
        return EstablishedSas(shared_secret, self._public_key, their_public_key)

    def diffie_hellman_with_raw(self, other_public_key: str) -> EstablishedSas:
        """Establish the shared secret with a base64-encoded public key."""
        return self.diffie_hellman(Curve25519PublicKey.from_base64(other_public_key))


class EstablishedSas:
    """A SAS object whose shared secret has been established."""

    __slots__ = ("_shared_secret", "our_public_key", "their_public_key")

    def __init__(
        self,
        shared_secret: bytes,
        our_public_key: Curve25519PublicKey,
        their_public_key: Curve25519PublicKey,
    ) -> None:
        self._shared_secret = shared_secret
        self.our_public_key = our_public_key
        self.their_public_key = their_public_key

    def _expand(self, info: str, count: int) -> bytes:
        if count < 0 or count > _MAX_HKDF_OUTPUT:
            raise InvalidCountError()
        if count == 0:
            return b""
        hkdf = HKDF(algorithm=hashes.SHA256(), length=count, salt=None, info=info.encode())
        return hkdf.derive(self._shared_secret)

    def bytes(self, info: str) -> SasBytes:
        """Derive the six SAS bytes using the agreed info string."""
        return SasBytes(self._expand(info, _SAS_LENGTH))

    def bytes_raw(self, info: str, count: int) -> bytes:
        """Derive count bytes using the agreed info string, at most 32 * 255."""
        return self._expand(info, count)

    def _mac(self, message: str, info: str) -> bytes:
        key = self._expand(info, _MAC_KEY_LENGTH)
        return hmac.new(key, message.encode(), hashlib.sha256).digest()

    def calculate_mac(self, message: str, info: str) -> Mac:
        """Calculate a MAC of the message, using the info string as extra data."""
        return Mac(self._mac(message, info))

    def calculate_mac_invalid_base64(self, message: str, info: str) -> str:
        """Calculate a MAC encoded in the broken way older clients used.

        Those clients reused the input buffer as the base64 output buffer, so
        later input chunks were overwritten by earlier output. Use only where
        that compatibility is required.
        """
        mac = self._mac(message, info)
        out = _base64_encode(mac[0:3])

        bytes_from_mac = 2
        for i in (6, 9):
            from_mac = mac[i - bytes_from_mac:i]
            from_out = out[len(out) - (3 - bytes_from_mac):].encode("ascii")
            out += _base64_encode(from_out + from_mac)
            bytes_from_mac -= 1

        for i in range(9, 30, 3):
            out += _base64_encode(out[i:i + 3].encode("ascii"))

        return out + _base64_encode(out[30:32].encode("ascii"))

    def verify_mac(self, message: str, info: str, tag: Mac) -> None:
        """Check a MAC made with calculate_mac; raises SasError if it does not match."""
        if not hmac.compare_digest(self._mac(message, info), tag.data):
            raise SasError("The SAS MAC validation didn't succeed: MAC tag mismatch")

    def __repr__(self) -> str:
        return (
            f"EstablishedSas(our_public_key={self.our_public_key.to_base64()!r}, "
            f"their_public_key={self.their_public_key.to_base64()!r}, ...)"
        )