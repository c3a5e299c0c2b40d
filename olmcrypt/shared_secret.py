"""Curve25519 keys and the triple Diffie-Hellman shared secret used by Olm.

The setup takes four Curve25519 inputs: identity keys for both sides and
one-time keys for both sides. The shared secret S is the concatenation of
three Diffie-Hellman results, and the initial root and chain keys are derived
from it with HKDF-SHA-256 using "OLM_ROOT" as the info string::

    S = ECDH(Ia, Eb) || ECDH(Ea, Ib) || ECDH(Ea, Eb)
    R0, C0 = HKDF(0, S, "OLM_ROOT", 64)
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
    X25519PublicKey,
)
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

KEY_LENGTH = 32
_ROOT_INFO = b"OLM_ROOT"


def _base64_encode(data: bytes) -> str:
    """Encode bytes as unpadded standard base64."""
    return base64.b64encode(data).decode("ascii").rstrip("=")


def _base64_decode(text: str) -> bytes:
    """Decode standard base64, with or without padding.

    Raises ValueError if the input is not valid base64.
    """
    stripped = text.rstrip("=")
    padded = stripped + "=" * (-len(stripped) % 4)
    return base64.b64decode(padded, validate=True)


class InvalidKeyError(ValueError):
    """A key could not be decoded or had the wrong length."""


@dataclass(frozen=True)
class Curve25519PublicKey:
    """The public half of a Curve25519 key pair."""

    key: bytes

    def __post_init__(self) -> None:
        if len(self.key) != KEY_LENGTH:
            raise InvalidKeyError(
                f"Invalid Curve25519 key length: expected {KEY_LENGTH}, got {len(self.key)}"
            )

    @classmethod
    def from_bytes(cls, data: bytes) -> Curve25519PublicKey:
        """Create a public key from its 32 raw bytes."""
        return cls(bytes(data))

    @classmethod
    def from_base64(cls, text: str) -> Curve25519PublicKey:
        """Create a public key from its base64 encoding."""
        try:
            data = _base64_decode(text)
        except (binascii.Error, ValueError) as error:
            raise InvalidKeyError(f"Invalid base64 in Curve25519 key: {error}") from error
        return cls(data)

    def to_bytes(self) -> bytes:
        """Return the 32 raw bytes of the key."""
        return self.key

    def to_base64(self) -> str:
        """Return the unpadded base64 encoding of the key."""
        return _base64_encode(self.key)

    def __str__(self) -> str:
        return self.to_base64()

    def __repr__(self) -> str:
        return f"Curve25519PublicKey({self.to_base64()!r})"


class Curve25519SecretKey:
    """The secret half of a Curve25519 key pair."""

    __slots__ = ("_key",)

    def __init__(self, key: X25519PrivateKey) -> None:
        self._key = key

    @classmethod
    def generate(cls) -> Curve25519SecretKey:
        """Create a new random secret key."""
        return cls(X25519PrivateKey.generate())

    @classmethod
    def from_bytes(cls, data: bytes) -> Curve25519SecretKey:
        """Create a secret key from its 32 raw bytes."""
        data = bytes(data)
        if len(data) != KEY_LENGTH:
            raise InvalidKeyError(
                f"Invalid Curve25519 key length: expected {KEY_LENGTH}, got {len(data)}"
            )
        return cls(X25519PrivateKey.from_private_bytes(data))

    def to_bytes(self) -> bytes:
        """Return the 32 raw bytes of the secret key."""
        return self._key.private_bytes(
            serialization.Encoding.Raw,
            serialization.PrivateFormat.Raw,
            serialization.NoEncryption(),
        )

    def public_key(self) -> Curve25519PublicKey:
        """Return the matching public key."""
        raw = self._key.public_key().public_bytes(
            serialization.Encoding.Raw, serialization.PublicFormat.Raw
        )
        return Curve25519PublicKey(raw)

    def diffie_hellman(self, their_public_key: Curve25519PublicKey) -> bytes:
        """Perform X25519 with the given public key and return the shared secret.

        A low-order public key yields the all-zero shared secret.
        """
        peer = X25519PublicKey.from_public_bytes(their_public_key.to_bytes())
        try:
            return self._key.exchange(peer)
        except ValueError:
            return bytes(KEY_LENGTH)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Curve25519SecretKey):
            return NotImplemented
        return self.to_bytes() == other.to_bytes()

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Curve25519SecretKey(public_key={self.public_key().to_base64()!r})"


def _expand(secret: bytes) -> tuple[bytes, bytes]:
    hkdf = HKDF(algorithm=hashes.SHA256(), length=64, salt=b"\x00", info=_ROOT_INFO)
    expanded = hkdf.derive(secret)
    return expanded[:32], expanded[32:]


class Shared3DHSecret:
    """The 3DH secret computed by the side that starts a session."""

    __slots__ = ("secret",)

    def __init__(
        self,
        identity_key: Curve25519SecretKey,
        one_time_key: Curve25519SecretKey,
        remote_identity_key: Curve25519PublicKey,
        remote_one_time_key: Curve25519PublicKey,
    ) -> None:
        self.secret = b"".join(
            (
                identity_key.diffie_hellman(remote_one_time_key),
                one_time_key.diffie_hellman(remote_identity_key),
                one_time_key.diffie_hellman(remote_one_time_key),
            )
        )

    def expand(self) -> tuple[bytes, bytes]:
        """Derive the initial (root key, chain key) pair."""
        return _expand(self.secret)


class RemoteShared3DHSecret:
    """The 3DH secret computed by the side that receives a pre-key message."""

    __slots__ = ("secret",)

    def __init__(
        self,
        identity_key: Curve25519SecretKey,
        one_time_key: Curve25519SecretKey,
        remote_identity_key: Curve25519PublicKey,
        remote_one_time_key: Curve25519PublicKey,
    ) -> None:
        self.secret = b"".join(
            (
                one_time_key.diffie_hellman(remote_identity_key),
                identity_key.diffie_hellman(remote_one_time_key),
                one_time_key.diffie_hellman(remote_one_time_key),
            )
        )

    def expand(self) -> tuple[bytes, bytes]:
        """Derive the initial (root key, chain key) pair."""
        return _expand(self.secret)