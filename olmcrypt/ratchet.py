"""Root, chain and message keys of the Olm double ratchet.

A root key and a pair of ratchet keys produce a new root key and a chain
key. Each chain key yields one message key per message and then advances.
Message keys encrypt with AES-256-CBC and authenticate with HMAC-SHA-256.
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass, field
from typing import Any

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .message import MAC_LENGTH, TRUNCATED_MAC_LENGTH, Message
from .shared_secret import (
    KEY_LENGTH,
    Curve25519PublicKey,
    Curve25519SecretKey,
    _base64_decode,
    _base64_encode,
)

_MESSAGE_KEY_SEED = b"\x01"
_ADVANCEMENT_SEED = b"\x02"
_ROOT_ADVANCEMENT_INFO = b"OLM_RATCHET"
_CIPHER_INFO = b"OLM_KEYS"


class DecryptionError(Exception):
    """An Olm message could not be decrypted."""


class InvalidMacError(DecryptionError):
    """The message authentication code of the message was invalid."""

    def __init__(self) -> None:
        super().__init__("Failed decrypting Olm message, invalid MAC")


class InvalidMacLengthError(DecryptionError):
    """The MAC of the message did not have the expected length."""

    def __init__(self, expected: int, got: int) -> None:
        super().__init__(
            f"Failed decrypting Olm message, invalid MAC length: expected {expected}, got {got}"
        )
        self.expected = expected
        self.got = got


class InvalidPaddingError(DecryptionError):
    """The ciphertext of the message isn't padded correctly."""

    def __init__(self) -> None:
        super().__init__("Failed decrypting Olm message, invalid padding")


class MissingMessageKeyError(DecryptionError):
    """The message key for the message was already used or discarded."""

    def __init__(self, chain_index: int) -> None:
        super().__init__(
            f"The message key with the given key can't be created, message index: {chain_index}"
        )
        self.chain_index = chain_index


class TooBigMessageGapError(DecryptionError):
    """Too many messages were skipped to try decrypting this one."""

    def __init__(self, gap: int, max_gap: int) -> None:
        super().__init__(f"The message gap was too big, got {gap}, max allowed {max_gap}")
        self.gap = gap
        self.max_gap = max_gap


def _encode_key(key: bytes) -> str:
    return _base64_encode(key)


def _decode_key(text: str) -> bytes:
    key = _base64_decode(text)
    if len(key) != KEY_LENGTH:
        raise ValueError(f"Invalid key length: expected {KEY_LENGTH}, got {len(key)}")
    return key


def _hmac_sha256(key: bytes, data: bytes) -> bytes:
    return hmac.new(key, data, hashlib.sha256).digest()


class _Cipher:
    """AES-256-CBC with HMAC-SHA-256, keyed from a single message key."""

    __slots__ = ("_aes_key", "_mac_key", "_iv")

    def __init__(self, message_key: bytes) -> None:
        hkdf = HKDF(algorithm=hashes.SHA256(), length=80, salt=None, info=_CIPHER_INFO)
        expanded = hkdf.derive(message_key)
        self._aes_key = expanded[:32]
        self._mac_key = expanded[32:64]
        self._iv = expanded[64:80]

    def _aes(self) -> Cipher:
        return Cipher(algorithms.AES(self._aes_key), modes.CBC(self._iv))

    def encrypt(self, plaintext: bytes) -> bytes:
        padder = padding.PKCS7(128).padder()
        padded = padder.update(bytes(plaintext)) + padder.finalize()
        encryptor = self._aes().encryptor()
        return encryptor.update(padded) + encryptor.finalize()

    def decrypt(self, ciphertext: bytes) -> bytes:
        try:
            decryptor = self._aes().decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(128).unpadder()
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as error:
            raise InvalidPaddingError() from error

    def mac(self, data: bytes) -> bytes:
        return _hmac_sha256(self._mac_key, data)

    def verify_mac(self, data: bytes, tag: bytes) -> None:
        if not hmac.compare_digest(self.mac(data), tag):
            raise InvalidMacError()

    def verify_truncated_mac(self, data: bytes, tag: bytes) -> None:
        if not hmac.compare_digest(self.mac(data)[:TRUNCATED_MAC_LENGTH], tag):
            raise InvalidMacError()


def _expand_chain_key(key: bytes) -> bytes:
    return _hmac_sha256(key, _MESSAGE_KEY_SEED)


def _advance_chain_key(key: bytes) -> bytes:
    return _hmac_sha256(key, _ADVANCEMENT_SEED)


@dataclass(eq=True)
class RatchetKey:
    """Our secret Curve25519 ratchet key."""

    secret: Curve25519SecretKey

    @classmethod
    def generate(cls) -> RatchetKey:
        """Create a new random ratchet key."""
        return cls(Curve25519SecretKey.generate())

    def public_key(self) -> Curve25519PublicKey:
        """The public half of the ratchet key."""
        return self.secret.public_key()

    def diffie_hellman(self, other: Curve25519PublicKey) -> bytes:
        """Perform X25519 with the other side's ratchet key."""
        return self.secret.diffie_hellman(other)

    def to_dict(self) -> dict[str, Any]:
        """Return a serialisable form of the key."""
        return {"key": _encode_key(self.secret.to_bytes())}

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> RatchetKey:
        """Restore the key from the output of to_dict."""
        return cls(Curve25519SecretKey.from_bytes(_decode_key(value["key"])))


@dataclass
class MessageKey:
    """A key that encrypts exactly one outgoing message."""

    key: bytes = field(repr=False)
    ratchet_key: Curve25519PublicKey
    index: int

    def _encrypt_into(self, message_factory: Any, plaintext: bytes) -> Message:
        cipher = _Cipher(self.key)
        ciphertext = cipher.encrypt(plaintext)
        message = message_factory(self.ratchet_key, self.index, ciphertext)
        message.set_mac(cipher.mac(message.to_mac_bytes()))
        return message

    def encrypt(self, plaintext: bytes) -> Message:
        """Encrypt the plaintext into a message with a full MAC."""
        return self._encrypt_into(Message.new, plaintext)

    def encrypt_truncated_mac(self, plaintext: bytes) -> Message:
        """Encrypt the plaintext into a message with a truncated MAC."""
        return self._encrypt_into(Message.new_truncated_mac, plaintext)


@dataclass
class RemoteMessageKey:
    """A key that decrypts exactly one incoming message."""

    key: bytes = field(repr=False)
    index: int

    def decrypt(self, message: Message) -> bytes:
        """Verify the full MAC of the message and decrypt it."""
        if message.mac_truncated():
            raise InvalidMacLengthError(MAC_LENGTH, TRUNCATED_MAC_LENGTH)
        cipher = _Cipher(self.key)
        cipher.verify_mac(message.to_mac_bytes(), message.mac)
        return cipher.decrypt(message.ciphertext)

    def decrypt_truncated_mac(self, message: Message) -> bytes:
        """Verify the truncated MAC of the message and decrypt it."""
        if not message.mac_truncated():
            raise InvalidMacLengthError(TRUNCATED_MAC_LENGTH, MAC_LENGTH)
        cipher = _Cipher(self.key)
        cipher.verify_truncated_mac(message.to_mac_bytes(), message.mac)
        return cipher.decrypt(message.ciphertext)

    def to_dict(self) -> dict[str, Any]:
        """Return a serialisable form of the key."""
        return {"key": _encode_key(self.key), "index": self.index}

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> RemoteMessageKey:
        """Restore the key from the output of to_dict."""
        return cls(_decode_key(value["key"]), int(value["index"]))


@dataclass
class ChainKey:
    """Our sending chain key."""

    key: bytes = field(repr=False)
    index: int = 0

    def advance(self) -> None:
        """Move the chain one step forward."""
        self.key = _advance_chain_key(self.key)
        self.index += 1

    def create_message_key(self, ratchet_key: Curve25519PublicKey) -> MessageKey:
        """Derive the message key for the current index and advance the chain."""
        message_key = MessageKey(_expand_chain_key(self.key), ratchet_key, self.index)
        self.advance()
        return message_key

    def to_dict(self) -> dict[str, Any]:
        """Return a serialisable form of the chain key."""
        return {"key": _encode_key(self.key), "index": self.index}

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> ChainKey:
        """Restore the chain key from the output of to_dict."""
        return cls(_decode_key(value["key"]), int(value["index"]))


@dataclass
class RemoteChainKey:
    """The other side's sending chain key, used to receive."""

    key: bytes = field(repr=False)
    index: int = 0

    def advance(self) -> None:
        """Move the chain one step forward."""
        self.key = _advance_chain_key(self.key)
        self.index += 1

    def create_message_key(self) -> RemoteMessageKey:
        """Derive the message key for the current index and advance the chain."""
        message_key = RemoteMessageKey(_expand_chain_key(self.key), self.index)
        self.advance()
        return message_key

    def to_dict(self) -> dict[str, Any]:
        """Return a serialisable form of the chain key."""
        return {"key": _encode_key(self.key), "index": self.index}

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> RemoteChainKey:
        """Restore the chain key from the output of to_dict."""
        return cls(_decode_key(value["key"]), int(value["index"]))


def _kdf(
    root_key: bytes, ratchet_key: RatchetKey, remote_ratchet_key: Curve25519PublicKey
) -> tuple[bytes, bytes]:
    shared_secret = ratchet_key.diffie_hellman(remote_ratchet_key)
    hkdf = HKDF(
        algorithm=hashes.SHA256(), length=64, salt=root_key, info=_ROOT_ADVANCEMENT_INFO
    )
    output = hkdf.derive(shared_secret)
    return output[:32], output[32:]


@dataclass
class RootKey:
    """The root key held while our sending chain is active."""

    key: bytes = field(repr=False)

    def advance(
        self, old_ratchet_key: RatchetKey, remote_ratchet_key: Curve25519PublicKey
    ) -> tuple[RemoteRootKey, RemoteChainKey]:
        """Derive the next root key and the other side's new chain key."""
        root_key, chain_key = _kdf(self.key, old_ratchet_key, remote_ratchet_key)
        return RemoteRootKey(root_key), RemoteChainKey(chain_key)

    def to_dict(self) -> dict[str, Any]:
        """Return a serialisable form of the root key."""
        return {"key": _encode_key(self.key)}

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> RootKey:
        """Restore the root key from the output of to_dict."""
        return cls(_decode_key(value["key"]))


@dataclass
class RemoteRootKey:
    """The root key held after receiving a new ratchet key from the other side."""

    key: bytes = field(repr=False)

    def advance(
        self, remote_ratchet_key: Curve25519PublicKey
    ) -> tuple[RootKey, ChainKey, RatchetKey]:
        """Create a new ratchet key and derive our next root and chain keys."""
        ratchet_key = RatchetKey.generate()
        root_key, chain_key = _kdf(self.key, ratchet_key, remote_ratchet_key)
        return RootKey(root_key), ChainKey(chain_key), ratchet_key

    def to_dict(self) -> dict[str, Any]:
        """Return a serialisable form of the root key."""
        return {"key": _encode_key(self.key)}

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> RemoteRootKey:
        """Restore the root key from the output of to_dict."""
        return cls(_decode_key(value["key"]))


@dataclass
class Ratchet:
    """A root key paired with our current ratchet key."""

    root_key: RootKey
    ratchet_key: RatchetKey

    @classmethod
    def new(cls, root_key: RootKey) -> Ratchet:
        """Pair the root key with a freshly generated ratchet key."""
        return cls(root_key, RatchetKey.generate())

    def advance(self, remote_key: Curve25519PublicKey) -> tuple[RemoteRootKey, RemoteChainKey]:
        """Advance the root key with the other side's new ratchet key."""
        return self.root_key.advance(self.ratchet_key, remote_key)

    def to_dict(self) -> dict[str, Any]:
        """Return a serialisable form of the ratchet."""
        return {"root_key": self.root_key.to_dict(), "ratchet_key": self.ratchet_key.to_dict()}

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> Ratchet:
        """Restore the ratchet from the output of to_dict."""
        return cls(RootKey.from_dict(value["root_key"]), RatchetKey.from_dict(value["ratchet_key"]))