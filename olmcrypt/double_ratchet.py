"""The sending side of the Olm double ratchet.

A double ratchet is either active, holding a ratchet and a sending chain, or
inactive, waiting to create a new ratchet key once we send the next message
after receiving a new ratchet key from the other side.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

from .message import Message
from .ratchet import (
    ChainKey,
    MessageKey,
    Ratchet,
    RemoteRootKey,
)
from .receiver_chain import ReceiverChain
from .shared_secret import Curve25519PublicKey, Shared3DHSecret
from .ratchet import RootKey

_INACTIVE = "inactive"
_ACTIVE = "active"


@dataclass
class _ActiveDoubleRatchet:
    active_ratchet: Ratchet
    symmetric_key_ratchet: ChainKey

    def advance(
        self, ratchet_key: Curve25519PublicKey
    ) -> tuple[_InactiveDoubleRatchet, ReceiverChain]:
        root_key, remote_chain = self.active_ratchet.advance(ratchet_key)
        return (
            _InactiveDoubleRatchet(root_key, ratchet_key),
            ReceiverChain(ratchet_key, remote_chain),
        )

    def ratchet_key(self) -> Curve25519PublicKey:
        return self.active_ratchet.ratchet_key.public_key()

    def next_message_key(self) -> MessageKey:
        return self.symmetric_key_ratchet.create_message_key(self.ratchet_key())

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": _ACTIVE,
            "active_ratchet": self.active_ratchet.to_dict(),
            "symmetric_key_ratchet": self.symmetric_key_ratchet.to_dict(),
        }


@dataclass
class _InactiveDoubleRatchet:
    root_key: RemoteRootKey
    ratchet_key: Curve25519PublicKey

    def activate(self) -> _ActiveDoubleRatchet:
        root_key, chain_key, ratchet_key = self.root_key.advance(self.ratchet_key)
        return _ActiveDoubleRatchet(Ratchet(root_key, ratchet_key), chain_key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": _INACTIVE,
            "root_key": self.root_key.to_dict(),
            "ratchet_key": self.ratchet_key.to_base64(),
        }


_State = Union[_ActiveDoubleRatchet, _InactiveDoubleRatchet]


class DoubleRatchet:
    """Our sending ratchet, producing one message key per outgoing message."""

    __slots__ = ("_state",)

    def __init__(self, state: _State) -> None:
        self._state = state

    @classmethod
    def active(cls, shared_secret: Shared3DHSecret) -> DoubleRatchet:
        """Create an active ratchet from the 3DH secret of an outbound session."""
        root_key, chain_key = shared_secret.expand()
        return cls(_ActiveDoubleRatchet(Ratchet.new(RootKey(root_key)), ChainKey(chain_key)))

    @classmethod
    def inactive(cls, root_key: RemoteRootKey, ratchet_key: Curve25519PublicKey) -> DoubleRatchet:
        """Create a ratchet that activates when the next message is sent."""
        return cls(_InactiveDoubleRatchet(root_key, ratchet_key))

    def chain_index(self) -> Optional[int]:
        """The index of the sending chain, or None while inactive."""
        if isinstance(self._state, _ActiveDoubleRatchet):
            return self._state.symmetric_key_ratchet.index
        return None

    def next_message_key(self) -> MessageKey:
        """Return the key for the next outgoing message, activating if needed."""
        if isinstance(self._state, _InactiveDoubleRatchet):
            self._state = self._state.activate()
        return self._state.next_message_key()

    def encrypt(self, plaintext: bytes) -> Message:
        """Encrypt the plaintext into a message with a full MAC."""
        return self.next_message_key().encrypt(plaintext)

    def encrypt_truncated_mac(self, plaintext: bytes) -> Message:
        """Encrypt the plaintext into a message with a truncated MAC."""
        return self.next_message_key().encrypt_truncated_mac(plaintext)

    def advance(self, ratchet_key: Curve25519PublicKey) -> tuple[DoubleRatchet, ReceiverChain]:
        """Advance with a new ratchet key from the other side.

        Returns the inactive ratchet that replaces this one and the receiving
        chain for the new key. An inactive ratchet activates itself first.
        """
        state = self._state
        if isinstance(state, _InactiveDoubleRatchet):
            state = state.activate()
            self._state = state
        inactive, receiver_chain = state.advance(ratchet_key)
        return DoubleRatchet(inactive), receiver_chain

    def to_dict(self) -> dict[str, Any]:
        """Return a serialisable form of the ratchet."""
        return self._state.to_dict()

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> DoubleRatchet:
        """Restore the ratchet from the output of to_dict."""
        kind = value.get("type")
        if kind == _ACTIVE:
            return cls(
                _ActiveDoubleRatchet(
                    Ratchet.from_dict(value["active_ratchet"]),
                    ChainKey.from_dict(value["symmetric_key_ratchet"]),
                )
            )
        if kind == _INACTIVE:
            return cls(
                _InactiveDoubleRatchet(
                    RemoteRootKey.from_dict(value["root_key"]),
                    Curve25519PublicKey.from_base64(value["ratchet_key"]),
                )
            )
        raise ValueError(f"Unknown double ratchet state: {kind!r}")

    def __repr__(self) -> str:
        return f"DoubleRatchet(chain_index={self.chain_index()!r})"