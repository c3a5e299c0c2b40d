"""A receiving chain: the other side's chain key plus skipped message keys."""

from __future__ import annotations

import dataclasses
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Optional

from .message import Message
from .ratchet import (
    MissingMessageKeyError,
    RemoteChainKey,
    RemoteMessageKey,
    TooBigMessageGapError,
)
from .session_config import SessionConfig, Version
from .shared_secret import Curve25519PublicKey

MAX_MESSAGE_GAP = 2000
MAX_MESSAGE_KEYS = 40


def _new_key_store() -> deque[RemoteMessageKey]:
    return deque(maxlen=MAX_MESSAGE_KEYS)


@dataclass
class ReceiverChain:
    """Decrypts messages sent under one of the other side's ratchet keys."""

    ratchet_key: Curve25519PublicKey
    hkdf_ratchet: RemoteChainKey
    skipped_message_keys: deque[RemoteMessageKey] = field(default_factory=_new_key_store)

    def __post_init__(self) -> None:
        self.skipped_message_keys = deque(self.skipped_message_keys, maxlen=MAX_MESSAGE_KEYS)

    def _find_message_key(
        self, chain_index: int
    ) -> tuple[RemoteMessageKey, Optional[tuple[RemoteChainKey, deque[RemoteMessageKey]]]]:
        current = self.hkdf_ratchet.index
        gap = max(0, chain_index - current)

        if gap > MAX_MESSAGE_GAP:
            raise TooBigMessageGapError(gap, MAX_MESSAGE_GAP)

        if current > chain_index:
            for key in self.skipped_message_keys:
                if key.index == chain_index:
                    return key, None
            raise MissingMessageKeyError(chain_index)

        ratchet = dataclasses.replace(self.hkdf_ratchet)
        skipped = _new_key_store()
        while ratchet.index < chain_index:
            if chain_index - ratchet.index > MAX_MESSAGE_KEYS:
                ratchet.advance()
            else:
                skipped.append(ratchet.create_message_key())

        return ratchet.create_message_key(), (ratchet, skipped)

    def decrypt(self, message: Message, config: SessionConfig) -> bytes:
        """Decrypt a message, updating the chain only if decryption succeeds."""
        message_key, advanced = self._find_message_key(message.chain_index)

        if config.version is Version.V1:
            plaintext = message_key.decrypt_truncated_mac(message)
        else:
            plaintext = message_key.decrypt(message)

        if advanced is None:
            self.skipped_message_keys = deque(
                (k for k in self.skipped_message_keys if k.index != message_key.index),
                maxlen=MAX_MESSAGE_KEYS,
            )
        else:
            ratchet, skipped = advanced
            self.hkdf_ratchet = ratchet
            self.skipped_message_keys.extend(skipped)

        return plaintext

    def belongs_to(self, ratchet_key: Curve25519PublicKey) -> bool:
        """Whether this chain receives messages under the given ratchet key."""
        return self.ratchet_key == ratchet_key

    def to_dict(self) -> dict[str, Any]:
        """Return a serialisable form of the chain."""
        return {
            "ratchet_key": self.ratchet_key.to_base64(),
            "hkdf_ratchet": self.hkdf_ratchet.to_dict(),
            "skipped_message_keys": [k.to_dict() for k in self.skipped_message_keys],
        }

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> ReceiverChain:
        """Restore the chain from the output of to_dict."""
        return cls(
            ratchet_key=Curve25519PublicKey.from_base64(value["ratchet_key"]),
            hkdf_ratchet=RemoteChainKey.from_dict(value["hkdf_ratchet"]),
            skipped_message_keys=deque(
                (RemoteMessageKey.from_dict(k) for k in value["skipped_message_keys"]),
                maxlen=MAX_MESSAGE_KEYS,
            ),
        )