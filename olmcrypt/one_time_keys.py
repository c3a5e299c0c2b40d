"""The store of an account's one-time keys."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .shared_secret import (
    Curve25519PublicKey,
    Curve25519SecretKey,
    _base64_decode,
    _base64_encode,
)

PUBLIC_MAX_ONE_TIME_KEYS = 50
MAX_ONE_TIME_KEYS = 100 * PUBLIC_MAX_ONE_TIME_KEYS

_KEY_ID_MASK = (1 << 64) - 1


@dataclass
class OneTimeKeyGenerationResult:
    """The public one-time keys that were created and removed by a generation."""

    created: list[Curve25519PublicKey] = field(default_factory=list)
    removed: list[Curve25519PublicKey] = field(default_factory=list)


@dataclass
class OneTimeKeys:
    """One-time key pairs, indexed by key ID and by public key.

    The store holds at most MAX_ONE_TIME_KEYS keys; once full, the key with
    the lowest key ID is dropped to make room for a new one.
    """

    next_key_id: int = 0
    unpublished_public_keys: dict[int, Curve25519PublicKey] = field(default_factory=dict)
    private_keys: dict[int, Curve25519SecretKey] = field(default_factory=dict)
    key_ids_by_key: dict[Curve25519PublicKey, int] = field(default_factory=dict)

    def mark_as_published(self) -> None:
        """Record that all current public keys have been uploaded."""
        self.unpublished_public_keys.clear()

    def get_secret_key(self, public_key: Curve25519PublicKey) -> Optional[Curve25519SecretKey]:
        """Find the secret key belonging to a public one-time key."""
        key_id = self.key_ids_by_key.get(public_key)
        return None if key_id is None else self.private_keys.get(key_id)

    def remove_secret_key(
        self, public_key: Curve25519PublicKey
    ) -> Optional[Curve25519SecretKey]:
        """Remove a one-time key and return its secret half, if it was stored."""
        key_id = self.key_ids_by_key.pop(public_key, None)
        if key_id is None:
            return None
        self.unpublished_public_keys.pop(key_id, None)
        return self.private_keys.pop(key_id, None)

    def _evict_oldest(self) -> Optional[Curve25519PublicKey]:
        if not self.private_keys:
            return None
        key_id = min(self.private_keys)
        private_key = self.private_keys.pop(key_id)
        public_key = private_key.public_key()
        self.key_ids_by_key.pop(public_key, None)
        self.unpublished_public_keys.pop(key_id, None)
        return public_key

    def insert_secret_key(
        self, key_id: int, key: Curve25519SecretKey, published: bool
    ) -> tuple[Curve25519PublicKey, Optional[Curve25519PublicKey]]:
        """Store a key, evicting the oldest one if the store is full.

        Returns the public half of the new key and of the evicted key, if any.
        """
        removed = self._evict_oldest() if len(self.private_keys) >= MAX_ONE_TIME_KEYS else None

        public_key = key.public_key()
        self.private_keys[key_id] = key
        self.key_ids_by_key[public_key] = key_id
        if not published:
            self.unpublished_public_keys[key_id] = public_key

        return public_key, removed

    def is_secret_key_published(self, key_id: int) -> bool:
        """Whether the key with the given ID has been published."""
        return key_id not in self.unpublished_public_keys

    def generate(self, count: int) -> OneTimeKeyGenerationResult:
        """Generate count new one-time keys."""
        result = OneTimeKeyGenerationResult()
        for _ in range(count):
            created, removed = self.insert_secret_key(
                self.next_key_id, Curve25519SecretKey.generate(), False
            )
            result.created.append(created)
            if removed is not None:
                result.removed.append(removed)
            self.next_key_id = (self.next_key_id + 1) & _KEY_ID_MASK
        return result

    def to_dict(self) -> dict[str, Any]:
        """Return a serialisable form of the store."""
        return {
            "next_key_id": self.next_key_id,
            "public_keys": {
                str(key_id): self.unpublished_public_keys[key_id].to_base64()
                for key_id in sorted(self.unpublished_public_keys)
            },
            "private_keys": {
                str(key_id): _base64_encode(self.private_keys[key_id].to_bytes())
                for key_id in sorted(self.private_keys)
            },
        }

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> OneTimeKeys:
        """Restore the store from the output of to_dict."""
        next_key_id = value["next_key_id"] if "next_key_id" in value else value["key_id"]
        private_keys = {
            int(key_id): Curve25519SecretKey.from_bytes(_base64_decode(encoded))
            for key_id, encoded in value["private_keys"].items()
        }
        unpublished = {
            int(key_id): Curve25519PublicKey.from_base64(encoded)
            for key_id, encoded in value["public_keys"].items()
        }
        key_ids_by_key = {key.public_key(): key_id for key_id, key in private_keys.items()}
        return cls(
            next_key_id=int(next_key_id),
            unpublished_public_keys=unpublished,
            private_keys=private_keys,
            key_ids_by_key=key_ids_by_key,
        )