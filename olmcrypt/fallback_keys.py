"""Fallback keys, used in place of one-time keys once those run out."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .shared_secret import (
    Curve25519PublicKey,
    Curve25519SecretKey,
    _base64_decode,
    _base64_encode,
)


@dataclass
class FallbackKey:
    """A single fallback key pair together with its key ID."""

    key_id: int
    key: Curve25519SecretKey
    published: bool = False

    def public_key(self) -> Curve25519PublicKey:
        """The public half of the fallback key."""
        return self.key.public_key()

    def mark_as_published(self) -> None:
        """Record that the key has been uploaded to a server."""
        self.published = True

    def to_dict(self) -> dict[str, Any]:
        """Return a serialisable form of the key."""
        return {
            "key_id": self.key_id,
            "key": _base64_encode(self.key.to_bytes()),
            "published": self.published,
        }

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> FallbackKey:
        """Restore a key from the output of to_dict."""
        return cls(
            key_id=int(value["key_id"]),
            key=Curve25519SecretKey.from_bytes(_base64_decode(value["key"])),
            published=bool(value["published"]),
        )


def _optional_to_dict(key: Optional[FallbackKey]) -> Optional[dict[str, Any]]:
    return None if key is None else key.to_dict()


def _optional_from_dict(value: Optional[dict[str, Any]]) -> Optional[FallbackKey]:
    return None if value is None else FallbackKey.from_dict(value)


@dataclass
class FallbackKeys:
    """The current and the previous fallback key of an account."""

    key_id: int = 0
    fallback_key: Optional[FallbackKey] = field(default=None)
    previous_fallback_key: Optional[FallbackKey] = field(default=None)

    def mark_as_published(self) -> None:
        """Mark the current fallback key, if any, as published."""
        if self.fallback_key is not None:
            self.fallback_key.mark_as_published()

    def generate_fallback_key(self) -> Optional[Curve25519PublicKey]:
        """Create a new fallback key.

        The current key becomes the previous one. Returns the public half of
        the previous key that was discarded, if there was one.
        """
        key_id = self.key_id
        self.key_id += 1

        discarded = self.previous_fallback_key
        self.previous_fallback_key = self.fallback_key
        self.fallback_key = FallbackKey(key_id, Curve25519SecretKey.generate())

        return None if discarded is None else discarded.public_key()

    def get_secret_key(self, public_key: Curve25519PublicKey) -> Optional[Curve25519SecretKey]:
        """Find the secret key of the current or previous fallback key."""
        for candidate in (self.fallback_key, self.previous_fallback_key):
            if candidate is not None and candidate.public_key() == public_key:
                return candidate.key
        return None

    def forget_previous_fallback_key(self) -> Optional[FallbackKey]:
        """Drop and return the previous fallback key, if there is one."""
        previous, self.previous_fallback_key = self.previous_fallback_key, None
        return previous

    def unpublished_fallback_key(self) -> Optional[FallbackKey]:
        """The current fallback key if it has not been published yet."""
        if self.fallback_key is not None and not self.fallback_key.published:
            return self.fallback_key
        return None

    def to_dict(self) -> dict[str, Any]:
        """Return a serialisable form of the fallback keys."""
        return {
            "key_id": self.key_id,
            "fallback_key": _optional_to_dict(self.fallback_key),
            "previous_fallback_key": _optional_to_dict(self.previous_fallback_key),
        }

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> FallbackKeys:
        """Restore the fallback keys from the output of to_dict."""
        return cls(
            key_id=int(value["key_id"]),
            fallback_key=_optional_from_dict(value.get("fallback_key")),
            previous_fallback_key=_optional_from_dict(value.get("previous_fallback_key")),
        )