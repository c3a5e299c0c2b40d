"""Configuration of how Olm sessions behave."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any


class Version(IntEnum):
    """The Olm protocol version a session uses."""

    V1 = 1
    V2 = 2


@dataclass(frozen=True)
class SessionConfig:
    """Session settings; currently only the MAC truncation behaviour.

    Version 1 truncates message MACs to 8 bytes, version 2 keeps them whole.
    """

    version: Version = Version.V2

    @classmethod
    def version_1(cls) -> SessionConfig:
        """A configuration that uses truncated MACs."""
        return cls(Version.V1)

    @classmethod
    def version_2(cls) -> SessionConfig:
        """A configuration that uses full MACs."""
        return cls(Version.V2)

    @classmethod
    def default(cls) -> SessionConfig:
        """The default configuration, version 2."""
        return cls.version_2()

    def to_dict(self) -> dict[str, Any]:
        """Return a serialisable form of the configuration."""
        return {"version": self.version.name}

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> SessionConfig:
        """Restore a configuration from the output of to_dict."""
        name = value.get("version")
        try:
            return cls(Version[name])
        except (KeyError, TypeError) as error:
            raise ValueError(f"Unknown session config version: {name!r}") from error