"""Olm double ratchet sessions and short authentication string verification."""

__version__ = "0.1.0"