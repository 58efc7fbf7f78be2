"""Service API package."""

from chordispeak.infrastructure.api.client import ChordiSpeakClient

__all__ = ["ChordiSpeakClient"]
