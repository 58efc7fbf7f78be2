"""Configuration package."""

from chordispeak.infrastructure.config.loader import ConfigLoader, ClientConfig

__all__ = ["ConfigLoader", "ClientConfig"]
