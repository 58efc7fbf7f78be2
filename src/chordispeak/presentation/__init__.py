"""Presentation layer package."""

from chordispeak.presentation.cli import main

__all__ = ["main"]
