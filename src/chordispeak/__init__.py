"""Client for the ChordiSpeak remote chord-vocal processing service."""

__version__ = "1.0.0"
