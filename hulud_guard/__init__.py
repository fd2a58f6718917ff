"""Shai-Hulud v2 detection and guarded cleanup."""

__version__ = "1.0.0"
