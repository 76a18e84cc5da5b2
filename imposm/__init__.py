"""Caches, binary encodings, tile expiry and configuration for OpenStreetMap imports."""

__version__ = "0.1.0"