"""Breathing session control core."""

__version__ = "0.1.0"
