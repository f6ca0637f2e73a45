"""Delegated access gateway for third-party health and fitness providers."""

__version__ = "0.1.0"
