"""Core remote-access layer: HTTP client and async helpers."""

from .client import RemoteAPIError, RemoteClient

__all__ = ["RemoteAPIError", "RemoteClient"]
