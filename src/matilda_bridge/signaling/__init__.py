"""Conference bridge control API client."""

from .client import SignalingClient

__all__ = ["SignalingClient"]
