"""Core package exports."""

from importlib import import_module
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import ConfigLoader, get_config
    from .exceptions import (
        AuthError,
        BridgeError,
        CleanupError,
        NegotiationError,
        ProviderError,
        SignalingError,
        TransportError,
    )
    from .queues import PendingQueue

__all__ = [
    "ConfigLoader",
    "get_config",
    "BridgeError",
    "AuthError",
    "NegotiationError",
    "SignalingError",
    "TransportError",
    "ProviderError",
    "CleanupError",
    "PendingQueue",
]

_LAZY_EXPORTS = {
    "ConfigLoader": (".config", "ConfigLoader"),
    "get_config": (".config", "get_config"),
    "BridgeError": (".exceptions", "BridgeError"),
    "AuthError": (".exceptions", "AuthError"),
    "NegotiationError": (".exceptions", "NegotiationError"),
    "SignalingError": (".exceptions", "SignalingError"),
    "TransportError": (".exceptions", "TransportError"),
    "ProviderError": (".exceptions", "ProviderError"),
    "CleanupError": (".exceptions", "CleanupError"),
    "PendingQueue": (".queues", "PendingQueue"),
}


def __getattr__(name):
    if name not in _LAZY_EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module_name, attr_name = _LAZY_EXPORTS[name]
    module = import_module(module_name, __name__)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value
