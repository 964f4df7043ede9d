"""Exception hierarchy for the conference bridge core.

Fatal conditions (AuthError, NegotiationError) abort a connect attempt and
leave the session closed. ProviderError is raised per audio chunk and never
tears the session down. CleanupError is only ever logged.
"""


class BridgeError(Exception):
    """Base exception for conference bridge errors."""


class AuthError(BridgeError):
    """Token request or refresh was rejected by the bridge."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message)


class NegotiationError(BridgeError):
    """SDP offer/answer or call setup failed."""


class SignalingError(BridgeError):
    """A non-fatal control API request failed (e.g. one poll iteration)."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message)


class TransportError(BridgeError):
    """Media connectivity failed."""


class ProviderError(BridgeError):
    """A transcription back-end reported or caused an error."""

    def __init__(self, kind: str, message: str):
        self.kind = kind
        self.message = message
        super().__init__(f"{kind}: {message}")


class CleanupError(BridgeError):
    """Best-effort teardown call failed."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message)


__all__ = [
    "BridgeError",
    "AuthError",
    "NegotiationError",
    "SignalingError",
    "TransportError",
    "ProviderError",
    "CleanupError",
]
