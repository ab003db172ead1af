"""
Error hierarchy shared by the URL parser and the signaling session.
"""

from __future__ import annotations

from typing import Optional


class SignalingError(RuntimeError):
    """Base class for every session-terminating error."""


class MalformedUrl(SignalingError, ValueError):
    """Raised when a stream locator cannot be parsed."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"malformed url {url!r}: {reason}")
        self.url = url
        self.reason = reason


class DeviceUnavailable(SignalingError):
    """Raised when no capture device can be opened for a media kind."""

    def __init__(self, kind: str, reason: str = "no device") -> None:
        super().__init__(f"{kind} device unavailable: {reason}")
        self.kind = kind
        self.reason = reason


class NegotiationError(SignalingError):
    """Raised when a peer connection call reports a failure."""

    def __init__(self, step: str, message: Optional[str] = None) -> None:
        super().__init__(f"{step} failed" + (f": {message}" if message else ""))
        self.step = step


class SignalingExchangeError(SignalingError):
    """Raised when the HTTP offer/answer exchange fails or returns non-2xx."""

    def __init__(self, url: str, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(f"exchange with {url} failed: {message}")
        self.url = url
        self.status_code = status_code


class InvalidTransition(SignalingError):
    """Raised when a session step is invoked out of order."""


class SessionClosed(SignalingError):
    """Raised inside a session that its owner tore down mid-negotiation."""


__all__ = [
    "DeviceUnavailable",
    "InvalidTransition",
    "MalformedUrl",
    "NegotiationError",
    "SessionClosed",
    "SignalingError",
    "SignalingExchangeError",
]
