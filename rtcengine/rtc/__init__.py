"""
WebRTC signaling helpers.
"""

from __future__ import annotations

from .exchange import WhipExchange
from .media import MediaProvider, StaticMediaProvider
from .peer import ICECandidate, MediaKind, PeerConnection, SessionDescription, TransceiverDirection
from .session import Role, SessionResult, SessionState, SignalingSession

__all__ = [
    "ICECandidate",
    "MediaKind",
    "MediaProvider",
    "PeerConnection",
    "Role",
    "SessionDescription",
    "SessionResult",
    "SessionState",
    "SignalingSession",
    "StaticMediaProvider",
    "TransceiverDirection",
    "WhipExchange",
]
