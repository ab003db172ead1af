"""
Peer connection capability consumed by the signaling session.

The WebRTC stack itself lives outside this package.  Anything that offers the
coroutines declared on :class:`PeerConnection` can be driven by
:class:`rtcengine.rtc.session.SignalingSession`; :class:`PeerEvents` gives
implementations the observer registration the session relies on for
diagnostics.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

LOG = logging.getLogger(__name__)


class MediaKind(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"


class TransceiverDirection(str, Enum):
    SEND_ONLY = "sendonly"
    RECV_ONLY = "recvonly"


@dataclass
class SessionDescription:
    """SDP text tagged with its role in the exchange."""

    type: str
    sdp: str

    def to_dict(self) -> dict:
        return {"type": self.type, "sdp": self.sdp}


@dataclass
class ICECandidate:
    """Serialisable ICE candidate container."""

    candidate: str
    sdp_mid: Optional[str] = None
    sdp_mline_index: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "candidate": self.candidate,
            "sdpMid": self.sdp_mid,
            "sdpMLineIndex": self.sdp_mline_index,
        }


@runtime_checkable
class PeerConnection(Protocol):
    """
    Operations the session needs from a WebRTC stack.

    ``loop`` is the event loop the implementation must be called from, or
    ``None`` when any loop will do.
    """

    loop: Optional[asyncio.AbstractEventLoop]

    def add_transceiver(self, kind: MediaKind, direction: TransceiverDirection) -> Any: ...

    def add_track(self, track: Any) -> Any: ...

    async def create_offer(self) -> SessionDescription: ...

    async def set_local_description(self, description: SessionDescription) -> Optional[SessionDescription]: ...

    async def set_remote_description(self, description: SessionDescription) -> None: ...

    async def close(self) -> None: ...

    def on_ice_candidate(self, callback: Callable[[ICECandidate], None]) -> int: ...

    def on_ice_connection_state_change(self, callback: Callable[[str], None]) -> int: ...

    def on_track(self, callback: Callable[[Any], None]) -> int: ...

    def remove_listener(self, token: int) -> None: ...


class PeerEvents:
    """
    Observer bookkeeping for peer connection implementations.
    """

    def __init__(self) -> None:
        self._listener_counter = 0
        self._listeners: Dict[str, Dict[int, Callable[[Any], None]]] = {
            "icecandidate": {},
            "iceconnectionstatechange": {},
            "track": {},
        }

    def _register(self, event: str, callback: Callable[[Any], None]) -> int:
        if not callable(callback):
            raise TypeError("callback must be callable")
        self._listener_counter += 1
        token = self._listener_counter
        self._listeners[event][token] = callback
        return token

    def on_ice_candidate(self, callback: Callable[[ICECandidate], None]) -> int:
        return self._register("icecandidate", callback)

    def on_ice_connection_state_change(self, callback: Callable[[str], None]) -> int:
        return self._register("iceconnectionstatechange", callback)

    def on_track(self, callback: Callable[[Any], None]) -> int:
        return self._register("track", callback)

    def remove_listener(self, token: int) -> None:
        for listeners in self._listeners.values():
            listeners.pop(token, None)

    def emit(self, event: str, payload: Any) -> None:
        for token, callback in list(self._listeners[event].items()):
            try:
                callback(payload)
            except Exception:  # pragma: no cover - listeners must not break the stack
                LOG.exception("Peer listener %s for %s failed.", token, event)


def candidates_from_sdp(sdp: str) -> List[ICECandidate]:
    """
    Collect the ``a=candidate`` lines of ``sdp`` with their media section.
    """

    candidates: List[ICECandidate] = []
    mline_index = -1
    mid: Optional[str] = None
    for raw_line in sdp.splitlines():
        line = raw_line.strip()
        if line.startswith("m="):
            mline_index += 1
            mid = None
        elif line.startswith("a=mid:"):
            mid = line[len("a=mid:") :]
        elif line.startswith("a=candidate:"):
            candidates.append(
                ICECandidate(
                    candidate=line[len("a=") :],
                    sdp_mid=mid,
                    sdp_mline_index=mline_index if mline_index >= 0 else None,
                )
            )
    return candidates


__all__ = [
    "ICECandidate",
    "MediaKind",
    "PeerConnection",
    "PeerEvents",
    "SessionDescription",
    "TransceiverDirection",
    "candidates_from_sdp",
]
