"""
aiortc bindings for the peer connection and media capabilities.

Requires the optional ``aiortc`` package::

    pip install rtc-engine[aiortc]
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from ..errors import DeviceUnavailable
from .peer import (
    MediaKind,
    PeerEvents,
    SessionDescription,
    TransceiverDirection,
    candidates_from_sdp,
)

LOG = logging.getLogger(__name__)

try:  # pragma: no cover - availability depends on host environment
    from aiortc import RTCConfiguration, RTCIceServer, RTCPeerConnection, RTCSessionDescription
    from aiortc.contrib.media import MediaPlayer

    HAS_AIORTC = True
except ImportError:  # pragma: no cover
    HAS_AIORTC = False


def _require_aiortc(component: str) -> None:
    if not HAS_AIORTC:
        raise ImportError(
            f"{component} requires the 'aiortc' package. "
            "Install it with: pip install rtc-engine[aiortc]"
        )


class AiortcPeerConnection(PeerEvents):
    """
    :class:`~rtcengine.rtc.peer.PeerConnection` backed by ``aiortc``.

    aiortc gathers every local candidate while committing the local
    description, so candidates are reported by scanning that SDP rather than
    trickled.
    """

    def __init__(
        self,
        ice_servers: Optional[List[str]] = None,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        _require_aiortc("AiortcPeerConnection")
        super().__init__()
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
        self.loop = loop

        servers = [RTCIceServer(urls=url) for url in (ice_servers or [])]
        self._pc = RTCPeerConnection(configuration=RTCConfiguration(iceServers=servers))

        @self._pc.on("iceconnectionstatechange")
        def _on_ice_state() -> None:
            self.emit("iceconnectionstatechange", self._pc.iceConnectionState)

        @self._pc.on("track")
        def _on_track(track: Any) -> None:
            self.emit("track", track)

    @property
    def native(self) -> Any:
        return self._pc

    def add_transceiver(self, kind: MediaKind, direction: TransceiverDirection) -> Any:
        return self._pc.addTransceiver(MediaKind(kind).value, direction=TransceiverDirection(direction).value)

    def add_track(self, track: Any) -> Any:
        return self._pc.addTrack(track)

    async def create_offer(self) -> SessionDescription:
        offer = await self._pc.createOffer()
        return SessionDescription(type=offer.type, sdp=offer.sdp)

    async def set_local_description(self, description: SessionDescription) -> SessionDescription:
        await self._pc.setLocalDescription(RTCSessionDescription(sdp=description.sdp, type=description.type))
        local = self._pc.localDescription
        for candidate in candidates_from_sdp(local.sdp):
            self.emit("icecandidate", candidate)
        return SessionDescription(type=local.type, sdp=local.sdp)

    async def set_remote_description(self, description: SessionDescription) -> None:
        await self._pc.setRemoteDescription(RTCSessionDescription(sdp=description.sdp, type=description.type))

    async def close(self) -> None:
        await self._pc.close()


class MediaPlayerProvider:
    """
    Capture through :class:`aiortc.contrib.media.MediaPlayer`.

    ``source`` is whatever FFmpeg accepts: a file, a URL, or a device name
    combined with ``format`` (``"v4l2"``, ``"pulse"``, ``"avfoundation"``...).
    The player is opened on first use and shared by both kinds.
    """

    def __init__(
        self,
        source: str,
        *,
        format: Optional[str] = None,
        options: Optional[Dict[str, str]] = None,
    ) -> None:
        _require_aiortc("MediaPlayerProvider")
        self.source = source
        self.format = format
        self.options = dict(options or {})
        self._player: Any = None

    def _open(self) -> Any:
        if self._player is None:
            try:
                self._player = MediaPlayer(self.source, format=self.format, options=self.options or None)
            except Exception as exc:
                raise DeviceUnavailable("media", f"cannot open {self.source}: {exc}") from exc
            LOG.info("Opened media source %s (format=%s)", self.source, self.format)
        return self._player

    async def acquire(self, kind: MediaKind) -> Any:
        kind = MediaKind(kind)
        player = self._open()
        track = player.video if kind is MediaKind.VIDEO else player.audio
        if track is None:
            raise DeviceUnavailable(kind.value, f"{self.source} has no {kind.value} stream")
        return track


__all__ = ["AiortcPeerConnection", "HAS_AIORTC", "MediaPlayerProvider"]
