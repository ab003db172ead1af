"""
rtc-engine package.

Establishes WebRTC sessions with SRS-style media servers: stream locators are
parsed into signaling endpoints (:mod:`rtcengine.url`) and a
:class:`~rtcengine.rtc.session.SignalingSession` drives a peer connection
through one WHIP-style offer/answer exchange.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

__all__ = [
    "EngineConfig",
]

PUBLISH_PATH = "/rtc/v1/whip/"
PLAY_PATH = "/rtc/v1/whip-play/"


class EngineConfig:
    """Signaling defaults applied to every session the engine starts."""

    def __init__(
        self,
        profile: str = "default",
        *,
        default_schema: str = "http:",
        publish_path: str = PUBLISH_PATH,
        play_path: str = PLAY_PATH,
        exchange_timeout: Optional[float] = None,
        ice_servers: Optional[List[str]] = None,
        media_source: Optional[str] = None,
        media_format: Optional[str] = None,
        media_options: Optional[Dict[str, str]] = None,
    ) -> None:
        self.profile = profile
        self.default_schema = default_schema
        self.publish_path = publish_path
        self.play_path = play_path
        self.exchange_timeout = exchange_timeout
        self.ice_servers = list(ice_servers or [])
        self.media_source = media_source
        self.media_format = media_format
        self.media_options = dict(media_options or {})

    def path_for(self, role: Any) -> str:
        """API path used when the locator does not carry its own."""
        value = getattr(role, "value", role)
        return self.play_path if str(value).lower() == "play" else self.publish_path

    def to_dict(self) -> dict:
        return {
            "profile": self.profile,
            "defaultSchema": self.default_schema,
            "publishPath": self.publish_path,
            "playPath": self.play_path,
            "exchangeTimeout": self.exchange_timeout,
            "iceServers": list(self.ice_servers),
            "mediaSource": self.media_source,
        }

