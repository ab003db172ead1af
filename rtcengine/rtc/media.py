"""
Local media capability used by publishing sessions.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, runtime_checkable

from ..errors import DeviceUnavailable
from .peer import MediaKind


@runtime_checkable
class MediaProvider(Protocol):
    """Hands out outbound tracks, raising :class:`DeviceUnavailable` when it cannot."""

    async def acquire(self, kind: MediaKind) -> Any: ...


class StaticMediaProvider:
    """
    Serve tracks that were opened ahead of time.

    A kind mapped to ``None`` (or missing) behaves like a device that was not
    found.
    """

    def __init__(self, tracks: Optional[Dict[MediaKind, Any]] = None) -> None:
        self.tracks: Dict[MediaKind, Any] = dict(tracks or {})

    async def acquire(self, kind: MediaKind) -> Any:
        track = self.tracks.get(MediaKind(kind))
        if track is None:
            raise DeviceUnavailable(MediaKind(kind).value, "no track configured")
        return track


__all__ = ["MediaProvider", "StaticMediaProvider"]
