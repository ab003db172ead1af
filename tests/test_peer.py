"""Tests covering the peer connection helpers."""

import asyncio

import pytest

from rtcengine.errors import DeviceUnavailable
from rtcengine.rtc.media import StaticMediaProvider
from rtcengine.rtc.peer import MediaKind, PeerEvents, candidates_from_sdp

LOCAL_SDP = "\r\n".join(
    [
        "v=0",
        "o=- 3 3 IN IP4 0.0.0.0",
        "s=-",
        "t=0 0",
        "m=audio 9 UDP/TLS/RTP/SAVPF 111",
        "a=mid:0",
        "a=candidate:1 1 udp 2130706431 10.0.0.2 50000 typ host",
        "m=video 9 UDP/TLS/RTP/SAVPF 96",
        "a=mid:1",
        "a=candidate:2 1 udp 2130706431 10.0.0.2 50002 typ host",
        "a=candidate:3 1 udp 1694498815 203.0.113.7 50002 typ srflx",
        "",
    ]
)


def test_candidates_from_sdp_tracks_media_sections() -> None:
    candidates = candidates_from_sdp(LOCAL_SDP)

    assert [c.sdp_mid for c in candidates] == ["0", "1", "1"]
    assert [c.sdp_mline_index for c in candidates] == [0, 1, 1]
    assert candidates[2].candidate.startswith("candidate:3 ")
    assert candidates[0].to_dict()["sdpMLineIndex"] == 0


def test_candidates_from_sdp_without_candidates() -> None:
    assert candidates_from_sdp("v=0\r\nm=audio 9 RTP/AVP 0\r\n") == []


def test_peer_events_listener_lifecycle() -> None:
    events = PeerEvents()
    seen = []

    token = events.on_ice_connection_state_change(seen.append)
    events.emit("iceconnectionstatechange", "checking")
    events.remove_listener(token)
    events.emit("iceconnectionstatechange", "connected")

    assert seen == ["checking"]


def test_peer_events_rejects_non_callables() -> None:
    with pytest.raises(TypeError):
        PeerEvents().on_track("not-callable")  # type: ignore[arg-type]


def test_static_media_provider() -> None:
    provider = StaticMediaProvider({MediaKind.AUDIO: "mic"})

    assert asyncio.run(provider.acquire("audio")) == "mic"
    with pytest.raises(DeviceUnavailable) as info:
        asyncio.run(provider.acquire(MediaKind.VIDEO))
    assert info.value.kind == "video"
