from __future__ import annotations

import threading
from typing import Any, List, Optional, Set, Tuple

import httpx
import pytest

from rtcengine.rtc.peer import ICECandidate, PeerEvents, SessionDescription

OFFER_SDP = "v=0\r\no=- 1 1 IN IP4 0.0.0.0\r\ns=-\r\nt=0 0\r\nm=audio 9 UDP/TLS/RTP/SAVPF 111\r\na=mid:0\r\n"
CANDIDATE = "candidate:1 1 udp 2130706431 192.168.1.2 50000 typ host"
ANSWER_SDP = "v=0\r\no=srs 2 2 IN IP4 127.0.0.1\r\ns=SRSPublishSession\r\nt=0 0\r\n"

PUBLISH_URL = "http://localhost:1985/rtc/v1/whip/?app=live&stream=livestream"


class FakeTrack:
    def __init__(self, kind: str) -> None:
        self.kind = kind
        self.id = f"{kind}-track"
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class FakePeerConnection(PeerEvents):
    """Records every call; ``fail_on`` names calls that should raise."""

    def __init__(self, fail_on: Optional[Set[str]] = None, loop: Any = None) -> None:
        super().__init__()
        self.loop = loop
        self.fail_on = set(fail_on or ())
        self.calls: List[Tuple[str, Any]] = []
        self.threads: List[int] = []
        self.close_count = 0

    def _record(self, name: str, payload: Any = None) -> None:
        self.calls.append((name, payload))
        self.threads.append(threading.get_ident())
        if name in self.fail_on:
            raise RuntimeError(f"{name} rejected")

    @property
    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def add_transceiver(self, kind, direction) -> None:
        self._record("addTransceiver", (kind.value, direction.value))

    def add_track(self, track) -> None:
        self._record("addTrack", track)

    async def create_offer(self) -> SessionDescription:
        self._record("createOffer")
        return SessionDescription(type="offer", sdp=OFFER_SDP)

    async def set_local_description(self, description: SessionDescription) -> SessionDescription:
        self._record("setLocalDescription", description)
        self.emit("icecandidate", ICECandidate(candidate=CANDIDATE, sdp_mid="0", sdp_mline_index=0))
        return SessionDescription(type=description.type, sdp=description.sdp + f"a={CANDIDATE}\r\n")

    async def set_remote_description(self, description: SessionDescription) -> None:
        self._record("setRemoteDescription", description)

    async def close(self) -> None:
        self.close_count += 1


class RecordingHandler:
    """httpx.MockTransport handler that answers with a fixed status."""

    def __init__(self, status_code: int = 200, text: str = ANSWER_SDP) -> None:
        self.status_code = status_code
        self.text = text
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, text=self.text)


@pytest.fixture
def fake_peer() -> FakePeerConnection:
    return FakePeerConnection()
