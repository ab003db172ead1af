"""
Offer/answer state machine for a single WebRTC connection attempt.

A session walks a peer connection through::

    IDLE -> TRANSCEIVERS_CONFIGURED -> CAPTURING_MEDIA (publish/stream only)
         -> OFFER_CREATED -> LOCAL_DESCRIPTION_SET -> AWAITING_ANSWER
         -> REMOTE_DESCRIPTION_SET

and falls into ``FAILED`` on the first error.  There is one HTTP exchange and
no retry.  :meth:`SignalingSession.negotiate` runs the whole sequence and
reports a :class:`SessionResult`; the individual steps are public so hosts
with their own scheduling can drive them one at a time.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional

from .. import EngineConfig
from ..errors import (
    DeviceUnavailable,
    InvalidTransition,
    NegotiationError,
    SessionClosed,
    SignalingError,
)
from ..url import SignalingEndpoint, resolve_endpoint
from .exchange import WhipExchange
from .media import MediaProvider
from .peer import ICECandidate, MediaKind, PeerConnection, SessionDescription, TransceiverDirection

LOG = logging.getLogger(__name__)


class Role(str, Enum):
    PUBLISH = "publish"
    PLAY = "play"
    STREAM = "stream"

    @property
    def direction(self) -> TransceiverDirection:
        if self is Role.PLAY:
            return TransceiverDirection.RECV_ONLY
        return TransceiverDirection.SEND_ONLY

    @property
    def captures_media(self) -> bool:
        return self is not Role.PLAY


class SessionState(str, Enum):
    IDLE = "idle"
    TRANSCEIVERS_CONFIGURED = "transceivers-configured"
    CAPTURING_MEDIA = "capturing-media"
    OFFER_CREATED = "offer-created"
    LOCAL_DESCRIPTION_SET = "local-description-set"
    AWAITING_ANSWER = "awaiting-answer"
    REMOTE_DESCRIPTION_SET = "remote-description-set"
    FAILED = "failed"
    CLOSED = "closed"

    @property
    def terminal(self) -> bool:
        return self in (SessionState.REMOTE_DESCRIPTION_SET, SessionState.FAILED, SessionState.CLOSED)


@dataclass(frozen=True, slots=True)
class SessionResult:
    """
    Outcome of :meth:`SignalingSession.negotiate`.
    """

    session_id: str
    state: SessionState
    endpoint: SignalingEndpoint
    error: Optional[SignalingError] = None
    answer: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state is SessionState.REMOTE_DESCRIPTION_SET

    def to_dict(self) -> dict:
        return {
            "id": self.session_id,
            "state": self.state.value,
            "ok": self.ok,
            "error": str(self.error) if self.error is not None else None,
            "errorType": type(self.error).__name__ if self.error is not None else None,
            "endpoint": self.endpoint.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class SessionEvent:
    """Diagnostic notification delivered to session observers."""

    session_id: str
    kind: str
    state: SessionState
    detail: Any = None


class SignalingSession:
    """
    Drive one peer connection from an empty state to an applied answer.

    The session owns ``peer`` and releases it exactly once, either from
    :meth:`close` or when negotiation fails.  Calls into the peer connection
    are made on ``peer.loop`` when the implementation declares one.
    """

    def __init__(
        self,
        endpoint: SignalingEndpoint,
        role: Role | str,
        peer: PeerConnection,
        *,
        media: Optional[MediaProvider] = None,
        required_media: Iterable[MediaKind | str] = (MediaKind.AUDIO, MediaKind.VIDEO),
        exchange: Optional[WhipExchange] = None,
        session_id: Optional[str] = None,
    ) -> None:
        self.endpoint = endpoint
        self.role = Role(role)
        self.peer = peer
        self.media = media
        self.required_media = frozenset(MediaKind(kind) for kind in required_media)
        self.exchange = exchange or WhipExchange()
        self.session_id = session_id or uuid.uuid4().hex
        self.logger = LOG.getChild(f"session.{endpoint.transaction_id}")

        self.state = SessionState.IDLE
        self.history: List[SessionState] = [SessionState.IDLE]
        self.error: Optional[SignalingError] = None
        self.offer: Optional[SessionDescription] = None
        self.local_description: Optional[SessionDescription] = None
        self.answer: Optional[str] = None
        self.candidates: List[ICECandidate] = []
        self.ice_connection_state: Optional[str] = None
        self.remote_tracks: List[Any] = []

        self._tracks: List[Any] = []
        self._exchange_task: Optional[asyncio.Task[str]] = None
        self._closed = False
        self._peer_released = False

        self._observer_counter = 0
        self._observers: Dict[int, Callable[[SessionEvent], None]] = {}
        self._peer_tokens = [
            peer.on_ice_candidate(self._handle_candidate),
            peer.on_ice_connection_state_change(self._handle_ice_state),
            peer.on_track(self._handle_remote_track),
        ]

    @classmethod
    def from_url(
        cls,
        url: str,
        role: Role | str,
        peer: PeerConnection,
        *,
        config: Optional[EngineConfig] = None,
        **kwargs: Any,
    ) -> "SignalingSession":
        """
        Build a session for a raw locator using the defaults in ``config``.

        Raises :class:`~rtcengine.errors.MalformedUrl` for unusable locators.
        """

        config = config or EngineConfig()
        role = Role(role)
        endpoint = resolve_endpoint(url, config.path_for(role), config.default_schema)
        if "exchange" not in kwargs:
            kwargs["exchange"] = WhipExchange(timeout=config.exchange_timeout)
        return cls(endpoint, role, peer, **kwargs)

    # ------------------------------------------------------------------ observers

    def subscribe(self, callback: Callable[[SessionEvent], None]) -> int:
        if not callable(callback):
            raise TypeError("callback must be callable")
        self._observer_counter += 1
        token = self._observer_counter
        self._observers[token] = callback
        self._deliver(callback, token, SessionEvent(self.session_id, "state", self.state))
        return token

    def unsubscribe(self, token: int) -> None:
        self._observers.pop(token, None)

    def _deliver(self, callback: Callable[[SessionEvent], None], token: int, event: SessionEvent) -> None:
        try:
            callback(event)
        except Exception:  # pragma: no cover - observer failures must not alter negotiation
            self.logger.exception("Session observer %s failed.", token)

    def _notify(self, kind: str, detail: Any = None) -> None:
        event = SessionEvent(self.session_id, kind, self.state, detail)
        for token, callback in list(self._observers.items()):
            self._deliver(callback, token, event)

    def _handle_candidate(self, candidate: ICECandidate) -> None:
        self.candidates.append(candidate)
        self.logger.debug("ICE candidate %s", candidate.candidate)
        self._notify("icecandidate", candidate)

    def _handle_ice_state(self, state: str) -> None:
        self.ice_connection_state = state
        self.logger.info("ICE connection state %s", state)
        self._notify("iceconnectionstate", state)

    def _handle_remote_track(self, track: Any) -> None:
        self.remote_tracks.append(track)
        self.logger.info("Remote %s track id=%s", getattr(track, "kind", "?"), getattr(track, "id", None))
        self._notify("track", track)

    # ------------------------------------------------------------------ helpers

    def _transition(self, state: SessionState) -> None:
        previous = self.state
        self.state = state
        self.history.append(state)
        self.logger.info("%s -> %s", previous.value, state.value)
        self._notify("state", {"from": previous.value, "to": state.value})

    def _require(self, *states: SessionState) -> None:
        if self._closed:
            raise SessionClosed(f"session {self.session_id} is closed")
        if self.state not in states:
            expected = ", ".join(state.value for state in states)
            raise InvalidTransition(f"expected state {expected}, current {self.state.value}")

    @contextlib.asynccontextmanager
    async def _step(self) -> AsyncIterator[None]:
        try:
            yield
        except (InvalidTransition, SessionClosed):
            raise
        except SignalingError as exc:
            await self._fail(exc)
            raise

    async def _fail(self, exc: SignalingError) -> None:
        if self.state.terminal:
            return
        self.error = exc
        self.logger.warning("Negotiation failed in %s: %s", self.state.value, exc)
        self._transition(SessionState.FAILED)
        await self._release()

    async def _call_on_peer_loop(self, func: Callable[..., Any], *args: Any) -> Any:
        """
        Run ``func`` on the loop the peer connection belongs to.
        """

        async def invoke() -> Any:
            result = func(*args)
            if inspect.isawaitable(result):
                result = await result
            return result

        loop = getattr(self.peer, "loop", None)
        if loop is None or loop is asyncio.get_running_loop():
            return await invoke()
        return await asyncio.wrap_future(asyncio.run_coroutine_threadsafe(invoke(), loop))

    async def _on_peer(self, step: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            result = await self._call_on_peer_loop(func, *args)
        except SignalingError:
            raise
        except Exception as exc:
            raise NegotiationError(step, str(exc) or type(exc).__name__) from exc
        if self._closed:
            raise SessionClosed(f"session {self.session_id} closed during {step}")
        return result

    # ------------------------------------------------------------------ steps

    async def configure_transceivers(self) -> None:
        """Declare one audio and one video transceiver with the role's direction."""
        self._require(SessionState.IDLE)
        async with self._step():
            direction = self.role.direction
            for kind in (MediaKind.AUDIO, MediaKind.VIDEO):
                await self._on_peer("addTransceiver", self.peer.add_transceiver, kind, direction)
                self.logger.debug("Added %s transceiver (%s)", kind.value, direction.value)
            self._transition(SessionState.TRANSCEIVERS_CONFIGURED)

    async def acquire_local_media(self) -> List[Any]:
        """
        Bind local video then audio to the outbound transceivers.

        A kind outside ``required_media`` that cannot be opened is skipped.
        """

        self._require(SessionState.TRANSCEIVERS_CONFIGURED)
        if not self.role.captures_media:
            raise InvalidTransition(f"role {self.role.value} does not capture media")
        self._transition(SessionState.CAPTURING_MEDIA)
        async with self._step():
            for kind in (MediaKind.VIDEO, MediaKind.AUDIO):
                try:
                    if self.media is None:
                        raise DeviceUnavailable(kind.value, "no media provider")
                    track = await self.media.acquire(kind)
                except DeviceUnavailable as exc:
                    if kind in self.required_media:
                        raise
                    self.logger.warning("Continuing without %s: %s", kind.value, exc.reason)
                    continue
                if self._closed:
                    raise SessionClosed(f"session {self.session_id} closed during capture")
                self._tracks.append(track)
                await self._on_peer("addTrack", self.peer.add_track, track)
                self.logger.info("Added %s track %s", kind.value, getattr(track, "id", None))
                self._notify("trackadded", track)
        return list(self._tracks)

    async def create_offer(self) -> SessionDescription:
        if self.role.captures_media:
            self._require(SessionState.CAPTURING_MEDIA)
        else:
            self._require(SessionState.TRANSCEIVERS_CONFIGURED)
        async with self._step():
            offer = await self._on_peer("createOffer", self.peer.create_offer)
            if offer is None or not getattr(offer, "sdp", None):
                raise NegotiationError("createOffer", "empty offer")
            self.offer = offer
            self.logger.debug("Offer created:\n%s", offer.sdp)
            self._transition(SessionState.OFFER_CREATED)
        return offer

    async def set_local_description(self, offer: Optional[SessionDescription] = None) -> SessionDescription:
        """
        Commit ``offer`` locally.  Returns the committed description, which can
        carry candidates gathered while committing.
        """

        self._require(SessionState.OFFER_CREATED)
        offer = offer or self.offer
        async with self._step():
            committed = await self._on_peer("setLocalDescription", self.peer.set_local_description, offer)
            self.local_description = committed or offer
            self._transition(SessionState.LOCAL_DESCRIPTION_SET)
        return self.local_description

    async def exchange_description(self, offer: Optional[SessionDescription] = None) -> str:
        """
        POST the offer to the endpoint and return the answer SDP.
        """

        self._require(SessionState.LOCAL_DESCRIPTION_SET)
        offer = offer or self.local_description
        self._transition(SessionState.AWAITING_ANSWER)
        self.logger.info("Exchanging SDP with %s", self.endpoint.api_url)
        async with self._step():
            self._exchange_task = asyncio.ensure_future(
                self.exchange.exchange(self.endpoint.api_url, offer.sdp)
            )
            try:
                answer = await self._exchange_task
            except asyncio.CancelledError:
                if self._closed:
                    raise SessionClosed(f"session {self.session_id} closed while awaiting answer") from None
                raise
            finally:
                self._exchange_task = None
            if self._closed:
                self.logger.info("Discarding answer that arrived after teardown")
                raise SessionClosed(f"session {self.session_id} closed while awaiting answer")
            self.answer = answer
        return answer

    async def set_remote_description(self, answer_sdp: Optional[str] = None) -> None:
        self._require(SessionState.AWAITING_ANSWER)
        answer_sdp = answer_sdp if answer_sdp is not None else self.answer
        if answer_sdp is None:
            raise InvalidTransition("no answer to apply")
        async with self._step():
            description = SessionDescription(type="answer", sdp=answer_sdp)
            await self._on_peer("setRemoteDescription", self.peer.set_remote_description, description)
            self._transition(SessionState.REMOTE_DESCRIPTION_SET)

    async def negotiate(self) -> SessionResult:
        """
        Run every step in order and report the outcome.

        Protocol failures end in ``FAILED`` with the typed error on the result,
        and anything else is wrapped in :class:`NegotiationError` named after
        the state it interrupted.  A teardown from another task ends in
        ``CLOSED``.
        """

        self._require(SessionState.IDLE)
        self.logger.info("Starting %s via %s", self.role.value, self.endpoint.api_url)
        try:
            await self.configure_transceivers()
            if self.role.captures_media:
                await self.acquire_local_media()
            offer = await self.create_offer()
            local = await self.set_local_description(offer)
            answer = await self.exchange_description(local)
            await self.set_remote_description(answer)
        except SessionClosed:
            self.logger.info("Negotiation abandoned after teardown")
        except SignalingError as exc:
            await self._fail(exc)
        except Exception as exc:
            self.logger.exception("Unexpected error in %s", self.state.value)
            failure = NegotiationError(self.state.value, f"{type(exc).__name__}: {exc}")
            failure.__cause__ = exc
            await self._fail(failure)
        return self.result()

    def result(self) -> SessionResult:
        return SessionResult(
            session_id=self.session_id,
            state=self.state,
            endpoint=self.endpoint,
            error=self.error,
            answer=self.answer,
        )

    def snapshot(self) -> dict:
        payload = self.result().to_dict()
        payload.update(
            {
                "role": self.role.value,
                "history": [state.value for state in self.history],
                "iceConnectionState": self.ice_connection_state,
                "candidates": [candidate.to_dict() for candidate in self.candidates],
                "closed": self._closed,
            }
        )
        return payload

    # ------------------------------------------------------------------ teardown

    async def _release(self) -> None:
        if self._peer_released:
            return
        self._peer_released = True
        for token in self._peer_tokens:
            self.peer.remove_listener(token)
        for track in self._tracks:
            stop = getattr(track, "stop", None)
            if stop is None:
                continue
            try:
                stop()
            except Exception:  # pragma: no cover - defensive
                self.logger.exception("Failed to stop local track %s", getattr(track, "id", None))
        try:
            await self._call_on_peer_loop(self.peer.close)
        except Exception:
            self.logger.exception("Failed to close peer connection cleanly.")
        self.logger.debug("Peer connection released")

    async def close(self) -> None:
        """
        Tear the session down.  Safe to call more than once.
        """

        if self._closed:
            return
        self._closed = True
        if self._exchange_task is not None and not self._exchange_task.done():
            self._exchange_task.cancel()
        if not self.state.terminal:
            self._transition(SessionState.CLOSED)
        await self._release()

    async def __aenter__(self) -> "SignalingSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


__all__ = ["Role", "SessionEvent", "SessionResult", "SessionState", "SignalingSession"]
