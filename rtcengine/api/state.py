"""
Session registry shared by the control API.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections import OrderedDict
from typing import Callable, Dict, Iterable, List, Optional

from .. import EngineConfig
from ..rtc.exchange import WhipExchange
from ..rtc.media import MediaProvider
from ..rtc.peer import MediaKind, PeerConnection
from ..rtc.session import Role, SessionResult, SessionState, SignalingSession
from ..url import resolve_endpoint

LOG = logging.getLogger(__name__)

PeerFactory = Callable[[EngineConfig], PeerConnection]
MediaFactory = Callable[[EngineConfig], Optional[MediaProvider]]

FINISHED_LIMIT = 32


class SessionNotFound(KeyError):
    """Raised when an unknown session id is requested."""


def aiortc_peer_factory(config: EngineConfig) -> PeerConnection:
    from ..rtc.aiortc_backend import AiortcPeerConnection

    return AiortcPeerConnection(config.ice_servers)


def aiortc_media_factory(config: EngineConfig) -> Optional[MediaProvider]:
    if not config.media_source:
        return None
    from ..rtc.aiortc_backend import MediaPlayerProvider

    return MediaPlayerProvider(
        config.media_source,
        format=config.media_format,
        options=config.media_options,
    )


class SessionRegistry:
    """
    Own every session started through the API and the task negotiating it.

    Sessions that end failed or closed leave ``sessions`` when their task
    finishes.  The last ``finished_limit`` of them stay readable through
    :meth:`get` so a client polling for the outcome still finds the error.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        *,
        peer_factory: Optional[PeerFactory] = None,
        media_factory: Optional[MediaFactory] = None,
        exchange: Optional[WhipExchange] = None,
        finished_limit: int = FINISHED_LIMIT,
    ) -> None:
        self.config = config or EngineConfig()
        self.peer_factory = peer_factory or aiortc_peer_factory
        self.media_factory = media_factory or aiortc_media_factory
        self.exchange = exchange
        self.finished_limit = finished_limit
        self.sessions: Dict[str, SignalingSession] = {}
        self.finished: "OrderedDict[str, SignalingSession]" = OrderedDict()
        self._tasks: Dict[str, asyncio.Task[SessionResult]] = {}

    @property
    def active_profile(self) -> str:
        return self.config.profile

    async def start(
        self,
        url: str,
        role: Role | str,
        *,
        required_media: Optional[Iterable[MediaKind | str]] = None,
        wait: bool = False,
    ) -> SignalingSession:
        """
        Create a session for ``url`` and start negotiating it.

        The locator is parsed before any peer connection is created, so a
        :class:`~rtcengine.errors.MalformedUrl` leaves nothing to clean up.
        """

        role = Role(role)
        endpoint = resolve_endpoint(url, self.config.path_for(role), self.config.default_schema)
        peer = self.peer_factory(self.config)
        media = self.media_factory(self.config) if role.captures_media else None
        kwargs = {}
        if required_media is not None:
            kwargs["required_media"] = required_media
        session = SignalingSession(
            endpoint,
            role,
            peer,
            media=media,
            exchange=self.exchange or WhipExchange(timeout=self.config.exchange_timeout),
            **kwargs,
        )
        self.sessions[session.session_id] = session

        task = asyncio.create_task(session.negotiate(), name=f"negotiate-{session.session_id[:8]}")
        self._tasks[session.session_id] = task
        task.add_done_callback(functools.partial(self._on_task_done, session.session_id))
        LOG.info("Session %s started (%s %s)", session.session_id, role.value, endpoint.api_url)
        if wait:
            await task
        return session

    def _on_task_done(self, session_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(session_id, None)
        if not task.cancelled() and task.exception() is not None:
            LOG.error("Negotiation task crashed", exc_info=task.exception())

        session = self.sessions.get(session_id)
        if session is None or session.state not in (SessionState.FAILED, SessionState.CLOSED):
            return
        del self.sessions[session_id]
        self.finished[session_id] = session
        while len(self.finished) > self.finished_limit:
            self.finished.popitem(last=False)
        LOG.debug("Session %s retired in state %s", session_id, session.state.value)

    def get(self, session_id: str) -> SignalingSession:
        session = self.sessions.get(session_id) or self.finished.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    async def stop(self, session_id: str) -> SignalingSession:
        session = self.get(session_id)
        await session.close()
        task = self._tasks.pop(session_id, None)
        if task is not None and not task.done():
            await asyncio.wait({task})
        self.sessions.pop(session_id, None)
        self.finished.pop(session_id, None)
        LOG.info("Session %s stopped in state %s", session_id, session.state.value)
        return session

    async def shutdown(self) -> None:
        for session_id in list(self.sessions):
            await self.stop(session_id)
        self.finished.clear()

    def snapshot(self) -> List[dict]:
        return [session.snapshot() for session in self.sessions.values()]


__all__ = ["SessionNotFound", "SessionRegistry", "aiortc_media_factory", "aiortc_peer_factory"]
