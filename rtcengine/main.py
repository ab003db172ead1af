"""
Engine process entrypoint.

Without ``--url`` the control API is served with uvicorn.  With ``--url`` a
single session is negotiated in the foreground and held open until
interrupted, which is handy for checking a media server by hand::

    python -m rtcengine.main --url "http://localhost:1985/rtc/v1/whip-play/?app=live&stream=livestream" --role play
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional

from . import EngineConfig
from .api.server import create_app
from .api.state import SessionRegistry, aiortc_media_factory, aiortc_peer_factory
from .config import ProfileNotFound, load_config, profiles_path
from .errors import MalformedUrl
from .rtc.exchange import WhipExchange
from .rtc.session import Role, SignalingSession
from .url import resolve_endpoint
from .utils.logging import configure_logging

LOG = logging.getLogger(__name__)

EXIT_FAILED = 1
EXIT_BAD_INPUT = 2
EXIT_UNAVAILABLE = 3


async def serve(config: EngineConfig, host: str = "127.0.0.1", port: int = 8080) -> None:
    """
    Run the control API inside an asyncio loop.

    Parameters
    ----------
    config:
        Signaling defaults for every session started through the API.
    host, port:
        Bind address for the FastAPI/uvicorn server.
    """

    import uvicorn

    app = create_app(registry=SessionRegistry(config))
    server_config = uvicorn.Config(
        app=app,
        host=host,
        port=port,
        log_config=None,
        log_level="info",
        reload=False,
    )
    server = uvicorn.Server(config=server_config)
    await server.serve()


async def negotiate_once(config: EngineConfig, url: str, role: Role) -> int:
    """
    Negotiate ``url`` and keep the connection until cancelled.

    Returns a process exit code.
    """

    try:
        endpoint = resolve_endpoint(url, config.path_for(role), config.default_schema)
    except MalformedUrl as exc:
        LOG.error("%s", exc)
        return EXIT_BAD_INPUT

    try:
        peer = aiortc_peer_factory(config)
        media = aiortc_media_factory(config) if role.captures_media else None
    except ImportError as exc:
        LOG.error("%s", exc)
        return EXIT_UNAVAILABLE

    session = SignalingSession(
        endpoint,
        role,
        peer,
        media=media,
        exchange=WhipExchange(timeout=config.exchange_timeout),
    )

    async with session:
        result = await session.negotiate()
        if not result.ok:
            LOG.error("Negotiation with %s failed: %s", result.endpoint.api_url, result.error)
            return EXIT_FAILED
        LOG.info("Answer applied; holding session %s open (Ctrl+C to stop)", result.session_id)
        await asyncio.Event().wait()
    return 0


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="rtc-engine signaling server")
    parser.add_argument("--profile", default="default", help="profile to load from profiles.yaml")
    parser.add_argument("--host", default="127.0.0.1", help="bind host for the API server")
    parser.add_argument("--port", type=int, default=8080, help="bind port for the API server")
    parser.add_argument("--url", help="negotiate this stream url once instead of serving the API")
    parser.add_argument(
        "--role",
        default=Role.PUBLISH.value,
        choices=[role.value for role in Role],
        help="session role used with --url",
    )
    parser.add_argument("--log-level", default=None, help="logging level (default: INFO)")
    return parser.parse_args(argv)


def run(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    try:
        config = load_config(args.profile)
    except ProfileNotFound:
        LOG.error("Profile %r is not defined in %s", args.profile, profiles_path())
        return EXIT_BAD_INPUT

    try:
        if args.url:
            return asyncio.run(negotiate_once(config, args.url, Role(args.role)))
        asyncio.run(serve(config=config, host=args.host, port=args.port))
    except KeyboardInterrupt:
        LOG.info("Interrupted by user.")
    return 0


if __name__ == "__main__":
    raise SystemExit(run())
