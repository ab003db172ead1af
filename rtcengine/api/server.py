"""
FastAPI control surface for rtc-engine.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .. import EngineConfig
from ..config import load_profiles
from ..errors import MalformedUrl
from ..rtc.session import Role
from ..url import resolve_endpoint
from . import schemas
from .state import SessionNotFound, SessionRegistry

LOG = logging.getLogger(__name__)


def create_app(
    *,
    registry: Optional[SessionRegistry] = None,
    config: Optional[EngineConfig] = None,
    lifespan: Optional[Callable[..., object]] = None,
) -> FastAPI:
    sessions = registry or SessionRegistry(config)
    engine_config = sessions.config

    @asynccontextmanager
    async def app_lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            if lifespan is None:
                yield
            else:
                async with lifespan(app):  # type: ignore[attr-defined]
                    yield
        finally:
            await sessions.shutdown()

    app = FastAPI(title="rtc-engine API", lifespan=app_lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.registry = sessions

    @app.get("/healthz")
    async def healthz() -> dict:
        return {"status": "ok", "profile": sessions.active_profile, "sessions": len(sessions.sessions)}

    @app.get("/profiles")
    async def list_profiles() -> dict:
        return {"active": engine_config.to_dict(), "profiles": load_profiles()}

    @app.post("/api/urls/parse")
    async def parse_url(payload: schemas.ParseUrlRequest) -> dict:
        role = Role(payload.role)
        try:
            endpoint = resolve_endpoint(
                payload.url,
                engine_config.path_for(role),
                engine_config.default_schema,
            )
        except MalformedUrl as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"descriptor": endpoint.descriptor.to_dict(), "endpoint": endpoint.to_dict()}

    @app.post("/api/sessions")
    async def start_session(payload: schemas.SessionRequest) -> dict:
        try:
            session = await sessions.start(
                payload.url,
                payload.role,
                required_media=payload.required_media,
                wait=payload.wait,
            )
        except MalformedUrl as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except ImportError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return {"session": session.snapshot()}

    @app.get("/api/sessions")
    async def list_sessions() -> dict:
        return {"sessions": sessions.snapshot()}

    @app.get("/api/sessions/{session_id}")
    async def get_session(session_id: str) -> dict:
        try:
            session = sessions.get(session_id)
        except SessionNotFound:
            raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found") from None
        return {"session": session.snapshot()}

    @app.delete("/api/sessions/{session_id}")
    async def stop_session(session_id: str) -> dict:
        try:
            session = await sessions.stop(session_id)
        except SessionNotFound:
            raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found") from None
        return {"session": session.snapshot()}

    return app
