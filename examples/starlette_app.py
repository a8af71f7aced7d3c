#!/usr/bin/env python3
"""Example: page-view counter backed by sessionvault

Run with:
    SESSIONVAULT_SESSION_KEYS='["<key>"]' uvicorn examples.starlette_app:app

Generate a key with:
    python -c 'from sessionvault.security.crypto import generate_key; print(generate_key())'
"""

import contextlib

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from sessionvault.config import get_settings
from sessionvault.infra.db.session import get_engine_manager
from sessionvault.infra.observability.logging import setup_logging
from sessionvault.infra.session.store import SQLSessionStore


async def counter(request: Request) -> JSONResponse:
    store: SQLSessionStore = request.app.state.sessions
    session = await store.get(request, "sid")
    session.values["views"] = session.values.get("views", 0) + 1

    response = JSONResponse({"views": session.values["views"], "session_id": session.id})
    await store.save_all(request, response)
    return response


async def logout(request: Request) -> JSONResponse:
    store: SQLSessionStore = request.app.state.sessions
    session = await store.get(request, "sid")
    session.options.max_age = -1

    response = JSONResponse({"logged_out": True})
    await session.save(request, response)
    return response


@contextlib.asynccontextmanager
async def lifespan(app: Starlette):
    settings = get_settings()
    setup_logging(settings.log_level, json_format=settings.log_format == "json")

    manager = get_engine_manager(settings)
    await manager.init()
    app.state.sessions = await SQLSessionStore.from_settings(settings, manager.engine)
    try:
        yield
    finally:
        await app.state.sessions.close()
        await manager.close()


app = Starlette(
    routes=[Route("/", counter), Route("/logout", logout, methods=["POST"])],
    lifespan=lifespan,
)
