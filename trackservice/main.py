import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles

from trackservice import APP_NAME
from trackservice.api import track, tracks
from trackservice.config import Settings, get_settings
from trackservice.crud.events import EventStore
from trackservice.logs import configure_logging


def _lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.store is None
        if owned:
            app.state.store = EventStore.from_settings(settings)
        try:
            yield
        finally:
            if owned:
                app.state.store.close()
                app.state.store = None

    return lifespan


def _base_app(title: str, settings: Settings, store: Optional[EventStore]) -> FastAPI:
    configure_logging(settings)
    app = FastAPI(title=title, lifespan=_lifespan(settings))
    app.state.settings = settings
    app.state.store = store
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.get("/healthz", response_class=PlainTextResponse)
    def healthz() -> str:
        return "ok"

    return app


def create_tracker_app(
    settings: Optional[Settings] = None, store: Optional[EventStore] = None
) -> FastAPI:
    """Ingestion server: receives batches on ``POST /track``."""
    settings = settings or get_settings()
    app = _base_app(APP_NAME, settings, store)
    app.include_router(track.router)
    return app


def create_query_app(
    settings: Optional[Settings] = None, store: Optional[EventStore] = None
) -> FastAPI:
    """Query server: ``/tracks`` API, the HTML table and optional static files."""
    settings = settings or get_settings()
    app = _base_app(f"{APP_NAME}-query", settings, store)
    app.include_router(tracks.router)
    if os.path.isdir(settings.static_dir):
        app.mount("/static", StaticFiles(directory=settings.static_dir), name="static")
    return app


app = create_tracker_app()
query_app = create_query_app()
