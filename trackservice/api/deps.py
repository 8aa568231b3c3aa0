from fastapi import Request

from trackservice.config import Settings
from trackservice.crud.events import EventStore


def get_store(request: Request) -> EventStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise RuntimeError("Event store is not initialized")
    return store


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
