import logging
from datetime import datetime
from html import escape
from typing import List, Optional, Sequence

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from trackservice.api.deps import get_app_settings, get_store
from trackservice.config import Settings
from trackservice.crud.events import EventStore
from trackservice.models.event import TrackEvent
from trackservice.schemas.event import DeleteTracksResponse, TracksResponse


logger = logging.getLogger(__name__)

router = APIRouter(tags=["tracks"])

_COLUMNS = ("Event", "Tags", "URL", "Page Title", "Timestamp")


def _internal_error() -> JSONResponse:
    return JSONResponse(
        status_code=500, content={"success": False, "error": "Internal server error"}
    )


def _query_events(
    store: EventStore, settings: Settings, limit: Optional[int], event: Optional[str]
) -> List[TrackEvent]:
    if limit is None:
        limit = settings.tracks_limit
    return store.get_events(event=event or None, limit=limit)


@router.get("/tracks", response_model=TracksResponse)
def list_tracks(
    limit: Optional[int] = Query(None, ge=0),
    event: Optional[str] = None,
    store: EventStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    """Return stored events, newest first, optionally filtered by event name."""
    try:
        events = _query_events(store, settings, limit, event)
    except Exception:
        logger.exception("Error retrieving tracking events")
        return _internal_error()
    return {
        "success": True,
        "count": len(events),
        "events": [record.to_dict() for record in events],
    }


@router.delete("/tracks", response_model=DeleteTracksResponse)
def delete_tracks(store: EventStore = Depends(get_store)):
    try:
        deleted = store.delete_all_events()
    except Exception:
        logger.exception("Error deleting tracking events")
        return _internal_error()
    logger.info("Deleted %d tracking events", deleted)
    return {"success": True, "deletedCount": deleted}


def format_timestamp(ts: float) -> str:
    try:
        return datetime.fromtimestamp(ts / 1000).strftime("%Y-%m-%d %H:%M:%S")
    except (OverflowError, OSError, ValueError):
        return "Invalid Date"


def format_tags(tags: Sequence[str]) -> str:
    if not tags:
        return "-"
    return ", ".join(tags)


def _message_row(message: str) -> str:
    return f'<tr><td colspan="{len(_COLUMNS)}" style="text-align:center">{escape(message)}</td></tr>'


def render_table(events: Sequence[TrackEvent], error: Optional[str] = None) -> str:
    if error is not None:
        rows = [_message_row("Failed to load tracking events")]
    elif not events:
        rows = [_message_row("No tracking events found")]
    else:
        rows = [
            "<tr>"
            f"<td>{escape(record.event)}</td>"
            f'<td class="tags">{escape(format_tags(record.tags))}</td>'
            f"<td>{escape(record.url)}</td>"
            f"<td>{escape(record.title)}</td>"
            f'<td class="timestamp">{escape(format_timestamp(record.ts))}</td>'
            "</tr>"
            for record in events
        ]
    header = "".join(f"<th>{name}</th>" for name in _COLUMNS)
    error_block = ""
    if error is not None:
        error_block = f'<div id="error-container">{escape(error)}</div>'
    return (
        "<!DOCTYPE html>\n"
        '<html><head><meta charset="utf-8"><title>Tracking events</title></head>'
        "<body><h1>Tracking events</h1>"
        '<p><a id="refresh-button" href="">Refresh</a></p>'
        f"{error_block}"
        f'<table id="tracks-table"><thead><tr>{header}</tr></thead>'
        f'<tbody id="tracks-body">{"".join(rows)}</tbody></table>'
        "</body></html>"
    )


@router.get("/tracks/table", response_class=HTMLResponse)
def tracks_table(
    limit: Optional[int] = Query(None, ge=0),
    event: Optional[str] = None,
    store: EventStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> HTMLResponse:
    try:
        events = _query_events(store, settings, limit, event)
    except Exception as exc:
        logger.exception("Error rendering tracking events table")
        return HTMLResponse(
            render_table([], error=f"Error fetching tracks: {exc}"), status_code=500
        )
    return HTMLResponse(render_table(events))


@router.get("/", include_in_schema=False)
def index() -> RedirectResponse:
    return RedirectResponse("/tracks/table")
