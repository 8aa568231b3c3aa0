import json
import logging
from typing import Any, List

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse

from trackservice.api.deps import get_store
from trackservice.crud.events import EventStore
from trackservice.models.event import TrackEvent
from trackservice.schemas.event import FieldError
from trackservice.schemas.validation import validate_track_events


logger = logging.getLogger(__name__)

router = APIRouter(tags=["track"])

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


class _PayloadError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def _unprocessable(errors: List[FieldError]) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"success": False, "errors": [error.model_dump() for error in errors]},
    )


async def _read_payload(request: Request) -> Any:
    content_type = request.headers.get("content-type", "").lower()
    if content_type.startswith(_FORM_TYPES):
        form = await request.form()
        raw = form.get("events")
        if raw is None:
            raise _PayloadError("Missing events parameter")
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            raise _PayloadError("Invalid JSON in events parameter") from None
    try:
        return await request.json()
    except ValueError:
        raise _PayloadError("Invalid JSON body") from None


def persist_events(store: EventStore, events: List[TrackEvent]) -> None:
    try:
        inserted = store.insert_events(events)
    except Exception:
        logger.exception("Error inserting %d tracking events", len(events))
        return
    logger.info("Successfully inserted %d events", inserted)


@router.post("/track")
async def track(
    request: Request,
    background_tasks: BackgroundTasks,
    store: EventStore = Depends(get_store),
) -> JSONResponse:
    """Receive a batch of tracking events.

    Accepts a form field ``events`` holding a JSON array, which lets browsers
    post without a CORS preflight, or a raw JSON array. The response depends
    only on validation; the batch is written to the store after the response
    has been sent.
    """
    try:
        try:
            payload = await _read_payload(request)
        except _PayloadError as exc:
            return _unprocessable([FieldError(field="events", message=exc.message)])

        result = validate_track_events(payload)
        if not result.valid:
            return _unprocessable(result.errors)

        if result.events:
            background_tasks.add_task(persist_events, store, result.events)
        return JSONResponse(
            status_code=200, content={"success": True, "count": len(result.events)}
        )
    except Exception:
        logger.exception("Error processing tracking events")
        return JSONResponse(
            status_code=500, content={"success": False, "error": "Internal server error"}
        )
