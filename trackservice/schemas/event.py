import math
from typing import Any, Dict, List, Union
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator

from trackservice.models.event import TrackEvent


class TrackEventRecord(BaseModel):
    """Structural schema for one event posted to ``/track``.

    Unknown keys are ignored so only the persisted shape reaches the store.
    """

    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "example": {
                "event": "click",
                "tags": ["nav", "home"],
                "url": "https://example.com/",
                "title": "Home",
                "ts": 1700000000000,
            }
        },
    )

    event: StrictStr = Field(min_length=1)
    tags: List[StrictStr]
    url: StrictStr
    title: StrictStr = Field(min_length=1)
    ts: Union[int, float]

    @field_validator("url")
    @classmethod
    def _absolute_url(cls, value: str) -> str:
        parts = urlsplit(value)
        if not parts.scheme or not (parts.netloc or parts.path):
            raise ValueError("URL is invalid")
        return value

    @field_validator("ts", mode="before")
    @classmethod
    def _finite_number(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("Timestamp must be a number")
        if not math.isfinite(value):
            raise ValueError("Timestamp must be a valid number")
        return value

    def to_event(self) -> TrackEvent:
        return TrackEvent(
            event=self.event,
            tags=tuple(self.tags),
            url=self.url,
            title=self.title,
            ts=self.ts,
        )


class FieldError(BaseModel):
    field: str
    message: str


class TracksResponse(BaseModel):
    success: bool
    count: int
    events: List[Dict[str, Any]]


class DeleteTracksResponse(BaseModel):
    success: bool
    deletedCount: int
