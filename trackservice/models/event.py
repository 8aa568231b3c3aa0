import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Tuple, Union


@dataclass(frozen=True)
class TrackEvent:
    """Domain model for one recorded user action."""

    event: str
    tags: Tuple[str, ...] = field(default_factory=tuple)
    url: str = ""
    title: str = ""
    ts: Union[int, float] = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event,
            "tags": list(self.tags),
            "url": self.url,
            "title": self.title,
            "ts": self.ts,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrackEvent":
        return cls(
            event=data["event"],
            tags=tuple(data.get("tags") or ()),
            url=data["url"],
            title=data["title"],
            ts=data["ts"],
        )


def dump_events(events: Iterable[TrackEvent]) -> str:
    """Serialize a batch as the compact JSON array posted to the tracker."""
    return json.dumps(
        [event.to_dict() for event in events], separators=(",", ":"), ensure_ascii=False
    )
