from dataclasses import dataclass, field
from typing import Any, List, Sequence, Union

from pydantic import ValidationError

from trackservice.models.event import TrackEvent
from trackservice.schemas.event import FieldError, TrackEventRecord


@dataclass
class ValidationResult:
    events: List[TrackEvent] = field(default_factory=list)
    errors: List[FieldError] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def _field_path(prefix: str, loc: Sequence[Union[str, int]]) -> str:
    if not loc:
        return f"{prefix}.data"
    path = prefix
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}"
    return path


def validate_track_events(payload: Any) -> ValidationResult:
    """Validate a decoded batch.

    The batch is accepted only when every record is valid. Each invalid record
    contributes an ``events[i]`` entry followed by its field-level errors,
    for example ``events[0].url``.
    """
    result = ValidationResult()
    if not isinstance(payload, list):
        result.errors.append(FieldError(field="events", message="Events must be an array"))
        return result

    for index, item in enumerate(payload):
        prefix = f"events[{index}]"
        try:
            record = TrackEventRecord.model_validate(item)
        except ValidationError as exc:
            result.errors.append(
                FieldError(field=prefix, message=f"Invalid event at index {index}")
            )
            for error in exc.errors():
                result.errors.append(
                    FieldError(field=_field_path(prefix, error["loc"]), message=error["msg"])
                )
            continue
        result.events.append(record.to_event())

    if result.errors:
        result.events = []
    return result
