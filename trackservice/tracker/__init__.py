from typing import Optional

from trackservice.config import Settings, get_settings
from trackservice.tracker.buffer import RETRY_DELAY_MS, Environment, Tracker
from trackservice.tracker.environment import AsyncioEnvironment


def create_tracker(environment: Environment, settings: Optional[Settings] = None) -> Tracker:
    """Build a tracker from the configured endpoint and flush thresholds."""
    settings = settings or get_settings()
    return Tracker(
        environment,
        endpoint=settings.tracker_endpoint,
        min_events_to_send=settings.min_events_to_send,
        min_time_between_sends=settings.min_time_between_sends,
    )


__all__ = ["AsyncioEnvironment", "Environment", "RETRY_DELAY_MS", "Tracker", "create_tracker"]
