import logging
from functools import partial
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple

from trackservice.models.event import TrackEvent


logger = logging.getLogger(__name__)

RETRY_DELAY_MS = 1000


class TimerHandle(Protocol):
    def cancel(self) -> Any:
        ...


class Environment(Protocol):
    """Host capabilities the tracker needs: page context, clock, timers, transport."""

    def current_url(self) -> str:
        ...

    def current_title(self) -> str:
        ...

    def now(self) -> float:
        """Milliseconds since the epoch."""

    def schedule_timer(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        ...

    def send(
        self, endpoint: str, events: Sequence[TrackEvent], done: Callable[[bool], None]
    ) -> None:
        """Start delivering ``events``; ``done`` receives the outcome once."""

    def send_best_effort(self, endpoint: str, events: Sequence[TrackEvent]) -> None:
        """Fire-and-forget delivery used at teardown."""

    def add_teardown_listener(self, callback: Callable[[], None]) -> None:
        ...


class Tracker:
    """Buffers track events and flushes them in batches.

    A flush starts as soon as ``min_events_to_send`` events are pending, or
    once ``min_time_between_sends`` milliseconds have passed since the last
    flush started. A failed batch goes back to the head of the buffer and the
    next attempt waits ``RETRY_DELAY_MS``. When the environment tears down,
    whatever is still buffered is handed once to the best-effort transport.

    All methods must be called from the environment's single thread of
    control; the ``sending`` flag is the only guard against overlapping sends.
    The buffer is not capped, so it keeps growing while the endpoint is
    unreachable.
    """

    def __init__(
        self,
        environment: Environment,
        endpoint: str,
        min_events_to_send: int = 3,
        min_time_between_sends: float = 1000,
    ):
        self._env = environment
        self.endpoint = endpoint
        self.min_events_to_send = min_events_to_send
        self.min_time_between_sends = min_time_between_sends

        self._buffer: List[TrackEvent] = []
        self._sending = False
        self._last_send_time: float = 0
        self._timer: Optional[TimerHandle] = None
        self._torn_down = False

        environment.add_teardown_listener(self._on_teardown)

    @property
    def pending(self) -> Tuple[TrackEvent, ...]:
        return tuple(self._buffer)

    @property
    def sending(self) -> bool:
        return self._sending

    @property
    def last_send_time(self) -> float:
        return self._last_send_time

    def track(self, event: str, *tags: str) -> None:
        """Record ``event`` with optional tags for the current page."""
        record = TrackEvent(
            event=event,
            tags=tuple(tags),
            url=self._env.current_url(),
            title=self._env.current_title(),
            ts=self._env.now(),
        )
        self._buffer.append(record)
        self._schedule_send()

    def _schedule_send(self) -> None:
        if self._sending or not self._buffer:
            return

        if len(self._buffer) >= self.min_events_to_send:
            self._cancel_timer()
            self._send_events()
            return

        if self._timer is None:
            elapsed = self._env.now() - self._last_send_time
            wait = max(0, self.min_time_between_sends - elapsed)
            self._timer = self._env.schedule_timer(wait, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self._send_events()

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def _send_events(self, force: bool = False) -> None:
        if self._sending or not self._buffer:
            return

        self._sending = True
        batch, self._buffer = self._buffer, []
        self._last_send_time = self._env.now()

        if force:
            try:
                self._env.send_best_effort(self.endpoint, batch)
            except Exception:
                logger.warning("Best-effort send of %d events failed", len(batch), exc_info=True)
            self._sending = False
            return

        try:
            self._env.send(self.endpoint, batch, partial(self._on_sent, batch))
        except Exception:
            logger.warning("Error sending %d events", len(batch), exc_info=True)
            self._on_sent(batch, False)

    def _on_sent(self, batch: List[TrackEvent], success: bool) -> None:
        if success:
            self._sending = False
            if self._buffer:
                self._schedule_send()
            return

        # failed batch goes back ahead of anything tracked meanwhile
        self._buffer = batch + self._buffer
        self._env.schedule_timer(RETRY_DELAY_MS, self._retry)

    def _retry(self) -> None:
        self._sending = False
        self._schedule_send()

    def _on_teardown(self) -> None:
        if self._torn_down:
            return
        self._torn_down = True
        self._cancel_timer()
        self._send_events(force=True)
