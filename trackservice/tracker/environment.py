import asyncio
import atexit
import logging
import time
from typing import Callable, Optional, Sequence, Set

import httpx

from trackservice.models.event import TrackEvent, dump_events


logger = logging.getLogger(__name__)

BEST_EFFORT_TIMEOUT = 2.0


class AsyncioEnvironment:
    """Runs a tracker on an asyncio event loop and posts batches with httpx.

    Batches are posted as a form field ``events`` holding the JSON array, the
    same body a browser sends without triggering a CORS preflight. The page
    context reported with each event is whatever was last set with
    :meth:`navigate`.
    """

    def __init__(
        self,
        url: str,
        title: str,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        client: Optional[httpx.AsyncClient] = None,
        sync_client: Optional[httpx.Client] = None,
    ):
        self.url = url
        self.title = title
        self._loop = loop or asyncio.get_running_loop()
        self._client = client or httpx.AsyncClient()
        self._sync_client = sync_client or httpx.Client(timeout=BEST_EFFORT_TIMEOUT)
        self._tasks: Set[asyncio.Task] = set()

    def navigate(self, url: str, title: Optional[str] = None) -> None:
        self.url = url
        if title is not None:
            self.title = title

    def current_url(self) -> str:
        return self.url

    def current_title(self) -> str:
        return self.title

    def now(self) -> float:
        return time.time() * 1000

    def schedule_timer(self, delay_ms: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._loop.call_later(delay_ms / 1000, callback)

    def send(
        self, endpoint: str, events: Sequence[TrackEvent], done: Callable[[bool], None]
    ) -> None:
        task = self._loop.create_task(self._post(endpoint, events, done))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _post(
        self, endpoint: str, events: Sequence[TrackEvent], done: Callable[[bool], None]
    ) -> None:
        ok = False
        try:
            response = await self._client.post(endpoint, data={"events": dump_events(events)})
            ok = response.is_success
            if not ok:
                logger.warning("Tracker endpoint answered %d", response.status_code)
        except Exception as exc:
            logger.warning("Error sending events: %s", exc)
        finally:
            done(ok)

    def send_best_effort(self, endpoint: str, events: Sequence[TrackEvent]) -> None:
        try:
            self._sync_client.post(endpoint, data={"events": dump_events(events)})
        except Exception as exc:
            logger.warning("Best-effort send failed: %s", exc)

    def add_teardown_listener(self, callback: Callable[[], None]) -> None:
        atexit.register(callback)

    async def aclose(self) -> None:
        await self._client.aclose()
        self._sync_client.close()
