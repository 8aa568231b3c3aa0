import os
import sys
from types import SimpleNamespace
from typing import Callable, Dict, List, Optional

import pytest
from azure.core import MatchConditions
from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from trackservice.config import Settings
from trackservice.crud.events import EventStore


class FakeBlobClient:
    def __init__(self, container: "FakeContainer", name: str):
        self._container = container
        self.name = name

    def create_append_blob(self, content_settings=None, match_condition=None):
        if match_condition is MatchConditions.IfMissing and self.name in self._container.blobs:
            raise ResourceExistsError("The specified blob already exists.")
        self._container.blobs[self.name] = b""

    def append_block(self, data: bytes):
        if self.name not in self._container.blobs:
            raise ResourceNotFoundError("The specified blob does not exist.")
        self._container.blobs[self.name] += data


class FakeContainer:
    """In-memory stand-in for an Azure ``ContainerClient``."""

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}
        self.closed = False

    def get_blob_client(self, name: str) -> FakeBlobClient:
        return FakeBlobClient(self, name)

    def list_blobs(self, name_starts_with: Optional[str] = None):
        prefix = name_starts_with or ""
        return [SimpleNamespace(name=name) for name in sorted(self.blobs) if name.startswith(prefix)]

    def download_blob(self, name: str):
        if name not in self.blobs:
            raise ResourceNotFoundError("The specified blob does not exist.")
        data = self.blobs[name]
        return SimpleNamespace(readall=lambda: data)

    def delete_blob(self, name: str):
        if name not in self.blobs:
            raise ResourceNotFoundError("The specified blob does not exist.")
        del self.blobs[name]

    def close(self):
        self.closed = True


class FakeTimer:
    def __init__(self, due: float, delay: float, callback: Callable[[], None]):
        self.due = due
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class FakeEnvironment:
    """Manual clock and timers; sends are recorded and completed by the test."""

    def __init__(self, clock: float = 10_000):
        self.clock = clock
        self.url = "https://example.com/home"
        self.title = "Home"
        self.timers: List[FakeTimer] = []
        self.sends: List[SimpleNamespace] = []
        self.best_effort: List[list] = []
        self.teardown_listeners: List[Callable[[], None]] = []
        self.send_error: Optional[Exception] = None

    def current_url(self) -> str:
        return self.url

    def current_title(self) -> str:
        return self.title

    def now(self) -> float:
        return self.clock

    def schedule_timer(self, delay_ms, callback):
        timer = FakeTimer(self.clock + delay_ms, delay_ms, callback)
        self.timers.append(timer)
        return timer

    def send(self, endpoint, events, done):
        if self.send_error is not None:
            raise self.send_error
        self.sends.append(SimpleNamespace(endpoint=endpoint, events=list(events), done=done))

    def send_best_effort(self, endpoint, events):
        self.best_effort.append(list(events))

    def add_teardown_listener(self, callback):
        self.teardown_listeners.append(callback)

    def teardown(self):
        for callback in self.teardown_listeners:
            callback()

    @property
    def active_timers(self) -> List[FakeTimer]:
        return [timer for timer in self.timers if not (timer.cancelled or timer.fired)]

    def advance(self, ms: float):
        target = self.clock + ms
        while True:
            due = [timer for timer in self.active_timers if timer.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.clock = timer.due
            timer.fired = True
            timer.callback()
        self.clock = target


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        tracker_port=8888,
        static_port=50000,
        host="127.0.0.1",
        storage_connection_string="",
        storage_account_name="",
        storage_account_key="",
        container="tracking-service",
        blob_prefix="tracks",
        min_events_to_send=3,
        min_time_between_sends=1000,
        tracker_endpoint="http://localhost:8888/track",
        tracks_limit=100,
        cors_origins=("http://localhost:50000",),
        static_dir=str(tmp_path / "public"),
        log_file=str(tmp_path / "trackservice.log"),
    )


@pytest.fixture
def container() -> FakeContainer:
    return FakeContainer()


@pytest.fixture
def store(container) -> EventStore:
    return EventStore(container, prefix="tracks")


@pytest.fixture
def env() -> FakeEnvironment:
    return FakeEnvironment()
