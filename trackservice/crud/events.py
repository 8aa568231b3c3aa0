import json
import logging
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Sequence

from azure.core import MatchConditions
from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContainerClient, ContentSettings

from trackservice.config import Settings
from trackservice.models.event import TrackEvent


logger = logging.getLogger(__name__)


def _blob_path(prefix: str, now: datetime) -> str:
    return f"{prefix}/{now:%Y/%m/%d}/{now:%H}.jsonl"


def _encode_line(event: TrackEvent) -> bytes:
    return (
        json.dumps(event.to_dict(), separators=(",", ":"), ensure_ascii=False) + "\n"
    ).encode("utf-8")


class EventStore:
    """Persists track events as JSON lines in hourly Azure append blobs.

    The container plays the role of the database and the blob prefix the
    collection. A single store is shared by every request of the process.
    """

    def __init__(self, container_client: ContainerClient, prefix: str = "tracks"):
        self._container = container_client
        self.prefix = prefix.strip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> "EventStore":
        if settings.storage_connection_string:
            service = BlobServiceClient.from_connection_string(
                settings.storage_connection_string
            )
        elif settings.storage_account_name and settings.storage_account_key:
            account_url = f"https://{settings.storage_account_name}.blob.core.windows.net"
            service = BlobServiceClient(
                account_url=account_url, credential=settings.storage_account_key
            )
        else:
            raise RuntimeError(
                "AZURE_STORAGE_CONNECTION_STRING or AZURE_STORAGE_ACCOUNT_NAME and "
                "AZURE_STORAGE_ACCOUNT_KEY are required"
            )
        client = service.get_container_client(settings.container)
        try:
            client.create_container()
        except ResourceExistsError:
            pass
        logger.info("Connected to blob container %s", settings.container)
        return cls(client, prefix=settings.blob_prefix)

    def close(self) -> None:
        self._container.close()

    def insert_events(
        self, events: Sequence[TrackEvent], now: Optional[datetime] = None
    ) -> int:
        if not events:
            return 0
        blob_name = _blob_path(self.prefix, now or datetime.now(timezone.utc))
        data = b"".join(_encode_line(event) for event in events)
        blob_client = self._container.get_blob_client(blob_name)
        try:
            blob_client.create_append_blob(
                content_settings=ContentSettings(content_type="application/json"),
                match_condition=MatchConditions.IfMissing,
            )
        except ResourceExistsError:
            pass
        blob_client.append_block(data)
        return len(events)

    def get_events(self, event: Optional[str] = None, limit: int = 100) -> List[TrackEvent]:
        """Return stored events newest first.

        ``event`` is an exact match on the event name; a ``limit`` of 0 returns
        every matching event.
        """
        records = [
            record
            for record in self._iter_events()
            if event is None or record.event == event
        ]
        records.sort(key=lambda record: record.ts, reverse=True)
        if limit:
            return records[:limit]
        return records

    def delete_all_events(self) -> int:
        deleted = 0
        for blob_name in self._blob_names():
            count = len(self._read_blob(blob_name))
            try:
                self._container.delete_blob(blob_name)
            except ResourceNotFoundError:
                continue
            deleted += count
        return deleted

    def _blob_names(self) -> List[str]:
        return [
            blob.name
            for blob in self._container.list_blobs(name_starts_with=f"{self.prefix}/")
        ]

    def _read_blob(self, blob_name: str) -> List[TrackEvent]:
        try:
            data = self._container.download_blob(blob_name).readall()
        except ResourceNotFoundError:
            return []
        events = []
        for line in data.decode("utf-8").splitlines():
            if not line.strip():
                continue
            try:
                events.append(TrackEvent.from_dict(json.loads(line)))
            except (ValueError, KeyError, TypeError):
                logger.warning("Skipping malformed record in blob %s", blob_name)
        return events

    def _iter_events(self) -> Iterator[TrackEvent]:
        for blob_name in self._blob_names():
            yield from self._read_blob(blob_name)
