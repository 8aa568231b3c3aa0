import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    tracker_port: int
    static_port: int
    host: str
    storage_connection_string: str
    storage_account_name: str
    storage_account_key: str
    container: str
    blob_prefix: str
    min_events_to_send: int
    min_time_between_sends: int
    tracker_endpoint: str
    tracks_limit: int
    cors_origins: Tuple[str, ...]
    static_dir: str
    log_file: str


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _origins_env(static_port: int) -> Tuple[str, ...]:
    raw = os.getenv("CORS_ORIGINS", "")
    if raw.strip():
        return tuple(origin.strip() for origin in raw.split(",") if origin.strip())
    return (f"http://localhost:{static_port}", f"http://127.0.0.1:{static_port}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    load_dotenv()
    tracker_port = _int_env("TRACKER_PORT", 8888)
    static_port = _int_env("STATIC_PORT", 50000)
    return Settings(
        tracker_port=tracker_port,
        static_port=static_port,
        host=os.getenv("HOST", "0.0.0.0"),
        storage_connection_string=os.getenv("AZURE_STORAGE_CONNECTION_STRING", ""),
        storage_account_name=os.getenv("AZURE_STORAGE_ACCOUNT_NAME", "").strip(),
        storage_account_key=os.getenv("AZURE_STORAGE_ACCOUNT_KEY", ""),
        container=os.getenv("AZURE_CONTAINER", "tracking-service"),
        blob_prefix=os.getenv("AZURE_BLOB_PREFIX", "tracks").strip("/"),
        min_events_to_send=_int_env("MIN_EVENTS_TO_SEND", 3),
        min_time_between_sends=_int_env("MIN_TIME_BETWEEN_SENDS", 1000),
        tracker_endpoint=os.getenv(
            "TRACKER_ENDPOINT", f"http://localhost:{tracker_port}/track"
        ),
        tracks_limit=_int_env("TRACKS_LIMIT", 100),
        cors_origins=_origins_env(static_port),
        static_dir=os.getenv("STATIC_DIR", "public"),
        log_file=os.getenv("LOG_FILE", "trackservice.log"),
    )
