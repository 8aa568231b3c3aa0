import asyncio
import logging
from typing import Optional

import uvicorn

from trackservice.config import Settings, get_settings
from trackservice.crud.events import EventStore
from trackservice.main import create_query_app, create_tracker_app


logger = logging.getLogger(__name__)


async def _stop_together(*servers: uvicorn.Server) -> None:
    # each server captures signals for itself; stop the others once one exits
    while not any(server.should_exit for server in servers):
        await asyncio.sleep(0.1)
    for server in servers:
        server.should_exit = True


async def serve(settings: Optional[Settings] = None) -> None:
    """Run the tracker and query servers in one process around a shared store."""
    settings = settings or get_settings()
    store = EventStore.from_settings(settings)
    try:
        tracker_server = uvicorn.Server(
            uvicorn.Config(
                create_tracker_app(settings, store),
                host=settings.host,
                port=settings.tracker_port,
            )
        )
        query_server = uvicorn.Server(
            uvicorn.Config(
                create_query_app(settings, store),
                host=settings.host,
                port=settings.static_port,
            )
        )
        logger.info(
            "Tracker server on port %d, query server on port %d",
            settings.tracker_port,
            settings.static_port,
        )
        await asyncio.gather(
            tracker_server.serve(),
            query_server.serve(),
            _stop_together(tracker_server, query_server),
        )
    finally:
        store.close()
        logger.info("Event store closed")


def main() -> None:
    asyncio.run(serve())
