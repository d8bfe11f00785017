from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

import redis

from bridge.core.events import BridgeEvent
from bridge.endpoint import resolve
from bridge.errors import MalformedHostname
from bridge.infra.redis_client import create_redis
from bridge.library_store import PersistenceStore
from bridge.library_sync import LibrarySync
from bridge.router import MessageRouter
from bridge.settings import BridgeSettings
from bridge.transport import Connector, TransportSession
from bridge.websocket_hub import PortHub

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BridgeRuntime:
    """Everything the process owns, built once at startup and passed by reference."""

    settings: BridgeSettings
    r: redis.Redis
    store: PersistenceStore
    sync: LibrarySync
    hub: PortHub
    router: MessageRouter
    transport: TransportSession | None
    endpoint: str | None
    owns_redis: bool = False
    _tasks: list[asyncio.Task[None]] = field(default_factory=list)

    def start(self) -> None:
        self._tasks.append(asyncio.create_task(self.router.run(), name="message-router"))
        if self.transport is not None:
            self._tasks.append(self.transport.start())

    async def stop(self) -> None:
        if self.transport is not None:
            await self.transport.stop()
        for task in self._tasks:
            if not task.done():
                task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
        if self.owns_redis:
            self.r.close()


def build_runtime(
    *,
    settings: BridgeSettings,
    r: redis.Redis | None = None,
    connector: Connector | None = None,
) -> BridgeRuntime:
    client = r if r is not None else create_redis(settings.redis_url)
    store = PersistenceStore(r=client, key=settings.library_key)
    sync = LibrarySync(store=store)
    hub = PortHub()
    events: asyncio.Queue[BridgeEvent] = asyncio.Queue()

    endpoint: str | None = None
    resolver_error: MalformedHostname | None = None
    transport: TransportSession | None = None
    try:
        endpoint = resolve(settings.hostname)
    except MalformedHostname as e:
        logger.error("[Error] %s", e.message)
        resolver_error = e
    else:
        transport = TransportSession(uri=endpoint, events=events, connector=connector, policy=settings.reconnect)

    router = MessageRouter(
        events=events,
        ports=hub,
        sync=sync,
        transport=transport,
        legacy_library_on_connect=settings.legacy_library_on_connect,
        startup_error=resolver_error,
    )
    return BridgeRuntime(
        settings=settings,
        r=client,
        store=store,
        sync=sync,
        hub=hub,
        router=router,
        transport=transport,
        endpoint=endpoint,
        owns_redis=r is None,
    )
