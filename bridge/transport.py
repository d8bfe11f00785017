from __future__ import annotations

import asyncio
import logging
import math
import random
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from bridge.api.models import ConnectionState
from bridge.core.events import BridgeEvent, EventType
from bridge.errors import TransportError
from bridge.frames import encode_frame
from bridge.fsm import ConnectionFSM

logger = logging.getLogger(__name__)

# Retry counter ceiling; delays are already capped long before this.
MAX_RETRY_ATTEMPT = 10_000


class Connection(Protocol):
    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


Connector = Callable[[str], Awaitable[Connection]]


async def websockets_connector(uri: str) -> Connection:
    from websockets.asyncio.client import connect

    return await connect(uri)


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    """How the session retries after a drop.

    Defaults mirror the reconnecting-websocket client the browser build used.
    """

    # Base delay (seconds) before the first retry.
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_factor: float = 1.3
    # Uniform random seconds added to the base delay.
    jitter: float = 4.0
    connect_timeout: float = 4.0
    # None => queue outbound frames without bound while disconnected.
    max_queued_messages: int | None = None

    def __post_init__(self) -> None:
        if self.initial_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("reconnect delays must be >= 0")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be > 0")
        if self.max_queued_messages is not None and self.max_queued_messages < 0:
            raise ValueError("max_queued_messages must be >= 0")

    def delay_for(self, attempt: int, *, rng: random.Random | None = None) -> float:
        """Seconds to wait before reconnect attempt `attempt` (0 = first dial, no wait)."""

        if attempt <= 0:
            return 0.0
        base = self.initial_delay
        if self.jitter:
            base += (rng or random).uniform(0, self.jitter)
        if base <= 0:
            return 0.0

        if base >= self.max_delay:
            return self.max_delay

        # Compared in log space; the power itself overflows after a few thousand attempts.
        exponent = attempt - 1
        if exponent * math.log(self.backoff_factor) >= math.log(self.max_delay / base):
            return self.max_delay
        return min(base * self.backoff_factor ** exponent, self.max_delay)


class TransportSession:
    """Reconnecting duplex session to the game server.

    Lifecycle and frames are pushed onto `events` as BridgeEvents:
      - OPEN after entering connected (queued sends already flushed)
      - CLOSE on a clean close, ERROR on a failed dial or abnormal drop;
        exactly one of the two per transition to disconnected
      - FRAME with the raw text of every received frame

    Sends made while not connected are queued and flushed in order on the next open.
    """

    def __init__(
        self,
        *,
        uri: str,
        events: asyncio.Queue[BridgeEvent],
        connector: Connector | None = None,
        policy: ReconnectPolicy | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.uri = uri
        self.policy = policy or ReconnectPolicy()
        self._events = events
        self._connector = connector or websockets_connector
        self._rng = rng or random.Random()
        self._fsm = ConnectionFSM()
        self._conn: Connection | None = None
        self._outbox: deque[str] = deque()
        self._send_lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self._stopping = False
        self._retries = 0

    @property
    def state(self) -> ConnectionState:
        return self._fsm.connection_state

    @property
    def queued(self) -> list[str]:
        return list(self._outbox)

    def start(self) -> asyncio.Task[None]:
        if self._task is None or self._task.done():
            self._stopping = False
            self._task = asyncio.create_task(self.run(), name="transport-session")
        return self._task

    async def stop(self) -> None:
        self._stopping = True
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        conn, self._conn = self._conn, None
        if conn is not None:
            await self._close_quietly(conn)
        if self.state is not ConnectionState.disconnected:
            self._fsm.dropped()
        self._retries = 0

    async def run(self) -> None:
        while not self._stopping:
            delay = self.policy.delay_for(self._retries, rng=self._rng)
            if delay > 0:
                logger.debug("Reconnecting to %s in %.2fs (attempt %d)", self.uri, delay, self._retries)
                await asyncio.sleep(delay)
            await self._connect_once()
            self._retries = min(self._retries + 1, MAX_RETRY_ATTEMPT)

    async def send(self, payload: Any) -> bool:
        """Transmit `payload` as JSON, or queue it until the next open.

        Returns False only when the queue is bounded and full (the frame is dropped).
        Raises InvalidFrame when the payload is not JSON-serializable.
        """

        text = encode_frame(payload)
        async with self._send_lock:
            conn = self._conn
            if conn is not None and self.state is ConnectionState.connected and not self._outbox:
                try:
                    await conn.send(text)
                    return True
                except Exception as e:
                    # The reader notices the drop; keep the frame for the next connection.
                    logger.warning("Send failed, queueing until reconnect: %s", e)
            return self._enqueue(text)

    def _enqueue(self, text: str) -> bool:
        limit = self.policy.max_queued_messages
        if limit is not None and len(self._outbox) >= limit:
            logger.warning("Outbound queue full (%d); dropping frame", limit)
            return False
        self._outbox.append(text)
        return True

    async def _connect_once(self) -> None:
        self._fsm.dial()
        logger.info("Connecting to %s", self.uri)
        try:
            conn = await asyncio.wait_for(self._connector(self.uri), timeout=self.policy.connect_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._drop("ERROR", e)
            return

        self._conn = conn
        self._fsm.opened()
        self._retries = 0

        try:
            await self._flush(conn)
            logger.info("Websocket connection opened")
            self._emit("OPEN")
            async for raw in conn:
                self._emit("FRAME", raw)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._drop("ERROR", e)
            await self._close_quietly(conn)
        else:
            self._drop("CLOSE")

    async def _flush(self, conn: Connection) -> None:
        async with self._send_lock:
            if self._outbox:
                logger.info("Flushing %d queued frame(s)", len(self._outbox))
            while self._outbox:
                await conn.send(self._outbox[0])
                self._outbox.popleft()

    def _drop(self, kind: EventType, exc: BaseException | None = None) -> None:
        self._conn = None
        self._fsm.dropped()
        payload = None
        if exc is not None:
            logger.warning("Websocket connection error (%s): %r", self.uri, exc)
            payload = TransportError(str(exc) or type(exc).__name__, detail={"uri": self.uri}).to_details()
        else:
            logger.info("Websocket connection closed")
        self._emit(kind, payload)

    def _emit(self, kind: EventType, payload: Any = None) -> None:
        self._events.put_nowait(BridgeEvent.now(type=kind, payload=payload))

    @staticmethod
    async def _close_quietly(conn: Connection) -> None:
        try:
            await conn.close()
        except Exception as e:
            logger.debug("Ignoring error while closing connection: %r", e)
