from __future__ import annotations

import asyncio
from typing import Optional, Set

from fastapi.websockets import WebSocketState
from loguru import logger

from nearby.core.config import SUBSCRIBER_QUEUE_SIZE, WS_HEARTBEAT_SECONDS
from nearby.schemas.events import BroadcastEvent

PING = "ping"
PONG = "pong"


class Subscriber:
    def __init__(self, websocket, queue_size: int):
        self.websocket = websocket
        self.queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0
        self.sender: Optional[asyncio.Task] = None

    def offer(self, text: str) -> bool:
        try:
            self.queue.put_nowait(text)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False


class ConnectionManager:
    """
    Fans every store event out to all connected WebSocket subscribers.

    publish() may be called from any thread. It serialises the event once
    and schedules the hand-off onto the event loop that owns the sockets.
    Each subscriber has a bounded queue drained by its own sender task; a
    full queue drops the event for that subscriber only.
    """

    def __init__(
        self,
        heartbeat_seconds: float = WS_HEARTBEAT_SECONDS,
        queue_size: int = SUBSCRIBER_QUEUE_SIZE,
    ):
        self.heartbeat_seconds = heartbeat_seconds
        self.queue_size = queue_size
        self.active: Set[Subscriber] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._heartbeat: Optional[asyncio.Task] = None

    @property
    def connection_count(self) -> int:
        return len(self.active)

    # ---------------------------
    # Lifecycle
    # ---------------------------

    def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        if self._heartbeat is None:
            self._heartbeat = self._loop.create_task(self._heartbeat_loop())
        logger.info(f"Realtime broadcaster started | heartbeat={self.heartbeat_seconds}s")

    async def stop(self) -> None:
        if self._heartbeat is not None:
            self._heartbeat.cancel()
            try:
                await self._heartbeat
            except asyncio.CancelledError:
                pass
            self._heartbeat = None

        for sub in list(self.active):
            await self.terminate(sub)
        logger.info("Realtime broadcaster stopped")

    # ---------------------------
    # Connections
    # ---------------------------

    async def connect(self, websocket) -> Subscriber:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        sub = Subscriber(websocket, self.queue_size)
        # Registered before accept so no event published after the
        # handshake can miss this subscriber.
        self.active.add(sub)
        await websocket.accept()
        sub.sender = asyncio.get_running_loop().create_task(self._sender(sub))
        logger.info(f"WebSocket connected | connections={self.connection_count}")
        return sub

    def disconnect(self, sub: Subscriber) -> None:
        if sub in self.active:
            self.active.discard(sub)
            logger.info(f"WebSocket disconnected | connections={self.connection_count}")
        if sub.sender is not None and not sub.sender.done():
            sub.sender.cancel()

    async def terminate(self, sub: Subscriber) -> None:
        self.disconnect(sub)
        try:
            await sub.websocket.close(code=1001)
        except Exception as e:
            logger.debug(f"Close on dead socket ignored: {e}")

    async def handle_text(self, sub: Subscriber, text: str) -> None:
        # Application-level ping for clients that cannot send protocol pings
        if text.strip() == PING:
            sub.offer(PONG)

    # ---------------------------
    # Broadcast
    # ---------------------------

    def publish(self, event: BroadcastEvent) -> None:
        if self._loop is None or self._loop.is_closed():
            logger.debug(f"No realtime loop, event not delivered | type={event.type.value}")
            return

        # Every publish goes through the loop callback queue, including
        # publishes made on the loop thread, so fan-out order is publish order.
        self._loop.call_soon_threadsafe(self._fan_out, event.to_json())

    def _fan_out(self, text: str) -> None:
        for sub in list(self.active):
            if not sub.offer(text):
                logger.warning(f"Subscriber queue full, event dropped | dropped={sub.dropped}")

    async def _sender(self, sub: Subscriber) -> None:
        while True:
            text = await sub.queue.get()
            try:
                await sub.websocket.send_text(text)
            except Exception as e:
                logger.warning(f"WebSocket send failed, dropping subscriber: {e}")
                self.active.discard(sub)
                return

    # ---------------------------
    # Liveness
    # ---------------------------

    async def check_liveness(self) -> None:
        # Protocol-level ping/pong is done by the ASGI server (uvicorn
        # ws_ping_interval); this pass only reaps subscribers whose socket
        # or sender task is already gone.
        for sub in list(self.active):
            state = getattr(sub.websocket, "client_state", WebSocketState.CONNECTED)
            sender_done = sub.sender is not None and sub.sender.done()
            if state == WebSocketState.DISCONNECTED or sender_done:
                logger.info("Stale WebSocket found, terminating")
                await self.terminate(sub)

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_seconds)
            try:
                await self.check_liveness()
            except Exception:
                logger.exception("Heartbeat pass failed")
