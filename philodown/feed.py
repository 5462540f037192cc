"""Websocket connection to the live event feed."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import json
import logging
from typing import Awaitable, Callable, Dict, Optional, Set

import aiohttp

from .config import FEED_TOPIC, IngestConfig, USER_AGENT
from .errors import FrameDecodeError
from .events import EventRouter, decode_frame
from .reconnect import ReconnectPolicy

logger = logging.getLogger("philodown")

JOIN_FRAME = [0, 0, FEED_TOPIC, "phx_join", {}]
HEARTBEAT_FRAME = [0, 0, "phoenix", "heartbeat", {}]


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    JOINED = "joined"
    CLOSED = "closed"


class FeedConnection:
    """Owns the single feed websocket and its heartbeat.

    ``run_forever`` keeps reconnecting after every close until ``close`` is
    called. Each inbound message is decoded and routed in its own task so a
    slow handler never holds up the socket.
    """

    def __init__(
        self,
        config: IngestConfig,
        router: EventRouter,
        policy: Optional[ReconnectPolicy] = None,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.router = router
        self.policy = policy or ReconnectPolicy()
        self.state = ConnectionState.DISCONNECTED
        self.connect_attempts = 0
        self._session = session
        self._sleep = sleep
        self._failures = 0
        self._closing = False
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._heartbeat: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def headers(self) -> Dict[str, str]:
        return {"Origin": f"{self.config.base_url}/", "User-Agent": USER_AGENT}

    async def run_forever(self) -> None:
        owns_session = self._session is None
        if owns_session:
            self._session = aiohttp.ClientSession()
        try:
            while not self._closing:
                await self.start()
                if self._closing:
                    break
                delay = self.policy.delay(self._failures)
                if delay:
                    logger.info("Reconnecting in %.1fs", delay)
                    await self._sleep(delay)
        finally:
            await self._cancel_handlers()
            if owns_session:
                await self._session.close()
                self._session = None
            self.state = ConnectionState.DISCONNECTED

    async def start(self) -> None:
        """Open one websocket session and serve it until it closes."""
        self.state = ConnectionState.CONNECTING
        self.connect_attempts += 1
        answered = False
        try:
            async with self._session.ws_connect(
                self.config.feed_url, headers=self.headers, heartbeat=None
            ) as ws:
                self._ws = ws
                logger.debug("WebSocket opened")
                await ws.send_str(json.dumps(JOIN_FRAME))
                self.state = ConnectionState.JOINED
                self._heartbeat = asyncio.create_task(self._send_heartbeats(ws))
                async for message in ws:
                    answered = True
                    if message.type == aiohttp.WSMsgType.TEXT:
                        self._spawn(message.data)
                    elif message.type == aiohttp.WSMsgType.ERROR:
                        logger.error("WebSocket threw error %s", ws.exception())
                logger.error("WebSocket closed with code %s", ws.close_code)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            logger.error("WebSocket connection failed: %s", exc)
        finally:
            await self._stop_heartbeat()
            self._ws = None
            self.state = ConnectionState.CLOSED
            # Only a server that answered counts as healthy.
            self._failures = 0 if answered else self._failures + 1

    async def close(self) -> None:
        """Stop reconnecting and close the current socket."""
        self._closing = True
        if self._ws is not None:
            await self._ws.close()

    async def _send_heartbeats(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        payload = json.dumps(HEARTBEAT_FRAME)
        while self.state is ConnectionState.JOINED:
            await self._sleep(self.config.heartbeat_interval)
            try:
                await ws.send_str(payload)
            except (aiohttp.ClientError, ConnectionError) as exc:
                logger.warning("Heartbeat failed: %s", exc)
                return

    async def _stop_heartbeat(self) -> None:
        task, self._heartbeat = self._heartbeat, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def _spawn(self, data: str) -> None:
        task = asyncio.create_task(self._handle(data))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle(self, data: str) -> None:
        try:
            event = decode_frame(data)
            await self.router.dispatch(event)
        except FrameDecodeError as exc:
            logger.warning("Dropping feed message: %s", exc)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Handler failed for feed message")

    async def _cancel_handlers(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
