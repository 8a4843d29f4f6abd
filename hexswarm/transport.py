"""
TransportClient -- one logical websocket link to the local backend.

Lifecycle::

    Disconnected -> Connecting -> Connected -> Disconnected (drop)
                 -> Connecting (after RECONNECT_DELAY) -> ...

``disconnect()`` stops the cycle until ``connect()`` is called again. The
reconnect delay is a ``loop.call_later`` timer, never a blocking wait, and at
most one timer is pending at a time. Everything runs on one asyncio loop.

Usage::

    client = TransportClient("ws://localhost:4003")
    unsubscribe = client.on_message(lambda msg: print(msg["type"]))
    client.connect()
    ...
    await client.aclose()
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

import aiohttp

from hexswarm.config import HISTORY_LIMIT, RECONNECT_DELAY

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Any], None]
ConnectionHandler = Callable[[bool], None]
Connector = Callable[[str], Awaitable[Any]]

CONNECT_TIMEOUT = 10.0
HEARTBEAT = 30.0


class TransportClient:
    def __init__(
        self,
        endpoint: str,
        reconnect_delay: float = RECONNECT_DELAY,
        history_limit: int = HISTORY_LIMIT,
        connector: Connector | None = None,
    ):
        self.endpoint = endpoint
        self.reconnect_delay = reconnect_delay
        self.history_limit = history_limit
        self._connector = connector or self._aiohttp_connect
        self._session: aiohttp.ClientSession | None = None

        self._ws: Any = None
        self._run_task: asyncio.Task | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._should_reconnect = False
        self._send_tasks: set[asyncio.Task] = set()
        self._detached: set[asyncio.Task] = set()

        self._message_handlers: list[MessageHandler] = []
        self._connection_handlers: list[ConnectionHandler] = []

        self.attempts = 0

    # -- state ----------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    # -- lifecycle ------------------------------------------------------------

    def connect(self, endpoint: str | None = None):
        """Enable auto-reconnect and open the link unless it is already up."""
        if endpoint is not None:
            self.endpoint = endpoint
        self._should_reconnect = True
        self._open()

    def _open(self):
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
        if self.is_connected:
            return
        if self._run_task is not None and not self._run_task.done():
            return
        self.attempts += 1
        self._run_task = asyncio.get_running_loop().create_task(self._run())

    async def _aiohttp_connect(self, endpoint: str):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return await self._session.ws_connect(endpoint, heartbeat=HEARTBEAT)

    async def _run(self):
        task = asyncio.current_task()
        try:
            ws = await asyncio.wait_for(self._connector(self.endpoint), CONNECT_TIMEOUT)
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
            logger.warning("Connect to %s failed: %s", self.endpoint, exc)
            self._connect_failed(task)
            return
        except Exception:
            logger.exception("Unexpected error connecting to %s", self.endpoint)
            self._connect_failed(task)
            return

        if self._run_task is not task:
            # detached by disconnect() while the handshake finished
            await ws.close()
            return

        self._ws = ws
        logger.info("Connected to %s", self.endpoint)
        self._notify_connection(True)
        self.send({"type": "get_history", "payload": {"limit": self.history_limit}})

        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._handle_text(msg.data)
                elif msg.type == aiohttp.WSMsgType.BINARY:
                    self._handle_text(msg.data.decode("utf-8", errors="replace"))
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error("Websocket error: %s", ws.exception())
                    break
        except (aiohttp.ClientError, OSError) as exc:
            logger.warning("Connection to %s lost: %s", self.endpoint, exc)
        finally:
            # a task detached by disconnect() no longer owns the client state
            attached = self._run_task is task
            if attached:
                self._ws = None
            if not ws.closed:
                await ws.close()
            logger.info("Disconnected from %s", self.endpoint)
            if attached:
                self._notify_connection(False)
                self._schedule_reconnect()

    def _connect_failed(self, task: asyncio.Task | None):
        if self._run_task is not task:
            return
        self._notify_connection(False)
        self._schedule_reconnect()

    def _schedule_reconnect(self):
        if not self._should_reconnect:
            return
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._reconnect)

    def _reconnect(self):
        logger.info("Attempting reconnect to %s", self.endpoint)
        self._open()

    def disconnect(self):
        self._should_reconnect = False
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        was_connected = self.is_connected
        task, self._run_task = self._run_task, None
        self._ws = None
        if task is not None and not task.done():
            task.cancel()
            self._detached.add(task)
            task.add_done_callback(self._detached.discard)
        if was_connected:
            self._notify_connection(False)

    async def aclose(self):
        """Disconnect and release the HTTP session."""
        self.disconnect()
        if self._detached:
            await asyncio.gather(*list(self._detached), return_exceptions=True)
        if self._send_tasks:
            await asyncio.gather(*self._send_tasks, return_exceptions=True)
        if self._session is not None and not self._session.closed:
            await self._session.close()

    # -- outbound -------------------------------------------------------------

    def send(self, value: Any) -> bool:
        """Transmit ``value`` as JSON if connected; drop it otherwise."""
        if not self.is_connected:
            logger.debug("Not connected, dropping outbound %s", value.get("type") if isinstance(value, dict) else value)
            return False
        task = asyncio.get_running_loop().create_task(self._ws.send_str(json.dumps(value)))
        self._send_tasks.add(task)
        task.add_done_callback(self._send_done)
        return True

    def _send_done(self, task: asyncio.Task):
        self._send_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Send failed: %s", task.exception())

    # -- inbound --------------------------------------------------------------

    def _handle_text(self, data: str):
        try:
            message = json.loads(data)
        except json.JSONDecodeError as exc:
            logger.error("Failed to parse message: %s", exc)
            return
        self._notify_message(message)

    # -- subscriptions --------------------------------------------------------

    def on_message(self, handler: MessageHandler) -> Callable[[], None]:
        self._message_handlers.append(handler)
        return lambda: self._remove(self._message_handlers, handler)

    def on_connection(self, handler: ConnectionHandler) -> Callable[[], None]:
        self._connection_handlers.append(handler)
        return lambda: self._remove(self._connection_handlers, handler)

    @staticmethod
    def _remove(handlers: list, handler):
        if handler in handlers:
            handlers.remove(handler)

    def _notify_message(self, message: Any):
        for handler in list(self._message_handlers):
            try:
                handler(message)
            except Exception:
                logger.exception("Message handler error")

    def _notify_connection(self, connected: bool):
        for handler in list(self._connection_handlers):
            try:
                handler(connected)
            except Exception:
                logger.exception("Connection handler error")
