#!/usr/bin/env python3
"""
Core CDP Client - CDPSession owns one websocket to a page target and
multiplexes command replies and protocol events over it.
"""

import asyncio
import itertools
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

import aiohttp

from .errors import ProtocolError
from .i18n import _

logger = logging.getLogger(__name__)

# Trace chunks from Tracing.dataCollected routinely exceed aiohttp's 4MB default.
WEBSOCKET_MAX_MSG_SIZE = 64 * 1024 * 1024
DEFAULT_COMMAND_TIMEOUT = 30.0

EventHandler = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]

_session_counter = itertools.count(1)


class CDPSession:
    """A Chrome DevTools Protocol session over a single websocket connection."""

    def __init__(self, websocket_url: str, command_timeout: float = DEFAULT_COMMAND_TIMEOUT):
        self.websocket_url = websocket_url
        self.command_timeout = command_timeout
        self.session_key = f"cdp-{next(_session_counter)}"
        self.http_session: Optional[aiohttp.ClientSession] = None
        self.ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self.message_id = 1

        self._listeners: Dict[str, List[EventHandler]] = {}
        self._message_handler_task: Optional[asyncio.Task[None]] = None
        self._pending_responses: Dict[int, asyncio.Future[Any]] = {}
        self._pending_methods: Dict[int, str] = {}
        self._event_tasks: Set["asyncio.Task[None]"] = set()

    async def __aenter__(self) -> "CDPSession":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    async def connect(self) -> None:
        """Connect to the CDP WebSocket and start the background message listener."""
        self.http_session = aiohttp.ClientSession()
        self.ws = await self.http_session.ws_connect(self.websocket_url, max_msg_size=WEBSOCKET_MAX_MSG_SIZE)
        self._message_handler_task = asyncio.create_task(self._message_listener())
        logger.info(_("Connected to DevTools: {websocket_url}", websocket_url=self.websocket_url))

    async def close(self) -> None:
        """Close the connection and clean up resources."""
        if self._message_handler_task:
            self._message_handler_task.cancel()
            await asyncio.gather(self._message_handler_task, return_exceptions=True)
            self._message_handler_task = None
        for task in list(self._event_tasks):
            task.cancel()
        if self._event_tasks:
            await asyncio.gather(*self._event_tasks, return_exceptions=True)
        self._fail_pending(ConnectionError(_("CDP session closed.")))
        if self.ws and not self.ws.closed:
            await self.ws.close()
        if self.http_session and not self.http_session.closed:
            await self.http_session.close()

    @property
    def connected(self) -> bool:
        return self.ws is not None and not self.ws.closed

    async def _message_listener(self) -> None:
        """Background task to read and dispatch all WebSocket messages."""
        if not self.ws:
            return
        try:
            async for msg in self.ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self.dispatch_message(json.loads(msg.data))
                elif msg.type in (aiohttp.WSMsgType.ERROR, aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED):
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(_("WebSocket listener error: {e}", e=e))
        finally:
            self._fail_pending(ConnectionError(_("WebSocket connection closed unexpectedly.")))

    def dispatch_message(self, message: Dict[str, Any]) -> None:
        """Route one decoded protocol message to its pending command or to event listeners."""
        if "id" in message:
            future = self._pending_responses.pop(message["id"], None)
            method = self._pending_methods.pop(message["id"], "")
            if future is None or future.done():
                return
            if "error" in message:
                future.set_exception(ProtocolError(method, message["error"]))
            else:
                future.set_result(message)
        elif "method" in message:
            self.emit(message["method"], message.get("params", {}))

    def emit(self, method: str, params: Dict[str, Any]) -> None:
        """Deliver an event to its listeners in subscription order."""
        for handler in list(self._listeners.get(method, [])):
            try:
                result = handler(params)
            except Exception:
                logger.exception("Listener for %s failed", method)
                continue
            if asyncio.iscoroutine(result):
                task = asyncio.ensure_future(result)
                self._event_tasks.add(task)
                task.add_done_callback(self._event_task_done)

    def _event_task_done(self, task: "asyncio.Task[None]") -> None:
        self._event_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Async event listener failed: %s", task.exception())

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending_responses.values():
            if not future.done():
                future.set_exception(error)
        self._pending_responses.clear()
        self._pending_methods.clear()

    def on(self, method: str, handler: EventHandler) -> None:
        self._listeners.setdefault(method, []).append(handler)

    def off(self, method: str, handler: EventHandler) -> None:
        handlers = self._listeners.get(method, [])
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            self._listeners.pop(method, None)

    def once(self, method: str, handler: EventHandler) -> None:
        """Subscribe `handler` for the next `method` event only."""

        def _once(params: Dict[str, Any]) -> Union[None, Awaitable[None]]:
            self.off(method, _once)
            return handler(params)

        self.on(method, _once)

    def listener_count(self, method: str) -> int:
        return len(self._listeners.get(method, []))

    async def send_command(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Send a command and wait for its reply.

        Commands may be pipelined; ids are handed out in call order. A CDP
        error reply raises ProtocolError, a missing reply raises TimeoutError.
        """
        if params is None:
            params = {}
        if not self.ws or self.ws.closed:
            raise ConnectionError(_("WebSocket connection is closed."))

        message_id = self.message_id
        self.message_id += 1
        message = {"id": message_id, "method": method, "params": params}

        future = asyncio.get_running_loop().create_future()
        self._pending_responses[message_id] = future
        self._pending_methods[message_id] = method

        try:
            await self.ws.send_str(json.dumps(message))
            return await asyncio.wait_for(future, timeout=self.command_timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(
                _("Command {method} timed out after {timeout} seconds", method=method, timeout=self.command_timeout)
            )
        finally:
            self._pending_responses.pop(message_id, None)
            self._pending_methods.pop(message_id, None)

    async def enable(self, domain: str) -> None:
        await self.send_command(f"{domain}.enable")

    async def disable(self, domain: str) -> None:
        await self.send_command(f"{domain}.disable")
