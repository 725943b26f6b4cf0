"""
MCP client for the JSON-RPC over server-sent events transport.

The server streams events from ``GET <base>/sse``. The first ``endpoint``
event announces a per-session URL; requests are POSTed there and their
replies come back as ``message`` events on the same stream, matched to the
caller by JSON-RPC id.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import aiohttp
from mcp.types import ClientCapabilities, Implementation, RootsCapability

from .config import ClientConfig, DEFAULT_TIMEOUT, DEFAULT_URL
from .endpoint import decode_endpoint_payload, resolve_endpoint
from .errors import (
    ConnectionClosedError,
    ConnectionTimeoutError,
    NotConnectedError,
    RemoteError,
    RequestTimeoutError,
    SendFailureError,
    StreamError,
)
from .sse import ENDPOINT_EVENT, MESSAGE_EVENT, SSEDecoder, SSEEvent

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"


@dataclass
class PendingRequest:
    """A request waiting for its reply"""
    method: str
    future: asyncio.Future
    timer: asyncio.TimerHandle


class MCPClient:
    """Client for a single MCP server reached over SSE"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        on_connected: Optional[Callable[[], None]] = None,
        on_disconnected: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        on_message: Optional[Callable[[Any], None]] = None,
    ):
        """
        Initialize the client. Nothing is opened until connect().

        Args:
            base_url: Server base URL; the stream is opened at <base_url>/sse
            timeout: Seconds to wait for the session endpoint and for each reply
            on_connected: Called once the session endpoint is known
            on_disconnected: Called after disconnect() tears the connection down
            on_error: Called with a StreamError when the stream fails
            on_message: Called with every decoded message envelope
        """
        self.base_url = (base_url or DEFAULT_URL).rstrip("/")
        self.timeout = timeout
        self.on_connected = on_connected
        self.on_disconnected = on_disconnected
        self.on_error = on_error
        self.on_message = on_message

        self.session_url: Optional[str] = None
        self.request_id = 0
        self._pending: Dict[Any, PendingRequest] = {}
        self._http: Optional[aiohttp.ClientSession] = None
        self._stream_task: Optional[asyncio.Task] = None
        self._stream_open = False
        self._ready: Optional[asyncio.Future] = None

    @classmethod
    def from_config(cls, config: ClientConfig, **observers) -> "MCPClient":
        """Create a client from a ClientConfig plus optional observer callbacks"""
        return cls(base_url=config.base_url, timeout=config.timeout, **observers)

    async def __aenter__(self) -> "MCPClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    @property
    def sse_url(self) -> str:
        return f"{self.base_url}/sse"

    @property
    def pending_count(self) -> int:
        """Number of requests still waiting for a reply"""
        return len(self._pending)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Open the event stream and wait for the session endpoint.

        Raises:
            ConnectionTimeoutError: No endpoint event within the timeout
            StreamError: The stream failed before an endpoint arrived
            ConnectionClosedError: disconnect() was called while waiting
        """
        if self._http is not None or self._stream_task is not None:
            logger.info("Replacing existing connection")
            await self.disconnect()

        logger.info(f"Connecting to MCP server: {self.sse_url}")

        loop = asyncio.get_running_loop()
        self._ready = loop.create_future()
        self._http = aiohttp.ClientSession()
        self._stream_task = asyncio.create_task(self._listen_stream())

        try:
            await asyncio.wait_for(self._ready, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"No session endpoint from {self.sse_url} after {self.timeout}s")
            await self.disconnect()
            raise ConnectionTimeoutError("Connection timeout") from None
        except StreamError:
            await self._teardown()
            raise

    async def disconnect(self) -> None:
        """
        Close the stream and fail every outstanding request.

        Safe to call repeatedly; only the first call after a connect() has
        any effect.
        """
        if self._http is None and self._stream_task is None:
            return

        await self._teardown()
        logger.info(f"Disconnected from {self.base_url}")
        self._notify(self.on_disconnected)

    async def _teardown(self) -> None:
        task, self._stream_task = self._stream_task, None
        http, self._http = self._http, None
        self.session_url = None
        self._stream_open = False

        if self._ready is not None and not self._ready.done():
            self._ready.set_exception(ConnectionClosedError("Connection closed"))
        self._ready = None

        pending, self._pending = self._pending, {}
        for entry in pending.values():
            entry.timer.cancel()
            if not entry.future.done():
                entry.future.set_exception(ConnectionClosedError("Connection closed"))
        if pending:
            logger.debug(f"Rejected {len(pending)} pending request(s) on teardown")

        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if http is not None:
            await http.close()

    def is_connected(self) -> bool:
        """True when a session endpoint is known and the stream is still open"""
        return self.session_url is not None and self._stream_open

    # ------------------------------------------------------------------
    # Stream listener
    # ------------------------------------------------------------------

    async def _listen_stream(self) -> None:
        """Read the event stream until it ends, fails, or is cancelled"""
        decoder = SSEDecoder()

        try:
            async with self._http.get(
                self.sse_url,
                headers={"Accept": "text/event-stream"},
                timeout=aiohttp.ClientTimeout(total=None),
            ) as resp:
                if resp.status != 200:
                    error_text = await resp.text()
                    raise StreamError(f"SSE stream error: HTTP {resp.status}: {error_text}")

                self._stream_open = True
                logger.info("SSE connection established")

                async for chunk in resp.content.iter_any():
                    for event in decoder.feed(chunk):
                        self._handle_event(event)

            raise StreamError("SSE stream closed by server")

        except asyncio.CancelledError:
            logger.debug("SSE stream listener cancelled")
            raise
        except StreamError as e:
            self._on_stream_error(e)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._on_stream_error(StreamError(f"SSE connection error: {e}"))
        finally:
            self._stream_open = False

    def _on_stream_error(self, error: StreamError) -> None:
        logger.error(str(error))
        self._stream_open = False
        self._notify(self.on_error, error)

        # Fatal only while connect() is still waiting for the endpoint
        if self.session_url is None and self._ready is not None and not self._ready.done():
            self._ready.set_exception(error)

    def _handle_event(self, event: SSEEvent) -> None:
        if event.event == ENDPOINT_EVENT:
            self._handle_endpoint(event.data)
        elif event.event == MESSAGE_EVENT:
            self._handle_message(event.data)
        else:
            logger.debug(f"Ignoring SSE event: {event.event}")

    def _handle_endpoint(self, data: str) -> None:
        endpoint = decode_endpoint_payload(data)
        self.session_url = resolve_endpoint(endpoint, self.base_url)
        logger.info(f"Session endpoint received: {self.session_url}")

        self._notify(self.on_connected)
        if self._ready is not None and not self._ready.done():
            self._ready.set_result(None)

    def _handle_message(self, data: str) -> None:
        try:
            message = json.loads(data)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in message event: {e}")
            return

        logger.debug(f"Received message: {message}")
        self._notify(self.on_message, message)

        if not isinstance(message, dict):
            return

        request_id = message.get("id")
        if isinstance(request_id, bool) or not isinstance(request_id, (int, str)):
            return

        entry = self._pending.pop(request_id, None)
        if entry is None:
            logger.debug(f"No pending request for id {request_id!r}")
            return

        entry.timer.cancel()
        if entry.future.done():
            return

        error = message.get("error")
        if error is not None:
            entry.future.set_exception(RemoteError.from_error_object(error))
        else:
            entry.future.set_result(message.get("result"))

    def _notify(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception(f"Observer {callback!r} raised")

    # ------------------------------------------------------------------
    # Request correlation
    # ------------------------------------------------------------------

    async def request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Send a JSON-RPC request and wait for its reply on the stream.

        Args:
            method: JSON-RPC method name
            params: Method parameters, omitted from the envelope when None

        Returns:
            The "result" member of the reply

        Raises:
            NotConnectedError: No session endpoint is known
            SendFailureError: The POST failed or returned a non-2xx status
            RemoteError: The server replied with an error object
            RequestTimeoutError: No reply within the timeout
            ConnectionClosedError: disconnect() was called while waiting
        """
        if self.session_url is None:
            raise NotConnectedError("Not connected to MCP server")

        self.request_id += 1
        request_id = self.request_id
        envelope = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
        }
        if params is not None:
            envelope["params"] = params

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        timer = loop.call_later(self.timeout, self._expire, request_id)
        self._pending[request_id] = PendingRequest(method=method, future=future, timer=timer)

        try:
            try:
                await self._post(self.session_url, envelope)
            except SendFailureError as e:
                self._settle(request_id, e)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.error(f"Failed to send {method}: {e}")
                self._settle(request_id, SendFailureError(f"Failed to send {method}: {e}"))

            return await future
        finally:
            # No-op unless the caller was cancelled before a reply
            self._discard(request_id)

    async def _post(self, url: str, envelope: Dict[str, Any]) -> None:
        http = self._http
        if http is None:
            raise SendFailureError("HTTP session closed")

        logger.debug(f"Sending request: {envelope}")
        async with http.post(
            url,
            json=envelope,
            headers={"Content-Type": "application/json"},
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        ) as resp:
            if not 200 <= resp.status < 300:
                error_text = await resp.text()
                logger.error(f"HTTP {resp.status} for {envelope['method']}: {error_text}")
                raise SendFailureError(f"HTTP error: {resp.status}", status=resp.status)

    def _expire(self, request_id: int) -> None:
        entry = self._pending.get(request_id)
        if entry is None:
            return
        logger.warning(f"Request {request_id} ({entry.method}) timed out after {self.timeout}s")
        self._settle(request_id, RequestTimeoutError(entry.method))

    def _settle(self, request_id: int, error: Exception) -> None:
        entry = self._pending.pop(request_id, None)
        if entry is None:
            return
        entry.timer.cancel()
        if not entry.future.done():
            entry.future.set_exception(error)

    def _discard(self, request_id: int) -> None:
        entry = self._pending.pop(request_id, None)
        if entry is not None:
            entry.timer.cancel()

    # ------------------------------------------------------------------
    # MCP methods
    # ------------------------------------------------------------------

    async def initialize(self, name: str, version: str) -> Any:
        """Perform the MCP initialize handshake"""
        capabilities = ClientCapabilities(
            roots=RootsCapability(listChanged=True),
            sampling={},
        )
        return await self.request("initialize", {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": capabilities.model_dump(by_alias=True, exclude_none=True),
            "clientInfo": Implementation(name=name, version=version).model_dump(exclude_none=True),
        })

    async def list_tools(self) -> Any:
        """List the tools the server offers"""
        return await self.request("tools/list")

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Any:
        """Invoke a tool by name"""
        return await self.request("tools/call", {
            "name": name,
            "arguments": arguments or {},
        })

    async def list_resources(self) -> Any:
        """List the resources the server exposes"""
        return await self.request("resources/list")

    async def read_resource(self, uri: str) -> Any:
        """Read one resource by URI"""
        return await self.request("resources/read", {"uri": uri})

    async def list_prompts(self) -> Any:
        """List the prompt templates the server offers"""
        return await self.request("prompts/list")

    async def get_prompt(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Any:
        """Render a prompt template with the given arguments"""
        return await self.request("prompts/get", {
            "name": name,
            "arguments": arguments or {},
        })
