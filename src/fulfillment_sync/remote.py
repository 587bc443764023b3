"""WebSocket/HTTP document store adapter with exponential backoff reconnection.

Subscriptions share one WebSocket connection; writes go over HTTP.

Client messages::

    {"type": "subscribe", "subscription_id": "...", "path": "..."}
    {"type": "unsubscribe", "subscription_id": "..."}
    {"type": "pong", "timestamp": ...}

Server messages::

    {"type": "snapshot", "subscription_id": "...", "documents": [{"id": "...", "data": {...}}]}
    {"type": "error", "subscription_id": "...", "message": "..."}
    {"type": "ping", "timestamp": ...}
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import uuid
from collections.abc import Coroutine, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional
from urllib.parse import quote

import httpx
import websockets
from websockets import ConnectionClosed

from .adapter import ErrorCallback, SnapshotCallback, Unsubscribe
from .config import StoreConfig
from .models import Document

logger = logging.getLogger(__name__)


class ConnectionStatus:
    """Connection status constants"""
    CONNECTED = "Connected"
    RECONNECTING = "Reconnecting"
    OFFLINE = "Offline"
    FAILED = "Failed"


class RemoteStoreError(Exception):
    """Error reported by the document service for a subscription."""


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_payload(payload: Mapping[str, Any]) -> str:
    """Serialize a payload to JSON, writing datetimes as ISO 8601."""
    return json.dumps(payload, default=_json_default)


def _parse_documents(items: Any) -> list[Document]:
    """Build Documents from a snapshot payload, skipping malformed entries."""
    if items is None:
        return []
    if not isinstance(items, list):
        raise RemoteStoreError("Snapshot documents must be a list")
    documents = []
    for item in items:
        if not isinstance(item, dict) or item.get("id") in (None, ""):
            logger.warning("Skipping snapshot document without an id")
            continue
        data = item.get("data") or {}
        if not isinstance(data, dict):
            logger.warning("Skipping snapshot document %s with non-object data", item["id"])
            continue
        documents.append(Document(id=str(item["id"]), data=data))
    return documents


@dataclass
class _RemoteSubscription:
    path: str
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback


class WebSocketStoreAdapter:
    """
    Remote document store adapter.

    Handles:
    - One shared WebSocket for all collection subscriptions
    - Re-registration of subscriptions after reconnecting
    - Heartbeat (pong responses)
    - Automatic reconnection with exponential backoff
    - Document writes over HTTP
    """

    # Reconnection configuration
    MAX_RECONNECT_ATTEMPTS = 10
    BASE_DELAY_SECONDS = 0.5  # 500ms
    MAX_DELAY_SECONDS = 30.0
    JITTER_RANGE = 1.0  # +/- 1 second

    def __init__(
        self,
        ws_url: str,
        api_url: str,
        token: Optional[str] = None,
        *,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the adapter.

        Args:
            ws_url: WebSocket base URL (e.g., wss://docs.example.com)
            api_url: HTTP API base URL (e.g., https://docs.example.com/api)
            token: Bearer token sent with every request
            timeout: HTTP timeout in seconds
            http_client: Pre-configured client (tests); created lazily otherwise
        """
        self.ws_url = ws_url.rstrip("/")
        self.api_url = api_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._http = http_client
        self._owns_http = http_client is None
        self.ws: Optional[websockets.ClientConnection] = None
        self.connected = False
        self.status = ConnectionStatus.OFFLINE
        self.reconnect_attempts = 0
        self._subscriptions: dict[str, _RemoteSubscription] = {}
        self._runner: Optional[asyncio.Task] = None
        self._pending: set[asyncio.Task] = set()
        self._closing = False

    @classmethod
    def from_config(cls, store: StoreConfig, token: Optional[str] = None) -> WebSocketStoreAdapter:
        return cls(store.ws_url, store.api_url, token, timeout=store.timeout_seconds)

    def _headers(self) -> dict[str, str]:
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    # ── Subscriptions ────────────────────────────────────────────

    def subscribe(self, path: str, on_snapshot: SnapshotCallback, on_error: ErrorCallback) -> Unsubscribe:
        """Register a collection subscription.

        Must be called with a running event loop; the connection is
        opened on first use.
        """
        loop = asyncio.get_running_loop()
        subscription_id = uuid.uuid4().hex
        self._subscriptions[subscription_id] = _RemoteSubscription(path, on_snapshot, on_error)
        self._closing = False
        if self._runner is None or self._runner.done():
            self._runner = loop.create_task(self._run())
        elif self.connected:
            self._spawn(loop, self._send_subscribe(subscription_id))

        def _unsubscribe() -> None:
            if self._subscriptions.pop(subscription_id, None) is None:
                return
            if self.connected:
                self._spawn(loop, self._send({"type": "unsubscribe", "subscription_id": subscription_id}))

        return _unsubscribe

    def _spawn(self, loop: asyncio.AbstractEventLoop, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        # The loop only keeps weak references to tasks.
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Document service send failed: %s", task.exception())

    async def _send_subscribe(self, subscription_id: str) -> None:
        sub = self._subscriptions.get(subscription_id)
        if sub is None:
            return
        await self._send({"type": "subscribe", "subscription_id": subscription_id, "path": sub.path})

    async def _send(self, message: dict) -> None:
        if not self.connected or not self.ws:
            return
        try:
            await self.ws.send(encode_payload(message))
        except ConnectionClosed:
            self.connected = False
            self.status = ConnectionStatus.OFFLINE

    # ── Connection management ────────────────────────────────────

    async def connect(self) -> None:
        """Open the WebSocket and register every known subscription."""
        uri = f"{self.ws_url}/ws/v1/documents/"
        self.ws = await websockets.connect(
            uri,
            additional_headers=self._headers(),
            ping_interval=None,  # Heartbeat is handled by the server's ping
            ping_timeout=None,
        )
        self.connected = True
        self.status = ConnectionStatus.CONNECTED
        logger.debug("Connected to document service at %s", uri)
        for subscription_id in list(self._subscriptions):
            await self._send_subscribe(subscription_id)

    async def disconnect(self) -> None:
        """Close the WebSocket connection"""
        if self.ws:
            await self.ws.close()
        self.connected = False
        self.status = ConnectionStatus.OFFLINE

    def get_reconnect_delay(self, attempt: int) -> float:
        """
        Calculate reconnect delay for a given attempt number.

        Formula: delay = min(500ms * 2^attempt, 30s)

        Args:
            attempt: The attempt number (0-indexed)

        Returns:
            Delay in seconds (without jitter)
        """
        return min(
            self.BASE_DELAY_SECONDS * (2 ** attempt),
            self.MAX_DELAY_SECONDS
        )

    async def _run(self) -> None:
        """Connect, listen, and reconnect with backoff until closed."""
        while not self._closing and self._subscriptions:
            try:
                await self.connect()
                self.reconnect_attempts = 0
                await self._listen()
            except asyncio.CancelledError:
                raise
            except (OSError, ConnectionClosed, websockets.InvalidHandshake, websockets.InvalidURI) as exc:
                logger.warning("Document service connection failed: %s", exc)
                self.connected = False
                self.status = ConnectionStatus.OFFLINE
                self._fail_subscriptions(ConnectionError(f"Connection to document service failed: {exc}"))

            if self._closing or not self._subscriptions:
                break
            if self.reconnect_attempts >= self.MAX_RECONNECT_ATTEMPTS:
                self.status = ConnectionStatus.FAILED
                logger.warning("Max reconnection attempts reached; giving up")
                return

            self.status = ConnectionStatus.RECONNECTING
            delay = self.get_reconnect_delay(self.reconnect_attempts)
            # Add jitter to prevent thundering herd
            delay = max(0, delay + random.uniform(-self.JITTER_RANGE, self.JITTER_RANGE))
            self.reconnect_attempts += 1
            logger.info(
                "Reconnecting to document service (%d/%d) in %.1fs",
                self.reconnect_attempts,
                self.MAX_RECONNECT_ATTEMPTS,
                delay,
            )
            await asyncio.sleep(delay)

    async def _listen(self) -> None:
        """Dispatch server messages in arrival order until the socket closes."""
        assert self.ws is not None
        try:
            async for message in self.ws:
                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    logger.warning("Discarding malformed message from document service")
                    continue
                await self._dispatch(data)
        finally:
            self.connected = False
            self.status = ConnectionStatus.OFFLINE
        if not self._closing:
            self._fail_subscriptions(ConnectionError("Connection closed by document service"))

    async def _dispatch(self, data: Any) -> None:
        """Handle one decoded message without letting it end the connection.

        A failure while handling a subscription's message is reported to
        that subscription's error callback.
        """
        if not isinstance(data, dict):
            logger.warning("Discarding non-object message from document service")
            return
        try:
            await self._handle_message(data)
        except Exception as exc:
            sub = self._subscriptions.get(str(data.get("subscription_id", "")))
            logger.warning("Failed to handle %s message: %s", data.get("type"), exc)
            if sub is not None:
                sub.on_error(RemoteStoreError(f"Failed to handle {data.get('type')} message: {exc}"))

    async def _handle_message(self, data: dict) -> None:
        msg_type = data.get("type")
        if msg_type == "snapshot":
            sub = self._subscriptions.get(data.get("subscription_id", ""))
            if sub is not None:
                sub.on_snapshot(_parse_documents(data.get("documents")))
        elif msg_type == "error":
            sub = self._subscriptions.get(data.get("subscription_id", ""))
            if sub is not None:
                sub.on_error(RemoteStoreError(data.get("message") or "Subscription error"))
        elif msg_type == "ping":
            await self._send({"type": "pong", "timestamp": data.get("timestamp")})
        else:
            logger.debug("Ignoring unknown message type: %s", msg_type)

    def _fail_subscriptions(self, exc: BaseException) -> None:
        for sub in list(self._subscriptions.values()):
            sub.on_error(exc)

    async def aclose(self) -> None:
        """Stop reconnecting, close the socket and the HTTP client."""
        self._closing = True
        if self._runner is not None and not self._runner.done():
            self._runner.cancel()
            try:
                await self._runner
            except asyncio.CancelledError:
                pass
        self._runner = None
        for task in list(self._pending):
            task.cancel()
        await self.disconnect()
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    # ── Writes ───────────────────────────────────────────────────

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout)
        return self._http

    def _document_url(self, path: str, record_id: Optional[str] = None) -> str:
        url = f"{self.api_url}/documents/{quote(path.strip('/'))}"
        if record_id is not None:
            url = f"{url}/{quote(record_id, safe='')}"
        return url

    async def _request(self, method: str, url: str, payload: Optional[Mapping[str, Any]] = None) -> httpx.Response:
        headers = self._headers()
        content = None
        if payload is not None:
            headers["Content-Type"] = "application/json"
            content = encode_payload(payload)
        response = await self._client().request(method, url, headers=headers, content=content)
        response.raise_for_status()
        return response

    async def create(self, path: str, fields: Mapping[str, Any]) -> str:
        response = await self._request("POST", self._document_url(path), fields)
        body = response.json()
        record_id = body.get("id") if isinstance(body, dict) else None
        if not record_id:
            raise RemoteStoreError("Document service did not return an id")
        return str(record_id)

    async def update(self, path: str, record_id: str, patch: Mapping[str, Any]) -> None:
        await self._request("PATCH", self._document_url(path, record_id), patch)

    async def remove(self, path: str, record_id: str) -> None:
        await self._request("DELETE", self._document_url(path, record_id))
