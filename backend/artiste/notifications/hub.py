"""
Fan-out of gallery events to connected WebSocket subscribers.

A hub either delivers events to its own subscribers or, when a peer URL is
configured, relays each event once to the peer's `/api/broadcast` endpoint
and sends nothing locally. Worker processes without subscribers use the
relay mode to reach the web process.
"""
import json
import time
import asyncio
from typing import Any, Dict, List, Optional, Union

import httpx

from ..logger import logger

NEW_PHOTO = "new_photo"
PHOTO_UPDATED = "photo_updated"


class NotificationHub:
    def __init__(
        self,
        peer_url: Optional[str] = None,
        peer_token: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        storage_root: str = "db/photos",
    ):
        self.peer_url = peer_url.rstrip("/") if peer_url else None
        self.peer_token = peer_token
        self.storage_root = storage_root.rstrip("/")
        self._http = http_client
        self._owns_http = http_client is None
        self._subscribers: List[Any] = []
        self._lock = asyncio.Lock()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def register(self, ws: Any) -> None:
        async with self._lock:
            if ws not in self._subscribers:
                self._subscribers.append(ws)
        logger.debug(f"Subscriber registered, {len(self._subscribers)} connected")

    async def unregister(self, ws: Any) -> None:
        async with self._lock:
            if ws in self._subscribers:
                self._subscribers.remove(ws)

    async def broadcast(self, event: Union[Dict[str, Any], str]) -> None:
        if self.peer_url:
            await self._forward_to_peer(event)
        else:
            await self._local_broadcast(event)

    async def _local_broadcast(self, event: Union[Dict[str, Any], str]) -> None:
        async with self._lock:
            snapshot = list(self._subscribers)
        if not snapshot:
            return

        message = event if isinstance(event, str) else json.dumps(event, default=str)
        failed = []
        for ws in snapshot:
            try:
                await ws.send_text(message)
            except Exception as e:
                logger.debug(f"Dropping subscriber after failed send: {e}")
                failed.append(ws)

        for ws in failed:
            await self.unregister(ws)

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=10.0)
        return self._http

    async def _forward_to_peer(self, event: Union[Dict[str, Any], str]) -> None:
        headers = {"content-type": "application/json"}
        if self.peer_token:
            headers["Authorization"] = f"Bearer {self.peer_token}"
        body = event if isinstance(event, str) else json.dumps(event, default=str)

        try:
            response = await self._client().post(f"{self.peer_url}/api/broadcast", content=body, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"Error forwarding message to peer: {e}", extra={"peer_url": self.peer_url})
            return
        if not response.is_success:
            logger.warning(
                f"Failed to forward message to peer: {response.status_code}",
                extra={"peer_url": self.peer_url, "response_body": response.text[:500]},
            )

    def _relative(self, photo_path: str) -> str:
        prefix = self.storage_root + "/"
        if photo_path.startswith(prefix):
            return photo_path[len(prefix):]
        return photo_path

    def photo_event(self, kind: str, photo_path: str, task: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        rel_path = self._relative(photo_path)
        return {
            "type": kind,
            "photo_path": rel_path,
            "photo_url": f"/photo/{rel_path}",
            "task": task,
        }

    async def notify_new_photo(self, photo_path: str, task: Optional[Dict[str, Any]] = None) -> None:
        await self.broadcast(self.photo_event(NEW_PHOTO, photo_path, task))

    async def notify_photo_updated(self, photo_path: str, task: Optional[Dict[str, Any]] = None) -> None:
        await self.broadcast(self.photo_event(PHOTO_UPDATED, photo_path, task))

    async def handle_message(self, ws: Any, raw: str) -> None:
        """Answer pings; anything else from a subscriber is ignored."""
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return
        if isinstance(data, dict) and data.get("type") == "ping":
            await ws.send_text(json.dumps({"type": "pong", "timestamp": int(time.time())}))

    async def aclose(self) -> None:
        async with self._lock:
            self._subscribers.clear()
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None
