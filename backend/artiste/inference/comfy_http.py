from typing import Any, Dict, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

import httpx

from ..exceptions import BackendTransportError
from ..logger import logger


class ComfyHttpClient:
    """Thin async wrapper around the ComfyUI REST endpoints."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        headers = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @property
    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def websocket_url(self, client_id: str) -> str:
        parts = urlsplit(self.base_url)
        scheme = "wss" if parts.scheme == "https" else "ws"
        path = parts.path.rstrip("/") + "/ws"
        return urlunsplit((scheme, parts.netloc, path, urlencode({"clientId": client_id}), ""))

    async def _request(self, action: str, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"ComfyUI request failed ({action}): {e}")
            raise BackendTransportError(f"Failed to {action}: {e}")
        if not response.is_success:
            raise BackendTransportError(f"Failed to {action}: {response.status_code} - {response.text}")
        return response

    @staticmethod
    def _json(response: httpx.Response, action: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise BackendTransportError(f"Failed to {action}: malformed JSON response ({e})")

    async def queue_prompt(self, workflow: Dict[str, Any], client_id: Optional[str] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"prompt": workflow}
        if client_id:
            body["client_id"] = client_id
        response = await self._request("queue prompt", "POST", "/prompt", json=body)
        data = self._json(response, "queue prompt")
        if not isinstance(data, dict):
            raise BackendTransportError(f"Failed to queue prompt: unexpected response {data!r}")
        return data

    async def get_history(self, prompt_id: str) -> Dict[str, Any]:
        response = await self._request("get prompt status", "GET", f"/history/{prompt_id}")
        data = self._json(response, "get prompt status")
        return data if isinstance(data, dict) else {}

    async def get_queue(self) -> Dict[str, Any]:
        response = await self._request("get prompt queue", "GET", "/queue")
        data = self._json(response, "get prompt queue")
        return data if isinstance(data, dict) else {}

    async def get_image(self, filename: str, subfolder: str = "", type: str = "output") -> bytes:
        response = await self._request(
            "get image",
            "GET",
            "/view",
            params={"filename": filename, "subfolder": subfolder, "type": type},
        )
        return response.content

    async def aclose(self) -> None:
        await self._client.aclose()
