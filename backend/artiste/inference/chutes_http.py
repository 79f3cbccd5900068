from typing import Any, Dict, Optional, Tuple

import httpx

from ..exceptions import BackendTransportError
from ..logger import logger

INVOCATION_ID_HEADER = "x-chutes-invocationid"


class ChutesHttpClient:
    def __init__(
        self,
        base_url: str = "https://image.chutes.ai",
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"content-type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def generate_image(self, payload: Dict[str, Any]) -> Tuple[bytes, Optional[str]]:
        """Returns the raw image bytes and the invocation id, if the server sent one."""
        try:
            response = await self._client.post("/generate", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Chutes request failed: {e}", extra={"model": payload.get("model")})
            raise BackendTransportError(f"Failed to generate image: {e}")
        if not response.is_success:
            raise BackendTransportError(f"Failed to generate image: {response.status_code} - {response.text}")
        return response.content, response.headers.get(INVOCATION_ID_HEADER)

    async def aclose(self) -> None:
        await self._client.aclose()
