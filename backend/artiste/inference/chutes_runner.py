import time
import uuid
from typing import Any, Dict, Optional

from ..exceptions import BackendSemanticError
from ..logger import logger
from .base import (
    EventCallback,
    EventKind,
    GenerationBackend,
    GenerationEvent,
    GenerationResult,
    as_params,
    emit,
)
from .chutes_http import ChutesHttpClient
from .imaging import normalize_to_png, run_blocking


def _value(params: Dict[str, Any], key: str, default: Any) -> Any:
    value = params.get(key)
    return default if value is None else value


def build_payload(params: Dict[str, Any]) -> Dict[str, Any]:
    model = params.get("model") or "flux"
    if model == "qwen":
        return {
            "model": "qwen-image",
            "prompt": params.get("prompt") or "",
            "negative_prompt": params.get("negative_prompt") or "",
            "guidance_scale": _value(params, "shift", 4.0),
            "width": _value(params, "width", 1024),
            "height": _value(params, "height", 1024),
            "num_inference_steps": _value(params, "steps", 50),
            "seed": _value(params, "seed", 1),
        }
    if model == "flux":
        return {
            "model": "FLUX.1-schnell",
            "prompt": params.get("prompt") or "",
            "guidance_scale": 7.5,
            "width": _value(params, "width", 1024),
            "height": _value(params, "height", 1024),
            "num_inference_steps": _value(params, "steps", 10),
            "seed": _value(params, "seed", 1),
        }
    raise BackendSemanticError(
        f"Unsupported model: {model}. Supported models are: qwen, flux",
        code="UNSUPPORTED_MODEL",
    )


class ChutesBackend(GenerationBackend):
    """Single-request backend: the HTTP response body is the image."""

    name = "chutes"
    supports_progress = False

    def __init__(self, http: ChutesHttpClient):
        self.http = http

    async def generate(self, params: Any, on_event: Optional[EventCallback] = None) -> GenerationResult:
        payload = build_payload(as_params(params))

        await emit(on_event, GenerationEvent(EventKind.STARTED))
        image_data, prompt_id = await self.http.generate_image(payload)
        logger.info(
            "Chutes generation finished",
            extra={"prompt_id": prompt_id, "model": payload["model"], "bytes": len(image_data)},
        )
        png_data = await run_blocking(normalize_to_png, image_data)
        await emit(on_event, GenerationEvent(EventKind.COMPLETED, prompt_id))

        filename = f"chutes_{int(time.time())}_{uuid.uuid4().hex[:8]}.png"
        return GenerationResult(image_data=png_data, prompt_id=prompt_id, filename=filename)

    async def aclose(self) -> None:
        await self.http.aclose()
