from .base import GenerationBackend
from .chutes_http import ChutesHttpClient
from .chutes_runner import ChutesBackend
from .comfy_http import ComfyHttpClient
from .comfy_runner import ComfyBackend


def create_backend(settings) -> GenerationBackend:
    """Build the backend named by IMAGE_GENERATION_BACKEND."""
    kind = (settings.IMAGE_GENERATION_BACKEND or "").strip().lower()
    if kind == "comfyui":
        http = ComfyHttpClient(
            settings.COMFYUI_URL,
            token=settings.COMFYUI_TOKEN,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
        return ComfyBackend(http, settings.WORKFLOW_PATH, poll_interval=settings.POLL_INTERVAL_SECONDS)
    if kind == "chutes":
        http = ChutesHttpClient(
            settings.CHUTES_URL,
            token=settings.CHUTES_TOKEN,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
        return ChutesBackend(http)
    raise ValueError(f"Unknown image generation backend: {settings.IMAGE_GENERATION_BACKEND!r}")
