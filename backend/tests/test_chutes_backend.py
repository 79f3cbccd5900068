import io
import json

import httpx
import pytest
from PIL import Image

from artiste.exceptions import BackendSemanticError, BackendTransportError
from artiste.inference.base import EventKind
from artiste.inference.chutes_http import ChutesHttpClient
from artiste.inference.chutes_runner import ChutesBackend, build_payload
from artiste.inference.imaging import is_png, normalize_to_png


def _image_bytes(fmt="JPEG", size=(16, 8)):
    buf = io.BytesIO()
    Image.new("RGB", size, (200, 40, 40)).save(buf, format=fmt)
    return buf.getvalue()


def make_backend(handler):
    return ChutesBackend(ChutesHttpClient("https://image.chutes.test", token="tok", transport=httpx.MockTransport(handler)))


def test_qwen_payload():
    payload = build_payload({"model": "qwen", "prompt": "a cat", "shift": 3.1, "width": 1328, "height": 1328, "steps": 20, "seed": 5})
    assert payload == {
        "model": "qwen-image",
        "prompt": "a cat",
        "negative_prompt": "",
        "guidance_scale": 3.1,
        "width": 1328,
        "height": 1328,
        "num_inference_steps": 20,
        "seed": 5,
    }


def test_flux_payload_defaults():
    payload = build_payload({"model": "flux", "prompt": "a cat"})
    assert payload["model"] == "FLUX.1-schnell"
    assert payload["guidance_scale"] == 7.5
    assert payload["num_inference_steps"] == 10
    assert (payload["width"], payload["height"], payload["seed"]) == (1024, 1024, 1)
    assert "negative_prompt" not in payload


def test_seed_zero_is_kept():
    assert build_payload({"model": "flux", "seed": 0})["seed"] == 0


def test_unknown_model_is_rejected():
    with pytest.raises(BackendSemanticError):
        build_payload({"model": "sdxl"})


@pytest.mark.asyncio
async def test_generate_reencodes_to_png_and_reads_invocation_id():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, content=_image_bytes("JPEG"), headers={"x-chutes-invocationid": "inv-42"})

    backend = make_backend(handler)
    events = []

    result = await backend.generate({"model": "flux", "prompt": "a cat", "steps": 4}, events.append)

    assert is_png(result.image_data)
    assert result.prompt_id == "inv-42"
    assert result.filename.startswith("chutes_") and result.filename.endswith(".png")
    assert [e.kind for e in events] == [EventKind.STARTED, EventKind.COMPLETED]
    assert events[-1].prompt_id == "inv-42"

    request = seen[0]
    assert request.url.path == "/generate"
    assert request.headers["Authorization"] == "Bearer tok"
    assert json.loads(request.content)["num_inference_steps"] == 4
    assert backend.supports_progress is False


@pytest.mark.asyncio
async def test_generate_non_success_status():
    backend = make_backend(lambda request: httpx.Response(429, text="slow down"))
    events = []

    with pytest.raises(BackendTransportError) as exc_info:
        await backend.generate({"model": "qwen", "prompt": "x"}, events.append)

    assert "429" in exc_info.value.message
    assert [e.kind for e in events] == [EventKind.STARTED]


@pytest.mark.asyncio
async def test_generate_invalid_image():
    backend = make_backend(lambda request: httpx.Response(200, content=b"definitely not an image"))

    with pytest.raises(BackendSemanticError):
        await backend.generate({"model": "flux", "prompt": "x"})


def test_normalize_keeps_png_untouched():
    png = _image_bytes("PNG")
    assert normalize_to_png(png) == png


def test_normalize_converts_cmyk():
    buf = io.BytesIO()
    Image.new("CMYK", (8, 8)).save(buf, format="JPEG")
    out = normalize_to_png(buf.getvalue())
    assert is_png(out)
    with Image.open(io.BytesIO(out)) as img:
        assert img.mode == "RGB"


@pytest.mark.asyncio
async def test_create_backend_follows_settings(tmp_path):
    from types import SimpleNamespace

    from artiste.inference.comfy_runner import ComfyBackend
    from artiste.inference.factory import create_backend

    base = dict(
        COMFYUI_URL="http://comfy.test:8188",
        COMFYUI_TOKEN=None,
        WORKFLOW_PATH=str(tmp_path),
        POLL_INTERVAL_SECONDS=0.5,
        CHUTES_URL="https://image.chutes.test",
        CHUTES_TOKEN="tok",
        HTTP_TIMEOUT_SECONDS=5.0,
    )

    comfy = create_backend(SimpleNamespace(IMAGE_GENERATION_BACKEND="ComfyUI", **base))
    chutes = create_backend(SimpleNamespace(IMAGE_GENERATION_BACKEND="chutes", **base))
    try:
        assert isinstance(comfy, ComfyBackend)
        assert comfy.supports_progress is True
        assert isinstance(chutes, ChutesBackend)
        assert chutes.supports_progress is False
    finally:
        await comfy.aclose()
        await chutes.aclose()

    with pytest.raises(ValueError):
        create_backend(SimpleNamespace(IMAGE_GENERATION_BACKEND="dalle", **base))
