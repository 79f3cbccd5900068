import io
import os
import asyncio
import functools
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

from PIL import Image, ExifTags, UnidentifiedImageError

from ..config import settings
from ..exceptions import BackendSemanticError
from ..logger import logger

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

_executor: Optional[ThreadPoolExecutor] = None


def get_executor() -> ThreadPoolExecutor:
    """Bounded pool for blocking work so it never stalls the event loop."""
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(
            max_workers=max(1, settings.WORKER_POOL_SIZE),
            thread_name_prefix="artiste-worker",
        )
    return _executor


async def run_blocking(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(get_executor(), functools.partial(fn, *args, **kwargs))


def is_png(data: bytes) -> bool:
    return bool(data) and data.startswith(PNG_SIGNATURE)


def normalize_to_png(data: bytes) -> bytes:
    """
    Validate that `data` is an image and return it as PNG bytes.
    PNG payloads are returned untouched.
    """
    if not data:
        raise BackendSemanticError("Backend returned an empty image payload")
    try:
        with Image.open(io.BytesIO(data)) as probe:
            probe.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise BackendSemanticError(f"Backend returned an invalid image: {e}")

    if is_png(data):
        return data

    # verify() leaves the image unusable, reopen for the conversion.
    with Image.open(io.BytesIO(data)) as img:
        if img.mode not in ("RGB", "RGBA", "L", "LA", "P"):
            img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
        buf = io.BytesIO()
        img.save(buf, format="PNG")
    logger.debug(f"Re-encoded backend image to PNG: {len(data)} -> {buf.tell()} bytes")
    return buf.getvalue()


def write_artifact(directory: str, filename: str, data: bytes) -> str:
    os.makedirs(directory, exist_ok=True)
    filepath = os.path.join(directory, os.path.basename(filename))
    with open(filepath, "wb") as f:
        f.write(data)
    return filepath


def _plain(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def extract_metadata(filepath: str) -> Dict[str, Any]:
    """
    Read embedded metadata (PNG text chunks, EXIF tags) from an artifact.
    Returns an empty dict for files Pillow cannot open.
    """
    try:
        with Image.open(filepath) as img:
            metadata: Dict[str, Any] = {
                "ImageFormat": img.format,
                "ImageWidth": img.width,
                "ImageHeight": img.height,
                "ColorMode": img.mode,
            }
            for key, value in img.info.items():
                if key in ("exif", "icc_profile"):
                    continue
                metadata[key] = _plain(value)
            for tag_id, value in img.getexif().items():
                metadata[ExifTags.TAGS.get(tag_id, str(tag_id))] = _plain(value)
            return metadata
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"Failed to read metadata from {filepath}: {e}")
        return {}
