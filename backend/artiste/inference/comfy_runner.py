import os
import json
import time
import uuid
import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

import websockets

from ..exceptions import (
    BackendSemanticError,
    BackendTransportError,
    GenerationTimeoutError,
    WorkflowTemplateError,
)
from ..logger import logger
from .base import (
    DEFAULT_MAX_WAIT_SECONDS,
    EventCallback,
    EventKind,
    GenerationBackend,
    GenerationEvent,
    GenerationResult,
    as_params,
    emit,
)
from .comfy_http import ComfyHttpClient

TEXT_PARAMS = ("prompt", "negative_prompt")


def load_workflow_template(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.error(f"Workflow file not found: {path}")
        raise WorkflowTemplateError(f"Workflow file not found: {path}")
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in workflow file: {e}")
        raise WorkflowTemplateError(f"Invalid JSON in workflow file {path}: {e}")
    if not isinstance(data, dict):
        raise WorkflowTemplateError(f"Workflow file {path} is not a JSON object")
    return data


def build_workflow(model: str, params: Dict[str, Any], workflow_path: str) -> Tuple[Dict[str, Any], str]:
    """
    Load `workflow_<model>.json` and inject `params` into the nodes named by
    its `x-params` block. Returns the workflow and the id of its output node.
    """
    workflow = load_workflow_template(os.path.join(workflow_path, f"workflow_{model}.json"))

    x_params = workflow.pop("x-params", None)
    if not isinstance(x_params, dict):
        raise WorkflowTemplateError(f"Workflow for model '{model}' has no x-params block")
    output = x_params.pop("output", None)
    if not output:
        raise WorkflowTemplateError(f"Workflow for model '{model}' does not declare an output node")

    for key, node_id in x_params.items():
        node = workflow.get(str(node_id))
        if not isinstance(node, dict) or key not in params:
            continue
        value = params[key]
        inputs = node.setdefault("inputs", {})
        if key in TEXT_PARAMS:
            inputs["text"] = "" if value is None else str(value)
        else:
            inputs["value"] = value

    return workflow, str(output)


class ProgressTracker:
    """
    Deduplicated progress history. Each entry is one sampling stage; a
    report following a finished (100%) stage opens a new one.
    """

    def __init__(self):
        self.stages: List[int] = []

    def record(self, percent: int) -> bool:
        if self.stages and self.stages[-1] == percent:
            return False
        if not self.stages or self.stages[-1] == 100:
            self.stages.append(percent)
        else:
            self.stages[-1] = percent
        return True


def progress_percent(data: Dict[str, Any]) -> Optional[int]:
    try:
        value = float(data["value"])
        maximum = float(data["max"])
    except (KeyError, TypeError, ValueError):
        return None
    if maximum <= 0:
        return None
    return int(round(value / maximum * 100))


def _is_running(queue: Dict[str, Any], prompt_id: str) -> bool:
    for entry in queue.get("queue_running") or []:
        if isinstance(entry, (list, tuple)) and len(entry) > 1 and entry[1] == prompt_id:
            return True
    return False


def _execution_errors(status: Dict[str, Any]) -> List[str]:
    errors = []
    for message in status.get("messages") or []:
        if not isinstance(message, (list, tuple)) or len(message) < 2:
            continue
        kind, payload = message[0], message[1]
        if kind != "execution_error":
            continue
        if isinstance(payload, dict) and payload.get("exception_message"):
            errors.append(str(payload["exception_message"]).strip())
        else:
            errors.append(json.dumps(payload, default=str))
    return errors


class ComfyBackend(GenerationBackend):
    """
    Submits a workflow to ComfyUI, then polls `/queue` and `/history` until
    the prompt finishes while a WebSocket subscription reports progress.
    """

    name = "comfyui"
    supports_progress = True

    def __init__(
        self,
        http: ComfyHttpClient,
        workflow_path: str,
        poll_interval: float = 1.0,
        ws_connect: Optional[Callable[..., Any]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.http = http
        self.workflow_path = workflow_path
        self.poll_interval = poll_interval
        self._ws_connect = ws_connect or websockets.connect
        self._clock = clock

    async def generate(self, params: Any, on_event: Optional[EventCallback] = None) -> GenerationResult:
        return await self.generate_and_wait(params, DEFAULT_MAX_WAIT_SECONDS, on_event)

    async def generate_and_wait(
        self,
        params: Any,
        max_wait_seconds: float = DEFAULT_MAX_WAIT_SECONDS,
        on_event: Optional[EventCallback] = None,
    ) -> GenerationResult:
        params = as_params(params)
        model = params.get("model") or "flux"
        workflow, output_node = build_workflow(model, params, self.workflow_path)

        client_id = uuid.uuid4().hex
        queued = await self.http.queue_prompt(workflow, client_id)
        prompt_id = queued.get("prompt_id")
        if not prompt_id:
            raise BackendTransportError(f"Failed to get prompt ID from ComfyUI response: {queued}")

        logger.info(
            f"Queued ComfyUI prompt {prompt_id}",
            extra={"prompt_id": prompt_id, "model": model, "client_id": client_id},
        )
        await emit(on_event, GenerationEvent(EventKind.STARTED, prompt_id))

        listener = asyncio.create_task(self._listen(client_id, prompt_id, on_event))
        try:
            result = await self._poll(prompt_id, output_node, max_wait_seconds, on_event)
        finally:
            await self._close_listener(listener)

        await emit(on_event, GenerationEvent(EventKind.COMPLETED, prompt_id))
        return result

    async def _poll(
        self,
        prompt_id: str,
        output_node: str,
        max_wait_seconds: float,
        on_event: Optional[EventCallback],
    ) -> GenerationResult:
        running_since: Optional[float] = None

        while True:
            if running_since is None:
                queue = await self.http.get_queue()
                if _is_running(queue, prompt_id):
                    running_since = self._clock()
                    await emit(on_event, GenerationEvent(EventKind.RUNNING, prompt_id))

            history = await self.http.get_history(prompt_id)
            entry = history.get(prompt_id)
            if isinstance(entry, dict):
                status = entry.get("status") or {}
                status_str = status.get("status_str")

                if status_str == "error":
                    errors = _execution_errors(status)
                    logger.error(
                        f"ComfyUI prompt {prompt_id} failed",
                        extra={"prompt_id": prompt_id, "errors": errors},
                    )
                    raise BackendSemanticError.from_messages(errors)

                if status_str == "success":
                    outputs = entry.get("outputs") or {}
                    images = (outputs.get(output_node) or {}).get("images") or []
                    if not images:
                        raise BackendSemanticError("No images found in completed generation")
                    image_info = images[0]
                    filename = image_info.get("filename")
                    if not filename:
                        raise BackendSemanticError("Completed generation reported an image without a filename")
                    image_data = await self.http.get_image(
                        filename,
                        image_info.get("subfolder", ""),
                        image_info.get("type", "output"),
                    )
                    return GenerationResult(image_data=image_data, prompt_id=prompt_id, filename=filename)

            if running_since is not None and self._clock() - running_since > max_wait_seconds:
                raise GenerationTimeoutError(max_wait_seconds)

            await asyncio.sleep(self.poll_interval)

    async def _listen(self, client_id: str, prompt_id: str, on_event: Optional[EventCallback]) -> None:
        url = self.http.websocket_url(client_id)
        kwargs = {}
        if self.http.auth_headers:
            kwargs["additional_headers"] = self.http.auth_headers
        tracker = ProgressTracker()

        try:
            async with self._ws_connect(url, **kwargs) as ws:
                async for raw in ws:
                    if not isinstance(raw, str):
                        # binary frames carry preview images
                        continue
                    try:
                        message = json.loads(raw)
                    except ValueError:
                        continue
                    if not isinstance(message, dict) or message.get("type") != "progress":
                        continue
                    data = message.get("data")
                    if not isinstance(data, dict) or data.get("prompt_id") != prompt_id:
                        continue
                    percent = progress_percent(data)
                    if percent is None or not tracker.record(percent):
                        continue
                    await emit(
                        on_event,
                        GenerationEvent(EventKind.PROGRESS, prompt_id, list(tracker.stages)),
                    )
        except (websockets.exceptions.WebSocketException, OSError, asyncio.TimeoutError) as e:
            logger.warning(
                f"ComfyUI progress stream closed: {e}",
                extra={"prompt_id": prompt_id, "client_id": client_id},
            )

    async def _close_listener(self, listener: "asyncio.Task") -> None:
        if not listener.done():
            listener.cancel()
        results = await asyncio.gather(listener, return_exceptions=True)
        error = results[0]
        if isinstance(error, Exception):
            logger.warning(f"ComfyUI progress listener failed: {error}")

    async def aclose(self) -> None:
        await self.http.aclose()
