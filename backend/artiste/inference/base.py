from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

DEFAULT_MAX_WAIT_SECONDS = 1000


class EventKind(str, Enum):
    STARTED = "started"
    RUNNING = "running"
    PROGRESS = "progress"
    COMPLETED = "completed"


@dataclass
class GenerationEvent:
    kind: EventKind
    prompt_id: Optional[str] = None
    # Distinct percentages seen so far, one entry per sampling stage.
    progress: List[int] = field(default_factory=list)


@dataclass
class GenerationResult:
    image_data: bytes
    prompt_id: Optional[str]
    filename: str


EventCallback = Callable[[GenerationEvent], Union[None, Awaitable[None]]]


async def emit(on_event: Optional[EventCallback], event: GenerationEvent) -> None:
    """Invoke a sync or async event callback."""
    if on_event is None:
        return
    result = on_event(event)
    if inspect.isawaitable(result):
        await result


def as_params(params: Any) -> Dict[str, Any]:
    """Accept a ParameterSet or a plain mapping."""
    if hasattr(params, "as_dict"):
        return params.as_dict()
    if isinstance(params, Mapping):
        return dict(params)
    raise TypeError(f"Unsupported parameter container: {type(params).__name__}")


class GenerationBackend(ABC):
    """
    A remote image generation service.

    `supports_progress` tells orchestration code whether `running`/`progress`
    events will ever arrive; backends without it only emit `started` and
    `completed`.
    """

    name: str = "backend"
    supports_progress: bool = False

    @abstractmethod
    async def generate(self, params: Any, on_event: Optional[EventCallback] = None) -> GenerationResult:
        ...

    async def generate_and_wait(
        self,
        params: Any,
        max_wait_seconds: float = DEFAULT_MAX_WAIT_SECONDS,
        on_event: Optional[EventCallback] = None,
    ) -> GenerationResult:
        return await self.generate(params, on_event)

    async def aclose(self) -> None:
        return None
