from __future__ import annotations

from typing import Mapping, Optional, Union

from ..logger import logger
from .commands import CommandRequest, is_command, parse_command
from .parameters import ParameterSet, ParseError, Preset, build_parameter_set

ParseResult = Union[ParameterSet, CommandRequest, ParseError]


def parse(
    text: str,
    default_model: Optional[str] = None,
    presets: Optional[Mapping[str, Preset]] = None,
) -> ParseResult:
    """
    Entry point for user text. Slash-prefixed text is routed to command
    parsing; anything else becomes a ParameterSet. Failures come back as a
    ParseError value, nothing is raised to the caller.
    """
    if text is None or not text.strip():
        return ParseError("Please provide a prompt for image generation!")

    try:
        if is_command(text):
            return parse_command(text, presets)
        return build_parameter_set(text, default_model, presets)
    except (ValueError, TypeError, AttributeError) as e:
        logger.warning(f"Failed to parse prompt: {e}", extra={"prompt_text": text})
        return ParseError(f"Could not parse prompt: {e}")
