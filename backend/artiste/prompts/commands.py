from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Pattern, Tuple, Union

from .aspect_ratio import parse_ratio
from .parameters import ParameterSet, ParseError, Preset, build_parameter_set, extract_parameters

COMMAND_MARKER = "/"


class CommandKind(str, Enum):
    SET_SETTINGS = "set_settings"
    GET_SETTINGS = "get_settings"
    DETAILS = "details"
    HELP = "help"
    TEXT = "text"
    VIDEO = "video"
    EDIT = "edit"
    GENERATE = "generate"
    CREATE_PRESET = "create_preset"
    LIST_PRESETS = "list_presets"
    UPDATE_PRESET = "update_preset"
    DELETE_PRESET = "delete_preset"
    SHOW_PRESET = "show_preset"
    UNKNOWN = "unknown"


@dataclass
class CommandRequest:
    kind: CommandKind
    raw: str
    args: Dict[str, Any] = field(default_factory=dict)
    parameters: Optional[ParameterSet] = None


ArgParser = Callable[[str, Optional[Mapping[str, Preset]]], Union[Dict[str, Any], ParameterSet, ParseError]]


@dataclass(frozen=True)
class CommandSpec:
    kind: CommandKind
    pattern: Pattern[str]
    parse_args: Optional[ArgParser] = None


def _no_args(name: str) -> Pattern[str]:
    return re.compile(rf"^/{name}(?:\s|$)")


def _with_args(name: str) -> Pattern[str]:
    return re.compile(rf"^/{name}\s+(.+)$", re.S)


def _parse_generate(args: str, presets):
    return build_parameter_set(args, "flux", presets)


def _parse_edit(args: str, presets):
    params = build_parameter_set(args, "qwen-image-edit", presets)
    has_image = bool(params.get("image"))
    has_task = bool(params.get("task_id"))
    if not has_image and not has_task:
        return ParseError(
            "Please provide either an image URL or filename using --image <ref>, "
            "or a task ID using --task <id> parameter for editing."
        )
    if has_image and has_task:
        return ParseError("Please provide either an image (URL or filename) or a task ID, but not both.")
    if not params.prompt:
        return ParseError("Please provide a prompt for the edit command.")
    return params


VIDEO_RESOLUTIONS = {
    "sixteen_nine": "1280*720",
    "nine_sixteen": "720*1280",
    "widescreen": "832*480",
    "portrait": "480*832",
    "square": "1024*1024",
}
_VIDEO_RATIO_TOLERANCE = 0.1


def select_video_resolution(aspect_ratio: Optional[str]) -> str:
    ratio = parse_ratio(aspect_ratio or "1:1")
    value = ratio[0] / ratio[1] if ratio else 1.0
    if abs(value - 16 / 9) <= _VIDEO_RATIO_TOLERANCE:
        return VIDEO_RESOLUTIONS["sixteen_nine"]
    if abs(value - 9 / 16) <= _VIDEO_RATIO_TOLERANCE:
        return VIDEO_RESOLUTIONS["nine_sixteen"]
    if abs(value - 1.0) <= _VIDEO_RATIO_TOLERANCE:
        return VIDEO_RESOLUTIONS["square"]
    if value > 16 / 9:
        return VIDEO_RESOLUTIONS["widescreen"]
    return VIDEO_RESOLUTIONS["portrait"]


_FRAMES_RE = re.compile(r"(?<![\w-])(?:--frames|-f)\s+(\d+)")
_GUIDANCE_RE = re.compile(r"(?<![\w-])(?:--guidance|-g)\s+(\d+(?:\.\d+)?)")


def _parse_video(args: str, presets):
    params = build_parameter_set(args, "wan2.2", presets)
    prompt = params.prompt
    frames = _FRAMES_RE.search(prompt)
    guidance = _GUIDANCE_RE.search(prompt)
    prompt = _GUIDANCE_RE.sub(" ", _FRAMES_RE.sub(" ", prompt))
    params.prompt = re.sub(r"\s+", " ", prompt).strip()
    params.values["resolution"] = select_video_resolution(params.get("aspect_ratio"))
    params.values["frames"] = int(frames.group(1)) if frames else None
    params.values["guidance"] = float(guidance.group(1)) if guidance else None
    if not params.prompt:
        return ParseError("Please provide a prompt for the video command.")
    return params


TEXT_MODELS = {
    "qwen": "Qwen/Qwen3-235B-A22B-Instruct-2507",
    "qwen-coder": "Qwen/Qwen3-Coder-480B-A35B-Instruct-FP8",
    "llama": "nvidia/Llama-3_3-Nemotron-Super-49B-v1_5",
    "glm-4": "zai-org/GLM-4-32B-0414",
    "glm-4.5": "zai-org/GLM-4.5-FP8",
    "deepseek-r1": "deepseek-ai/DeepSeek-R1",
    "deepseek-v3": "deepseek-ai/DeepSeek-V3.1",
    "gpt-oss": "openai/gpt-oss-120b",
}
_TEXT_MODEL_RE = re.compile(r"(?<![\w-])(?:--model(?:=|\s+)|-m\s+)(\S+)")
_TEMPERATURE_RE = re.compile(r"(?<![\w-])(?:--temperature(?:=|\s+)|-t\s+)(\d+(?:\.\d+)?)")
_NO_SYSTEM_RE = re.compile(r"(?<![\w-])--no-system(?![\w-])")


def _parse_text(args: str, presets):
    model = "qwen"
    match = _TEXT_MODEL_RE.search(args)
    if match:
        model = match.group(1).lower()
    temperature = 0.7
    match = _TEMPERATURE_RE.search(args)
    if match:
        temperature = float(match.group(1))
    prompt = _NO_SYSTEM_RE.sub(" ", _TEMPERATURE_RE.sub(" ", _TEXT_MODEL_RE.sub(" ", args)))
    return {
        "model": TEXT_MODELS.get(model, TEXT_MODELS["qwen"]),
        "temperature": temperature,
        "system_prompt": _NO_SYSTEM_RE.search(args) is None,
        "prompt": re.sub(r"\s+", " ", prompt).strip(),
    }


_DELETE_RE = re.compile(r"--delete\s+(\w+)")


def _parse_set_settings(args: str, presets):
    settings, _ = extract_parameters(_DELETE_RE.sub(" ", args))
    return {"settings": settings, "delete_keys": _DELETE_RE.findall(args)}


def _parse_details(args: str, presets):
    return {"image_name": args.strip()}


_NAME_AND_PROMPT_RE = re.compile(r"^(\w+)\s+(.+)$", re.S)
_NAME_ONLY_RE = re.compile(r"^(\w+)$")


def _name_and_prompt(usage: str):
    def parse(args: str, presets):
        match = _NAME_AND_PROMPT_RE.match(args.strip())
        if not match:
            return ParseError(f"Invalid format. Use: {usage}")
        return {"name": match.group(1), "prompt": match.group(2).strip()}
    return parse


def _name_only(usage: str):
    def parse(args: str, presets):
        match = _NAME_ONLY_RE.match(args.strip())
        if not match:
            return ParseError(f"Invalid format. Use: {usage}")
        return {"name": match.group(1)}
    return parse


COMMANDS: Tuple[CommandSpec, ...] = (
    CommandSpec(CommandKind.SET_SETTINGS, _with_args("set_settings"), _parse_set_settings),
    CommandSpec(CommandKind.GET_SETTINGS, _no_args("get_settings")),
    CommandSpec(CommandKind.DETAILS, _with_args("details"), _parse_details),
    CommandSpec(CommandKind.HELP, _no_args("help")),
    CommandSpec(CommandKind.TEXT, _with_args("text"), _parse_text),
    CommandSpec(CommandKind.VIDEO, _with_args("video"), _parse_video),
    CommandSpec(CommandKind.EDIT, _with_args("edit"), _parse_edit),
    CommandSpec(CommandKind.GENERATE, _with_args("generate"), _parse_generate),
    CommandSpec(CommandKind.CREATE_PRESET, _with_args("create_preset"), _name_and_prompt("/create_preset <name> <prompt>")),
    CommandSpec(CommandKind.LIST_PRESETS, _no_args("list_presets")),
    CommandSpec(CommandKind.UPDATE_PRESET, _with_args("update_preset"), _name_and_prompt("/update_preset <name> <prompt>")),
    CommandSpec(CommandKind.DELETE_PRESET, _with_args("delete_preset"), _name_only("/delete_preset <name>")),
    CommandSpec(CommandKind.SHOW_PRESET, _with_args("show_preset"), _name_only("/show_preset <name>")),
)


def is_command(text: str) -> bool:
    return (text or "").strip().startswith(COMMAND_MARKER)


def parse_command(
    command_string: str,
    presets: Optional[Mapping[str, Preset]] = None,
) -> Union[CommandRequest, ParseError]:
    command_string = command_string.strip()
    for spec in COMMANDS:
        match = spec.pattern.match(command_string)
        if not match:
            continue
        request = CommandRequest(kind=spec.kind, raw=command_string)
        if spec.parse_args is None:
            return request
        result = spec.parse_args(match.group(1).strip(), presets)
        if isinstance(result, ParseError):
            return result
        if isinstance(result, ParameterSet):
            request.parameters = result
        else:
            request.args = result
        return request

    return CommandRequest(
        kind=CommandKind.UNKNOWN,
        raw=command_string,
        args={"error": f"Unknown command: {command_string}"},
    )
