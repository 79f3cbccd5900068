"""
Prompt flag extraction and canonical parameter resolution.

A prompt such as "a cat --ar 3:2 --steps 10" becomes a ParameterSet whose
values hold the canonical keys (model, width, height, steps, seed, ...) and
whose `prompt` is the text with every recognised flag removed.
"""
from __future__ import annotations

import random
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Pattern, Tuple

from .aspect_ratio import REFERENCE_BASE_SIZE, aspect_ratio_to_dimensions

FALLBACK_MODEL = "flux"
SEED_RANGE = 1_000_000_000

DEFAULT_PROFILES: Dict[str, Dict[str, Any]] = {
    "flux": {
        "width": 1024,
        "height": 1024,
        "steps": 2,
    },
    "qwen": {
        "steps": 20,
        "width": 1328,
        "height": 1328,
        "basesize": 1328,
        "shift": 3.1,
    },
}

# A flag only starts at the beginning of the text or after whitespace.
_FLAG_START = r"(?<![\w-])"


def _flag(long: str, short: Optional[str], value: str) -> Pattern[str]:
    forms = [rf"--{long}(?:=|\s+)"]
    if short:
        forms.append(rf"-{short}\s+")
    return re.compile(rf"{_FLAG_START}(?:{'|'.join(forms)}){value}", re.S)


def _split_list(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass(frozen=True)
class FlagSpec:
    name: str
    pattern: Pattern[str]
    convert: Callable[[str], Any] = str
    repeatable: bool = False


FLAG_SPECS: Tuple[FlagSpec, ...] = (
    # Runs until the next flag or the end of the text, so it is scanned
    # before any other flag is removed.
    FlagSpec("negative_prompt", _flag("no", "n", r"([^\s-].*?)(?=\s+-{1,2}[a-zA-Z]|\s*$)"), str.strip),
    FlagSpec("model", _flag("model", "m", r"(\w[\w.-]*)")),
    FlagSpec("basesize", _flag("basesize", "b", r"(\d+)"), int),
    FlagSpec("aspect_ratio", _flag("ar", "a", r"([^\s-]+)")),
    FlagSpec("shift", _flag("shift", "S", r"(\d+(?:\.\d+)?)"), float),
    FlagSpec("width", _flag("width", "w", r"(\d+)"), int),
    FlagSpec("height", _flag("height", "h", r"(\d+)"), int),
    FlagSpec("steps", _flag("steps", "s", r"(\d+)"), int),
    FlagSpec("seed", _flag("seed", None, r"(\d+)"), int),
    FlagSpec("preset", _flag("preset", "P", r"([\w,]+)"), _split_list),
    FlagSpec("private", re.compile(rf"{_FLAG_START}(?:--private|-p)(?![\w-])"), lambda _: True),
    FlagSpec("image", _flag("image", "i", r"(\S+)"), _split_list, repeatable=True),
    FlagSpec("task_id", _flag("task", "t", r"([\w-]+)")),
)

FLAGS_BY_NAME: Dict[str, FlagSpec] = {spec.name: spec for spec in FLAG_SPECS}


@dataclass(frozen=True)
class Preset:
    name: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    prompt: str = ""


@dataclass(frozen=True)
class ParseError:
    """User-displayable parse failure; returned, never raised."""
    message: str


@dataclass
class ParameterSet:
    values: Dict[str, Any]
    prompt: str
    explicit: FrozenSet[str] = frozenset()

    def __getitem__(self, key: str) -> Any:
        if key == "prompt":
            return self.prompt
        return self.values[key]

    def __contains__(self, key: object) -> bool:
        return key == "prompt" or key in self.values

    def get(self, key: str, default: Any = None) -> Any:
        if key == "prompt":
            return self.prompt
        return self.values.get(key, default)

    @property
    def model(self) -> str:
        return self.values.get("model") or FALLBACK_MODEL

    def as_dict(self) -> Dict[str, Any]:
        data = dict(self.values)
        data["prompt"] = self.prompt
        return data


def extract_parameters(text: str) -> Tuple[Dict[str, Any], str]:
    """
    Scan `text` for every known flag. Returns the parsed values and the text
    with all flag occurrences removed and whitespace collapsed.
    """
    params: Dict[str, Any] = {}
    clean_text = text or ""

    # Removing one flag can join its neighbours into a new match, so scan
    # until a full pass removes nothing. The first value seen for a flag wins.
    changed = True
    while changed:
        changed = False
        for spec in FLAG_SPECS:
            if spec.repeatable:
                found = spec.pattern.findall(clean_text)
                if not found:
                    continue
                values: List[Any] = params.setdefault(spec.name, [])
                for raw in found:
                    values.extend(spec.convert(raw))
            else:
                match = spec.pattern.search(clean_text)
                if not match:
                    continue
                if spec.name not in params:
                    raw = match.group(1) if match.groups() else match.group(0)
                    params[spec.name] = spec.convert(raw)
            clean_text = spec.pattern.sub(" ", clean_text)
            changed = True

    clean_text = re.sub(r"\s+", " ", clean_text).strip()
    return params, clean_text


def profile_for(model: Optional[str]) -> Dict[str, Any]:
    return DEFAULT_PROFILES.get(model or FALLBACK_MODEL, DEFAULT_PROFILES[FALLBACK_MODEL])


def resolve_params(params: Dict[str, Any]) -> Dict[str, Any]:
    """
    Final resolution step. An aspect ratio always overwrites width/height,
    even when both were given explicitly.
    """
    if params.get("aspect_ratio"):
        basesize = params.get("basesize") or REFERENCE_BASE_SIZE
        params["width"], params["height"] = aspect_ratio_to_dimensions(str(params["aspect_ratio"]), basesize)
    return params


def build_parameter_set(
    text: str,
    default_model: Optional[str] = None,
    presets: Optional[Mapping[str, Preset]] = None,
) -> ParameterSet:
    parsed, clean_text = extract_parameters(text)

    params: Dict[str, Any] = {
        "model": default_model or FALLBACK_MODEL,
        "seed": random.randrange(SEED_RANGE),
        "negative_prompt": "",
    }

    preset_keys = set()
    for name in parsed.get("preset", []):
        preset = presets.get(name) if presets is not None else None
        if preset is None:
            continue
        for key, value in preset.parameters.items():
            if key not in parsed:
                params[key] = value
            preset_keys.add(key)
        if preset.prompt:
            clean_text = f"{clean_text} {preset.prompt}".strip()

    if "model" in parsed:
        params["model"] = parsed["model"]

    for key, value in profile_for(params["model"]).items():
        if key not in preset_keys:
            params[key] = value

    params.update({k: v for k, v in parsed.items() if k != "preset"})
    if "preset" in parsed:
        params["preset"] = ",".join(parsed["preset"])

    resolve_params(params)

    explicit = set(parsed)
    if "aspect_ratio" in explicit:
        explicit.update(("width", "height"))
    if "basesize" in explicit and params.get("width") == params.get("height"):
        explicit.update(("width", "height"))

    return ParameterSet(values=params, prompt=clean_text, explicit=frozenset(explicit))
