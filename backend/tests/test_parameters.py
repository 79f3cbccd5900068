import pytest

from artiste.prompts.parameters import (
    FLAG_SPECS,
    Preset,
    SEED_RANGE,
    build_parameter_set,
    extract_parameters,
)
from artiste.prompts.parser import parse
from artiste.prompts.parameters import ParameterSet, ParseError


SAMPLE_PROMPTS = [
    "a cat --ar 3:2 --steps 10",
    "portrait of a knight --model qwen --seed 42 --no blurry, lowres --width 800",
    "-m flux -s 4 -w 512 -h 768 a lighthouse at dusk",
    "neon city --shift=2.5 --basesize 1328 --ar 16:9 --private",
    "edit this --image a.png,b.png -i c.png --task abc-123 --preset film,noir",
    "--no ugly hands --steps 8 forest spirits",
    "a--b stays --height 640 hyphen-words stay intact -p",
    "-a 9:16 -b 768 -S 1.5 -n watermark -P moody -t t-1 mountains",
]


def _any_flag_matches(text):
    return [spec.name for spec in FLAG_SPECS if spec.pattern.search(text)]


def test_end_to_end_scenario():
    params = build_parameter_set("a cat --ar 3:2 --steps 10", "flux")

    assert params.prompt == "a cat"
    assert params["width"] == 1216
    assert params["height"] == 810
    assert params["steps"] == 10
    assert params["aspect_ratio"] == "3:2"
    assert params["model"] == "flux"


@pytest.mark.parametrize("text", SAMPLE_PROMPTS)
def test_flags_never_leak_into_clean_prompt(text):
    _, clean = extract_parameters(text)
    assert _any_flag_matches(clean) == []

    params = build_parameter_set(text)
    assert _any_flag_matches(params.prompt) == []


def test_aspect_ratio_overrides_explicit_width():
    params = build_parameter_set("a dog --ar 16:9 --width 99")
    assert (params["width"], params["height"]) == (1344, 768)

    params = build_parameter_set("a dog --width 99 --ar 16:9")
    assert (params["width"], params["height"]) == (1344, 768)


def test_aspect_ratio_uses_basesize():
    params = build_parameter_set("a dog --ar 16:9 --basesize 1328")
    assert (params["width"], params["height"]) == (1328, 744)


@pytest.mark.parametrize("model", ["flux", "qwen", "unknown-model"])
def test_default_profile_dimensions_are_multiples_of_eight(model):
    params = build_parameter_set(f"something --model {model}")
    assert params["width"] % 8 == 0
    assert params["height"] % 8 == 0


def test_model_profiles():
    flux = build_parameter_set("a tree")
    assert flux["model"] == "flux"
    assert (flux["width"], flux["height"], flux["steps"]) == (1024, 1024, 2)
    assert flux["negative_prompt"] == ""
    assert 0 <= flux["seed"] < SEED_RANGE

    qwen = build_parameter_set("a tree --model qwen")
    assert (qwen["width"], qwen["height"], qwen["steps"]) == (1328, 1328, 20)
    assert qwen["shift"] == 3.1
    assert qwen["basesize"] == 1328


def test_default_model_comes_from_caller():
    assert build_parameter_set("a tree", "qwen")["steps"] == 20
    assert build_parameter_set("a tree --model flux", "qwen")["steps"] == 2


def test_first_occurrence_wins_and_all_are_removed():
    params = build_parameter_set("a --steps 5 b --steps 9 c")
    assert params["steps"] == 5
    assert params.prompt == "a b c"


def test_long_form_accepts_equals():
    params = build_parameter_set("x --steps=7 --seed=11 --model=qwen")
    assert params["steps"] == 7
    assert params["seed"] == 11
    assert params["model"] == "qwen"


def test_negative_prompt_runs_until_next_flag():
    params = build_parameter_set("castle --no fog, people --steps 3")
    assert params["negative_prompt"] == "fog, people"
    assert params["steps"] == 3
    assert params.prompt == "castle"


def test_negative_prompt_runs_to_end():
    params = build_parameter_set("castle --no fog and rain")
    assert params["negative_prompt"] == "fog and rain"
    assert params.prompt == "castle"


def test_private_and_image_lists():
    params = build_parameter_set("sky --private --image a.png,b.png -i c.png")
    assert params["private"] is True
    assert params["image"] == ["a.png", "b.png", "c.png"]
    assert params.prompt == "sky"


def test_hyphenated_words_are_not_flags():
    params = build_parameter_set("a well-lit room -p")
    assert params.prompt == "a well-lit room"
    assert params["private"] is True


def test_explicit_keys_are_tracked():
    params = build_parameter_set("x --steps 4 --ar 4:3")
    assert {"steps", "aspect_ratio", "width", "height"} <= params.explicit
    assert "seed" not in params.explicit


def test_presets_fill_unset_keys_and_append_prompt():
    presets = {
        "film": Preset("film", {"steps": 30, "negative_prompt": "digital"}, "35mm film grain"),
    }
    params = build_parameter_set("a street --preset film --steps 6", presets=presets)

    assert params["steps"] == 6
    assert params["negative_prompt"] == "digital"
    assert params.prompt == "a street 35mm film grain"
    assert params["preset"] == "film"


def test_preset_values_beat_model_profile():
    presets = {"big": Preset("big", {"width": 2048, "height": 2048})}
    params = build_parameter_set("a street --preset big", presets=presets)
    assert (params["width"], params["height"]) == (2048, 2048)


def test_unknown_preset_is_ignored():
    params = build_parameter_set("a street --preset nope", presets={})
    assert params["steps"] == 2
    assert params.prompt == "a street"


def test_parse_returns_parameter_set_for_plain_text():
    result = parse("a cat --steps 3")
    assert isinstance(result, ParameterSet)
    assert result["prompt"] == "a cat"
    assert "prompt" in result


@pytest.mark.parametrize("text", ["", "   ", None])
def test_parse_rejects_empty_text(text):
    result = parse(text)
    assert isinstance(result, ParseError)
    assert "prompt" in result.message


def test_negative_prompt_before_other_flags_keeps_trailing_text():
    params = build_parameter_set("--no ugly hands --steps 8 forest spirits")
    assert params["negative_prompt"] == "ugly hands"
    assert params["steps"] == 8
    assert params.prompt == "forest spirits"


def test_empty_negative_prompt_leaves_following_flag_alone():
    params = build_parameter_set("a cat --no --steps 10", "flux")
    assert params["negative_prompt"] == ""
    assert params["steps"] == 10
    assert "--steps" not in params.prompt
