import pytest

from artiste.prompts.commands import CommandKind, CommandRequest, TEXT_MODELS, parse_command, select_video_resolution
from artiste.prompts.parameters import ParameterSet, ParseError
from artiste.prompts.parser import parse


def test_slash_text_is_routed_to_commands():
    result = parse("  /help")
    assert isinstance(result, CommandRequest)
    assert result.kind == CommandKind.HELP


@pytest.mark.parametrize(
    "text,kind",
    [
        ("/get_settings", CommandKind.GET_SETTINGS),
        ("/list_presets", CommandKind.LIST_PRESETS),
        ("/help", CommandKind.HELP),
        ("/details ComfyUI_00001_.png", CommandKind.DETAILS),
        ("/show_preset moody", CommandKind.SHOW_PRESET),
        ("/delete_preset moody", CommandKind.DELETE_PRESET),
    ],
)
def test_command_kinds(text, kind):
    result = parse_command(text)
    assert isinstance(result, CommandRequest)
    assert result.kind == kind


def test_unknown_command_carries_input():
    result = parse_command("/dance now")
    assert result.kind == CommandKind.UNKNOWN
    assert result.raw == "/dance now"
    assert "/dance now" in result.args["error"]


def test_generate_defaults_to_flux():
    result = parse_command("/generate a red fox --steps 3")
    assert result.kind == CommandKind.GENERATE
    assert isinstance(result.parameters, ParameterSet)
    assert result.parameters["model"] == "flux"
    assert result.parameters["steps"] == 3
    assert result.parameters.prompt == "a red fox"


def test_edit_requires_exactly_one_source():
    missing = parse_command("/edit make it blue")
    assert isinstance(missing, ParseError)

    both = parse_command("/edit make it blue --image a.png --task t1")
    assert isinstance(both, ParseError)
    assert "not both" in both.message

    ok = parse_command("/edit make it blue --image https://example.com/a.png")
    assert isinstance(ok, CommandRequest)
    assert ok.parameters["model"] == "qwen-image-edit"
    assert ok.parameters["image"] == ["https://example.com/a.png"]
    assert ok.parameters.prompt == "make it blue"


def test_video_command_picks_resolution_and_extras():
    result = parse_command("/video waves crashing --ar 16:9 --frames 81 -g 5.5")
    params = result.parameters
    assert params["model"] == "wan2.2"
    assert params["resolution"] == "1280*720"
    assert params["frames"] == 81
    assert params["guidance"] == 5.5
    assert params.prompt == "waves crashing"


@pytest.mark.parametrize(
    "ratio,expected",
    [
        ("16:9", "1280*720"),
        ("9:16", "720*1280"),
        ("1:1", "1024*1024"),
        ("21:9", "832*480"),
        ("3:4", "480*832"),
        (None, "1024*1024"),
    ],
)
def test_select_video_resolution(ratio, expected):
    assert select_video_resolution(ratio) == expected


def test_text_command_options():
    result = parse_command("/text explain gravity --model deepseek-r1 -t 0.2 --no-system")
    assert result.kind == CommandKind.TEXT
    assert result.args["model"] == TEXT_MODELS["deepseek-r1"]
    assert result.args["temperature"] == 0.2
    assert result.args["system_prompt"] is False
    assert result.args["prompt"] == "explain gravity"


def test_text_command_defaults():
    result = parse_command("/text hello")
    assert result.args["model"] == TEXT_MODELS["qwen"]
    assert result.args["temperature"] == 0.7
    assert result.args["system_prompt"] is True


def test_set_settings_collects_flags_and_deletes():
    result = parse_command("/set_settings --model qwen --steps 12 --delete seed")
    assert result.args["settings"] == {"model": "qwen", "steps": 12}
    assert result.args["delete_keys"] == ["seed"]


def test_create_preset():
    result = parse_command("/create_preset noir --steps 30 black and white")
    assert result.kind == CommandKind.CREATE_PRESET
    assert result.args == {"name": "noir", "prompt": "--steps 30 black and white"}


def test_malformed_preset_commands_return_usage():
    result = parse_command("/create_preset noir")
    assert isinstance(result, ParseError)
    assert "/create_preset <name> <prompt>" in result.message

    result = parse_command("/show_preset two words")
    assert isinstance(result, ParseError)
    assert "/show_preset <name>" in result.message
