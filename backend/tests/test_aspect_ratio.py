import pytest

from artiste.prompts.aspect_ratio import ASPECT_RATIOS, aspect_ratio_to_dimensions, parse_ratio


def test_table_ratios_at_reference_size():
    assert aspect_ratio_to_dimensions("1:1", 1024) == (1024, 1024)
    assert aspect_ratio_to_dimensions("16:9", 1024) == (1344, 768)
    assert aspect_ratio_to_dimensions("3:2") == (1216, 810)
    assert aspect_ratio_to_dimensions("2.35:1") == (1472, 626)


@pytest.mark.parametrize("ratio", ["bogus", "", "16x9", "0:9", "16:0", ":", "a:b"])
def test_malformed_ratio_falls_back_to_square(ratio):
    assert aspect_ratio_to_dimensions(ratio, 1024) == (1024, 1024)


def test_unlisted_ratio_is_computed_and_aligned():
    width, height = aspect_ratio_to_dimensions("7:5", 1024)
    assert width == 1024
    assert height == 728
    assert width % 8 == 0 and height % 8 == 0


def test_listed_ratio_is_computed_at_other_base_sizes():
    width, height = aspect_ratio_to_dimensions("16:9", 1328)
    assert (width, height) == (1328, 744)

    width, height = aspect_ratio_to_dimensions("9:16", 1328)
    assert (width, height) == (744, 1328)


@pytest.mark.parametrize("base_size", [512, 768, 1000, 1328, 2048])
def test_computed_dimensions_are_multiples_of_eight(base_size):
    for ratio in list(ASPECT_RATIOS) + ["7:3", "5:7", "1.85:1"]:
        width, height = aspect_ratio_to_dimensions(ratio, base_size)
        assert width % 8 == 0, (ratio, base_size)
        assert height % 8 == 0, (ratio, base_size)


def test_parse_ratio():
    assert parse_ratio("16:9") == (16.0, 9.0)
    assert parse_ratio("2.4:1") == (2.4, 1.0)
    assert parse_ratio("0:1") is None
    assert parse_ratio("wide") is None
