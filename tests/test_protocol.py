"""Tests for protocol value types."""

import pytest

from yeelight_console.protocol import (
    ANY_TARGET,
    MAIN_ONLY,
    Effect,
    FlowExpression,
    FlowMode,
    FlowTuple,
    Mode,
    Property,
    Target,
    method_name,
    parse_variant,
    variant_names,
)


def test_method_name_prefixes_by_target():
    """Test that the target only changes the method prefix."""
    assert method_name("set_rgb", Target.MAIN) == "set_rgb"
    assert method_name("set_rgb", Target.BACKGROUND) == "bg_set_rgb"
    assert method_name("toggle", Target.DEVICE, ANY_TARGET) == "dev_toggle"


def test_method_name_rejects_unsupported_target():
    """Test that device-level and background targets are checked."""
    with pytest.raises(ValueError):
        method_name("set_rgb", Target.DEVICE)
    with pytest.raises(ValueError):
        method_name("set_name", Target.BACKGROUND, MAIN_ONLY)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Smooth", Effect.SMOOTH),
        ("SUDDEN", Effect.SUDDEN),
        ("color_flow", Mode.COLOR_FLOW),
        ("color-flow", Mode.COLOR_FLOW),
        ("4", Mode.COLOR_FLOW),
        ("bg_power", Property.BG_POWER),
    ],
)
def test_parse_variant(text, expected):
    """Test case-insensitive lookup by name or wire value."""
    assert parse_variant(type(expected), text) is expected


def test_parse_variant_lists_choices():
    """Test that an unknown name reports the valid names."""
    with pytest.raises(ValueError, match="sudden, smooth"):
        parse_variant(Effect, "fade")


def test_variant_names():
    assert variant_names(Effect) == ["sudden", "smooth"]


def test_flow_expression_parse_and_render():
    """Test that a flow expression parses into tuples and renders back."""
    expression = FlowExpression.parse("1000, 2, 2700, 100, 500, 1, 255, 10, 5000, 7, 0, 0")
    assert len(expression) == 3
    assert list(expression)[0] == FlowTuple(1000, FlowMode.CT, 2700, 100)
    assert list(expression)[2].mode is FlowMode.SLEEP
    assert str(expression) == "1000,2,2700,100,500,1,255,10,5000,7,0,0"
    assert FlowExpression.parse(str(expression)) == expression


@pytest.mark.parametrize("text", ["", "1000,2,2700", "1000,2,2700,abc", "1000,3,2700,100"])
def test_flow_expression_rejects_bad_input(text):
    """Test that incomplete tuples, non-integers and unknown modes fail."""
    with pytest.raises(ValueError):
        FlowExpression.parse(text)
