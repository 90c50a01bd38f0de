"""Closed value types of the Yeelight LAN protocol.

Every enumerated parameter the bulb understands is modelled as an Enum whose
value is exactly what goes on the wire. String-valued variants are sent as
JSON strings, integer-valued variants as integer literals.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Iterable, Iterator, Type, TypeVar

DEFAULT_PORT = 55443

E = TypeVar("E", bound=Enum)


class Power(str, Enum):
    ON = "on"
    OFF = "off"


class Effect(str, Enum):
    SUDDEN = "sudden"
    SMOOTH = "smooth"


class Mode(IntEnum):
    """Mode the light switches into when powered on."""

    NORMAL = 0
    CT = 1
    RGB = 2
    HSV = 3
    COLOR_FLOW = 4
    NIGHT_LIGHT = 5


class SceneClass(str, Enum):
    COLOR = "color"
    HSV = "hsv"
    CT = "ct"
    CF = "cf"
    AUTO_DELAY_OFF = "auto_delay_off"


class AdjustProp(str, Enum):
    BRIGHT = "bright"
    CT = "ct"
    COLOR = "color"


class AdjustAction(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"
    CIRCLE = "circle"


class CfAction(IntEnum):
    """What the light does once a color flow finishes."""

    RECOVER = 0
    STAY = 1
    OFF = 2


class MusicAction(IntEnum):
    OFF = 0
    ON = 1


class CronType(IntEnum):
    OFF = 0


class Property(str, Enum):
    POWER = "power"
    BRIGHT = "bright"
    CT = "ct"
    RGB = "rgb"
    HUE = "hue"
    SAT = "sat"
    COLOR_MODE = "color_mode"
    FLOWING = "flowing"
    DELAYOFF = "delayoff"
    FLOW_PARAMS = "flow_params"
    MUSIC_ON = "music_on"
    NAME = "name"
    BG_POWER = "bg_power"
    BG_FLOWING = "bg_flowing"
    BG_FLOW_PARAMS = "bg_flow_params"
    BG_CT = "bg_ct"
    BG_LMODE = "bg_lmode"
    BG_BRIGHT = "bg_bright"
    BG_RGB = "bg_rgb"
    BG_HUE = "bg_hue"
    BG_SAT = "bg_sat"
    NL_BR = "nl_br"
    ACTIVE_MODE = "active_mode"


class Target(Enum):
    """Addressable channel of a bulb; the value is the method name prefix."""

    MAIN = ""
    BACKGROUND = "bg_"
    DEVICE = "dev_"


MAIN_ONLY = frozenset({Target.MAIN})
MAIN_OR_BACKGROUND = frozenset({Target.MAIN, Target.BACKGROUND})
ANY_TARGET = frozenset(Target)


def method_name(base: str, target: Target, allowed: frozenset[Target] = MAIN_OR_BACKGROUND) -> str:
    """Build the wire method name for ``base`` on ``target``.

    Raises:
        ValueError: if ``base`` cannot be addressed to ``target``
    """
    if target not in allowed:
        raise ValueError(f"{base} does not support the {target.name.lower()} target")
    return f"{target.value}{base}"


def parse_variant(enum_type: Type[E], text: str) -> E:
    """Look up an enum member by name or wire value, ignoring case.

    Examples:
        >>> parse_variant(Effect, "Smooth")
        <Effect.SMOOTH: 'smooth'>
        >>> parse_variant(Mode, "color_flow")
        <Mode.COLOR_FLOW: 4>
    """
    wanted = text.strip().lower().replace("-", "_")
    for member in enum_type:
        if member.name.lower() == wanted or str(member.value).lower() == wanted:
            return member
    choices = ", ".join(variant_names(enum_type))
    raise ValueError(f"invalid {enum_type.__name__} '{text}' (choose from {choices})")


def variant_names(enum_type: Type[Enum]) -> list[str]:
    return [member.name.lower() for member in enum_type]


class FlowMode(IntEnum):
    COLOR = 1
    CT = 2
    SLEEP = 7


@dataclass(frozen=True)
class FlowTuple:
    """One state change of a color flow.

    ``value`` is an RGB integer for COLOR, a color temperature for CT and is
    ignored for SLEEP. ``brightness`` of -1 keeps the current brightness.
    """

    duration: int
    mode: FlowMode
    value: int
    brightness: int

    def fields(self) -> tuple[int, int, int, int]:
        return (self.duration, int(self.mode), self.value, self.brightness)


class FlowExpression:
    """Ordered sequence of flow tuples, sent as a comma-separated string."""

    def __init__(self, tuples: Iterable[FlowTuple]):
        self.tuples = tuple(tuples)

    @classmethod
    def parse(cls, text: str) -> FlowExpression:
        """Parse ``duration,mode,value,brightness,...`` into an expression."""
        parts = [part.strip() for part in text.split(",") if part.strip()]
        if not parts or len(parts) % 4:
            raise ValueError("flow expression needs groups of four integers")
        try:
            numbers = [int(part) for part in parts]
        except ValueError as exc:
            raise ValueError(f"flow expression contains a non-integer: {text!r}") from exc

        tuples = []
        for index in range(0, len(numbers), 4):
            duration, mode, value, brightness = numbers[index:index + 4]
            try:
                flow_mode = FlowMode(mode)
            except ValueError as exc:
                raise ValueError(f"unknown flow mode {mode}") from exc
            tuples.append(FlowTuple(duration, flow_mode, value, brightness))
        return cls(tuples)

    def __iter__(self) -> Iterator[FlowTuple]:
        return iter(self.tuples)

    def __len__(self) -> int:
        return len(self.tuples)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FlowExpression):
            return NotImplemented
        return self.tuples == other.tuples

    def __str__(self) -> str:
        return ",".join(str(field) for item in self.tuples for field in item.fields())

    def __repr__(self) -> str:
        return f"FlowExpression({str(self)!r})"
