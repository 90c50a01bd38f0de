"""Command-line client for controlling a Yeelight bulb over the LAN."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Optional, Type, Union

import yaml
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .bulb import DEFAULT_DURATION, Bulb
from .codec import Result
from .config import DEFAULT_CONFIG_FILE, ENV_ADDRESS, ENV_PORT, OUTPUT_FORMATS, ConfigError, ConsoleConfig
from .errors import ProtocolError, YeelightError
from .protocol import (
    AdjustAction,
    AdjustProp,
    CfAction,
    CronType,
    Effect,
    FlowExpression,
    Mode,
    MusicAction,
    Power,
    Property,
    SceneClass,
    Target,
    parse_variant,
    variant_names,
)

logger = logging.getLogger(__name__)

Output = Union[Result, dict[str, str], None]
Handler = Callable[[Bulb, argparse.Namespace], Awaitable[Output]]


class CliError(Exception):
    """Raised when the CLI encounters an expected error condition."""


@dataclass(frozen=True)
class ClientConfig:
    """Resolved settings for one CLI invocation."""

    address: str
    port: int
    output: str
    connect_timeout: float
    request_timeout: float
    notification_buffer: int


def _variant(enum_type: Type[Enum]) -> Callable[[str], Enum]:
    def convert(text: str) -> Enum:
        try:
            return parse_variant(enum_type, text)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(str(exc)) from exc

    convert.__name__ = enum_type.__name__
    return convert


def _choices(enum_type: Type[Enum]) -> str:
    return "{" + ",".join(variant_names(enum_type)) + "}"


def _rgb(text: str) -> int:
    normalized = text.strip()
    try:
        if normalized.startswith("#"):
            value = int(normalized[1:], 16)
        else:
            value = int(normalized, 0)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(
            f"RGB value must be an integer or hex like #ff8800, got '{text}'"
        ) from exc
    if not 0 <= value <= 0xFFFFFF:
        raise argparse.ArgumentTypeError("RGB value must be between 0 and 0xFFFFFF")
    return value


def _flow(text: str) -> FlowExpression:
    try:
        return FlowExpression.parse(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _scene_value(text: str) -> Union[int, str]:
    try:
        return int(text)
    except ValueError:
        return text


def _validate_range(name: str, value: int, low: int, high: int) -> None:
    if value < low or value > high:
        raise CliError(f"{name.capitalize()} must be between {low} and {high}.")


def _target(args: argparse.Namespace) -> Target:
    if getattr(args, "dev", False):
        return Target.DEVICE
    if getattr(args, "bg", False):
        return Target.BACKGROUND
    return Target.MAIN


def _add_transition(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-e",
        "--effect",
        type=_variant(Effect),
        default=Effect.SMOOTH,
        metavar=_choices(Effect),
        help="Transition effect (default: smooth)",
    )
    parser.add_argument(
        "-d",
        "--duration",
        type=int,
        default=DEFAULT_DURATION,
        help=f"Transition duration in milliseconds (default: {DEFAULT_DURATION})",
    )


def _add_bg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--bg", action="store_true", help="Apply to the background light")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="yeelight-console",
        description=(
            f"Control a Yeelight smart light over the LAN. The bulb address and port "
            f"default to {ENV_ADDRESS} / {ENV_PORT} or the active profile in "
            f"{DEFAULT_CONFIG_FILE}. Examples: `yeelight-console -a 192.168.1.20 toggle`, "
            "`yeelight-console set ct 4000`, `yeelight-console get power bright`."
        ),
    )
    parser.add_argument("-a", "--address", help=f"Bulb address (env: {ENV_ADDRESS})")
    parser.add_argument("-p", "--port", type=int, help=f"Bulb port (env: {ENV_PORT}, default 55443)")
    parser.add_argument("-b", "--bulb", help="Name of a bulb profile from the config file")
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_FILE,
        help=f"Config file (default: {DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument("--timeout", type=float, help="Seconds to wait for each response")
    parser.add_argument(
        "--output",
        choices=OUTPUT_FORMATS,
        help="Output format for results (default: plain, or the config file's)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log connection activity (-v) or every wire line (-vv) to stderr",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    get = subparsers.add_parser("get", help="Get properties")
    get.add_argument(
        "properties",
        nargs="+",
        type=_variant(Property),
        metavar="PROPERTY",
        help=f"One or more of {_choices(Property)}",
    )
    get.set_defaults(func=_cmd_get)

    toggle = subparsers.add_parser("toggle", help="Toggle light")
    light = toggle.add_mutually_exclusive_group()
    light.add_argument("--dev", action="store_true", help="Toggle main and background lights")
    light.add_argument("--bg", action="store_true", help="Toggle the background light")
    toggle.set_defaults(func=_cmd_toggle)

    for name, power in (("on", Power.ON), ("off", Power.OFF)):
        cmd = subparsers.add_parser(name, help=f"Turn {name} light")
        _add_transition(cmd)
        cmd.add_argument(
            "-m",
            "--mode",
            type=_variant(Mode),
            default=Mode.NORMAL,
            metavar=_choices(Mode),
            help="Mode to switch into (default: normal)",
        )
        _add_bg(cmd)
        cmd.set_defaults(func=_cmd_power, power=power)

    timer = subparsers.add_parser("timer", help="Start timer")
    timer.add_argument("minutes", type=int, help="Minutes until the light turns off")
    timer.set_defaults(func=_cmd_timer)

    timer_clear = subparsers.add_parser("timer-clear", help="Clear current timer")
    timer_clear.set_defaults(func=_cmd_timer_clear)

    timer_get = subparsers.add_parser("timer-get", help="Get remaining minutes for timer")
    timer_get.set_defaults(func=_cmd_timer_get)

    _add_set_commands(subparsers)

    flow = subparsers.add_parser("flow", help="Start color flow")
    flow.add_argument(
        "expression",
        type=_flow,
        help="Flow tuples: duration,mode,value,brightness[,...] (mode 1=color 2=ct 7=sleep)",
    )
    flow.add_argument("count", type=int, nargs="?", default=0, help="State changes before stopping (0 = forever)")
    flow.add_argument(
        "action",
        type=_variant(CfAction),
        nargs="?",
        default=CfAction.RECOVER,
        metavar=_choices(CfAction),
        help="What to do when the flow ends (default: recover)",
    )
    _add_bg(flow)
    flow.set_defaults(func=_cmd_flow)

    flow_stop = subparsers.add_parser("flow-stop", help="Stop color flow")
    _add_bg(flow_stop)
    flow_stop.set_defaults(func=_cmd_flow_stop)

    adjust = subparsers.add_parser(
        "adjust", help="Adjust properties (bright/ct/color) (increase/decrease/circle)"
    )
    adjust.add_argument("property", type=_variant(AdjustProp), metavar=_choices(AdjustProp))
    adjust.add_argument("action", type=_variant(AdjustAction), metavar=_choices(AdjustAction))
    _add_bg(adjust)
    adjust.set_defaults(func=_cmd_adjust)

    adjust_percent = subparsers.add_parser(
        "adjust-percent", help="Adjust properties (bright/ct/color) with percentage (-100~100)"
    )
    adjust_percent.add_argument("property", type=_variant(AdjustProp), metavar=_choices(AdjustProp))
    adjust_percent.add_argument("percent", type=int)
    adjust_percent.add_argument("duration", type=int, nargs="?", default=DEFAULT_DURATION)
    _add_bg(adjust_percent)
    adjust_percent.set_defaults(func=_cmd_adjust_percent)

    music_connect = subparsers.add_parser("music-connect", help="Connect to music TCP stream")
    music_connect.add_argument("host")
    music_connect.add_argument("port", type=int)
    music_connect.set_defaults(func=_cmd_music_connect)

    music_stop = subparsers.add_parser("music-stop", help="Stop music mode")
    music_stop.set_defaults(func=_cmd_music_stop)

    listen = subparsers.add_parser("listen", help="Listen to notifications from lamp")
    listen.set_defaults(func=_cmd_listen)

    return parser


def _add_set_commands(subparsers: argparse._SubParsersAction) -> None:
    set_parser = subparsers.add_parser("set", help="Set values")
    _add_transition(set_parser)
    props = set_parser.add_subparsers(dest="property", required=True, metavar="PROPERTY")

    power = props.add_parser("power", help="Power on/off")
    power.add_argument("power", type=_variant(Power), metavar=_choices(Power))
    power.add_argument(
        "mode", type=_variant(Mode), nargs="?", default=Mode.NORMAL, metavar=_choices(Mode)
    )
    _add_bg(power)
    power.set_defaults(func=_cmd_set_power)

    ct = props.add_parser("ct", help="Color temperature (1700-6500 K)")
    ct.add_argument("color_temperature", type=int)
    _add_bg(ct)
    ct.set_defaults(func=_cmd_set_ct)

    rgb = props.add_parser("rgb", help="RGB color as an integer or #rrggbb")
    rgb.add_argument("rgb_value", type=_rgb)
    _add_bg(rgb)
    rgb.set_defaults(func=_cmd_set_rgb)

    hsv = props.add_parser("hsv", help="Hue (0-359) and saturation (0-100)")
    hsv.add_argument("hue", type=int)
    hsv.add_argument("sat", type=int, nargs="?", default=100)
    _add_bg(hsv)
    hsv.set_defaults(func=_cmd_set_hsv)

    bright = props.add_parser("bright", help="Brightness (1-100)")
    bright.add_argument("brightness", type=int)
    _add_bg(bright)
    bright.set_defaults(func=_cmd_set_bright)

    name = props.add_parser("name", help="Device name")
    name.add_argument("name")
    name.set_defaults(func=_cmd_set_name)

    scene = props.add_parser("scene", help="Scene by class and up to three values")
    scene.add_argument("scene_class", type=_variant(SceneClass), metavar=_choices(SceneClass))
    scene.add_argument("val1", type=_scene_value)
    scene.add_argument("val2", type=_scene_value, nargs="?")
    scene.add_argument("val3", type=_scene_value, nargs="?")
    _add_bg(scene)
    scene.set_defaults(func=_cmd_set_scene)

    default = props.add_parser("default", help="Save current state as default")
    _add_bg(default)
    default.set_defaults(func=_cmd_set_default)


async def _cmd_get(bulb: Bulb, args: argparse.Namespace) -> Output:
    return await bulb.get_props(*args.properties)


async def _cmd_toggle(bulb: Bulb, args: argparse.Namespace) -> Output:
    return await bulb.toggle(target=_target(args))


async def _cmd_power(bulb: Bulb, args: argparse.Namespace) -> Output:
    return await bulb.set_power(args.power, args.effect, args.duration, args.mode, target=_target(args))


async def _cmd_timer(bulb: Bulb, args: argparse.Namespace) -> Output:
    if args.minutes < 1:
        raise CliError("Minutes must be at least 1.")
    return await bulb.cron_add(CronType.OFF, args.minutes)


async def _cmd_timer_clear(bulb: Bulb, args: argparse.Namespace) -> Output:
    return await bulb.cron_del(CronType.OFF)


async def _cmd_timer_get(bulb: Bulb, args: argparse.Namespace) -> Output:
    result = await bulb.cron_get(CronType.OFF)
    values = []
    for value in result.values:
        # the bulb reports timers as objects: {"type":0,"delay":15,"mix":0}
        try:
            entry = json.loads(value)
        except json.JSONDecodeError:
            values.append(value)
            continue
        values.append(str(entry.get("delay", value)) if isinstance(entry, dict) else value)
    return Result(id=result.id, values=tuple(values))


async def _cmd_set_power(bulb: Bulb, args: argparse.Namespace) -> Output:
    return await bulb.set_power(args.power, args.effect, args.duration, args.mode, target=_target(args))


async def _cmd_set_ct(bulb: Bulb, args: argparse.Namespace) -> Output:
    _validate_range("color temperature", args.color_temperature, 1700, 6500)
    return await bulb.set_ct_abx(args.color_temperature, args.effect, args.duration, target=_target(args))


async def _cmd_set_rgb(bulb: Bulb, args: argparse.Namespace) -> Output:
    return await bulb.set_rgb(args.rgb_value, args.effect, args.duration, target=_target(args))


async def _cmd_set_hsv(bulb: Bulb, args: argparse.Namespace) -> Output:
    _validate_range("hue", args.hue, 0, 359)
    _validate_range("saturation", args.sat, 0, 100)
    return await bulb.set_hsv(args.hue, args.sat, args.effect, args.duration, target=_target(args))


async def _cmd_set_bright(bulb: Bulb, args: argparse.Namespace) -> Output:
    _validate_range("brightness", args.brightness, 1, 100)
    return await bulb.set_bright(args.brightness, args.effect, args.duration, target=_target(args))


async def _cmd_set_name(bulb: Bulb, args: argparse.Namespace) -> Output:
    return await bulb.set_name(args.name)


async def _cmd_set_scene(bulb: Bulb, args: argparse.Namespace) -> Output:
    if args.val3 is not None and args.val2 is None:
        raise CliError("Scene values must be given in order.")
    return await bulb.set_scene(args.scene_class, args.val1, args.val2, args.val3, target=_target(args))


async def _cmd_set_default(bulb: Bulb, args: argparse.Namespace) -> Output:
    return await bulb.set_default(target=_target(args))


async def _cmd_flow(bulb: Bulb, args: argparse.Namespace) -> Output:
    if args.count < 0:
        raise CliError("Count must not be negative.")
    return await bulb.start_cf(args.count, args.action, args.expression, target=_target(args))


async def _cmd_flow_stop(bulb: Bulb, args: argparse.Namespace) -> Output:
    return await bulb.stop_cf(target=_target(args))


async def _cmd_adjust(bulb: Bulb, args: argparse.Namespace) -> Output:
    return await bulb.set_adjust(args.action, args.property, target=_target(args))


async def _cmd_adjust_percent(bulb: Bulb, args: argparse.Namespace) -> Output:
    _validate_range("percent", args.percent, -100, 100)
    return await bulb.adjust_percent(args.property, args.percent, args.duration, target=_target(args))


async def _cmd_music_connect(bulb: Bulb, args: argparse.Namespace) -> Output:
    _validate_range("port", args.port, 1, 65535)
    return await bulb.set_music(MusicAction.ON, args.host, args.port)


async def _cmd_music_stop(bulb: Bulb, args: argparse.Namespace) -> Output:
    return await bulb.set_music(MusicAction.OFF)


async def _cmd_listen(bulb: Bulb, args: argparse.Namespace) -> Output:
    subscription = bulb.subscribe()
    async for notification in subscription:
        for name, value in notification.props.items():
            sys.stdout.write(f"{name} {value}\n")
        sys.stdout.flush()
    logger.info("Bulb closed the connection: %s", bulb.connection.close_reason)
    return None


def _load_config(args: argparse.Namespace) -> ClientConfig:
    console_config = ConsoleConfig.load(args.config)
    try:
        address, port = console_config.resolve_address(args.address, args.port, args.bulb)
    except ConfigError as exc:
        raise CliError(str(exc)) from exc

    request_timeout = args.timeout if args.timeout is not None else console_config.request_timeout
    if request_timeout <= 0:
        raise CliError("Timeout must be positive.")

    return ClientConfig(
        address=address,
        port=port,
        output=args.output or console_config.output,
        connect_timeout=console_config.connect_timeout,
        request_timeout=request_timeout,
        notification_buffer=console_config.notification_buffer,
    )


def _configure_logging(verbosity: int) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _print_output(data: Output, output: str) -> None:
    if data is None:
        return
    values: Any = dict(data) if isinstance(data, dict) else list(data.values)

    if output == "json":
        json.dump(values, sys.stdout, indent=2)
        sys.stdout.write("\n")
    elif output == "yaml":
        yaml.safe_dump(values, sys.stdout, sort_keys=False)
    elif output == "table":
        table = Table(box=box.SIMPLE)
        if isinstance(values, dict):
            table.add_column("Property", style="cyan")
            table.add_column("Value")
            for name, value in values.items():
                table.add_row(name, value)
        else:
            table.add_column("Result")
            for value in values:
                table.add_row(value)
        Console().print(table)
    else:
        lines = values.values() if isinstance(values, dict) else values
        for value in lines:
            if value != "ok":
                sys.stdout.write(f"{value}\n")


async def _run(config: ClientConfig, func: Handler, args: argparse.Namespace) -> Output:
    bulb = await Bulb.connect(
        config.address,
        config.port,
        connect_timeout=config.connect_timeout,
        request_timeout=config.request_timeout,
        notification_buffer=config.notification_buffer,
    )
    async with bulb:
        return await func(bulb, args)


def main(argv: Optional[Iterable[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(args=argv)
    _configure_logging(args.verbose)

    try:
        config = _load_config(args)
        data = asyncio.run(_run(config, args.func, args))
        _print_output(data, config.output)
    except ProtocolError as exc:
        sys.stderr.write(f"{exc}\n")
        sys.exit(exc.code or 1)
    except (CliError, YeelightError, ValueError) as exc:
        sys.stderr.write(f"Error: {exc}\n")
        sys.exit(1)
    except KeyboardInterrupt:  # pragma: no cover - interactive listen
        sys.exit(130)


if __name__ == "__main__":
    main()
