"""Tests for the command-line client."""

import asyncio
import json

import pytest

from yeelight_console import cli
from yeelight_console.codec import Result
from yeelight_console.errors import ConnectError, ProtocolError
from yeelight_console.protocol import (
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
)

OK = Result(id=1, values=("ok",))


class FakeBulb:
    """Records every operation instead of talking to a bulb."""

    def __init__(self):
        self.calls = []
        self.results = {}
        self.errors = {}
        self.closed = False

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)

        async def operation(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            if name in self.errors:
                raise self.errors[name]
            return self.results.get(name, OK)

        return operation

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        self.closed = True


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("YEELIGHT_ADDR", raising=False)
    monkeypatch.delenv("YEELIGHT_PORT", raising=False)


@pytest.fixture
def fake_bulb(monkeypatch):
    bulb = FakeBulb()

    class FakeBulbFactory:
        @classmethod
        async def connect(cls, host, port, **options):
            bulb.address = (host, port)
            bulb.options = options
            return bulb

    monkeypatch.setattr(cli, "Bulb", FakeBulbFactory)
    return bulb


@pytest.fixture
def run(tmp_path):
    """Run the CLI against a bulb at 10.0.0.2 with an empty config file."""
    config_file = tmp_path / "config.yaml"

    def _run(*argv):
        cli.main(["--config", str(config_file), "-a", "10.0.0.2", *argv])

    return _run


def test_parser_global_options():
    parser = cli._build_parser()
    args = parser.parse_args(["-a", "192.168.1.20", "-p", "1234", "--output", "json", "-vv", "toggle", "--bg"])

    assert args.address == "192.168.1.20"
    assert args.port == 1234
    assert args.output == "json"
    assert args.verbose == 2
    assert args.func is cli._cmd_toggle
    assert cli._target(args) is Target.BACKGROUND


def test_parser_converts_protocol_values():
    """Test that names are parsed into protocol values at the edge."""
    parser = cli._build_parser()

    args = parser.parse_args(["set", "-e", "sudden", "-d", "30", "power", "on", "ct"])
    assert (args.power, args.mode, args.effect, args.duration) == (Power.ON, Mode.CT, Effect.SUDDEN, 30)

    args = parser.parse_args(["flow", "500,1,255,100", "3", "off"])
    assert args.expression == FlowExpression.parse("500,1,255,100")
    assert (args.count, args.action) == (3, CfAction.OFF)

    args = parser.parse_args(["set", "rgb", "#ff8800"])
    assert args.rgb_value == 0xFF8800

    args = parser.parse_args(["adjust-percent", "bright", "-20"])
    assert (args.property, args.percent, args.duration) == (AdjustProp.BRIGHT, -20, 500)


@pytest.mark.parametrize(
    "argv",
    [
        ["set", "-e", "fade", "bright", "50"],
        ["set", "rgb", "0x1000000"],
        ["flow", "500,3,255,100"],
        ["toggle", "--bg", "--dev"],
        ["get"],
    ],
)
def test_parser_rejects_bad_arguments(argv):
    with pytest.raises(SystemExit) as exc_info:
        cli._build_parser().parse_args(argv)
    assert exc_info.value.code == 2


def test_toggle_prints_nothing_for_ok(run, fake_bulb, capsys):
    run("toggle")

    assert fake_bulb.address == ("10.0.0.2", 55443)
    assert fake_bulb.calls == [("toggle", (), {"target": Target.MAIN})]
    assert fake_bulb.closed
    assert capsys.readouterr().out == ""


@pytest.mark.parametrize(
    "argv, call",
    [
        (["on", "--bg"], ("set_power", (Power.ON, Effect.SMOOTH, 500, Mode.NORMAL), {"target": Target.BACKGROUND})),
        (["off", "-e", "sudden", "-d", "0"], ("set_power", (Power.OFF, Effect.SUDDEN, 0, Mode.NORMAL), {"target": Target.MAIN})),
        (["toggle", "--dev"], ("toggle", (), {"target": Target.DEVICE})),
        (["timer", "15"], ("cron_add", (CronType.OFF, 15), {})),
        (["timer-clear"], ("cron_del", (CronType.OFF,), {})),
        (["set", "ct", "4000"], ("set_ct_abx", (4000, Effect.SMOOTH, 500), {"target": Target.MAIN})),
        (["set", "hsv", "120", "--bg"], ("set_hsv", (120, 100, Effect.SMOOTH, 500), {"target": Target.BACKGROUND})),
        (["set", "bright", "40"], ("set_bright", (40, Effect.SMOOTH, 500), {"target": Target.MAIN})),
        (["set", "name", "Desk"], ("set_name", ("Desk",), {})),
        (["set", "scene", "ct", "4000", "80"], ("set_scene", (SceneClass.CT, 4000, 80, None), {"target": Target.MAIN})),
        (["set", "default"], ("set_default", (), {"target": Target.MAIN})),
        (["flow-stop", "--bg"], ("stop_cf", (), {"target": Target.BACKGROUND})),
        (["adjust", "color", "circle"], ("set_adjust", (AdjustAction.CIRCLE, AdjustProp.COLOR), {"target": Target.MAIN})),
        (["music-connect", "10.0.0.3", "5000"], ("set_music", (MusicAction.ON, "10.0.0.3", 5000), {})),
        (["music-stop"], ("set_music", (MusicAction.OFF,), {})),
    ],
)
def test_subcommands_map_to_operations(run, fake_bulb, argv, call):
    """Test which operation each subcommand performs."""
    run(*argv)
    assert fake_bulb.calls == [call]


def test_get_prints_values_in_order(run, fake_bulb, capsys):
    fake_bulb.results["get_props"] = {"power": "on", "bright": "80"}

    run("get", "power", "bright")

    assert fake_bulb.calls == [("get_props", (Property.POWER, Property.BRIGHT), {})]
    assert capsys.readouterr().out == "on\n80\n"


def test_timer_get_prints_remaining_minutes(run, fake_bulb, capsys):
    fake_bulb.results["cron_get"] = Result(id=1, values=('{"type":0,"delay":15,"mix":0}',))

    run("timer-get")

    assert capsys.readouterr().out == "15\n"


def test_protocol_error_exits_with_bulb_code(run, fake_bulb, capsys):
    """Test that the bulb's error is printed and becomes the exit status."""
    fake_bulb.errors["set_ct_abx"] = ProtocolError(-1, "invalid params")

    with pytest.raises(SystemExit) as exc_info:
        run("set", "ct", "4000")

    assert exc_info.value.code == -1
    assert capsys.readouterr().err == "Error (code -1): invalid params\n"


def test_connect_error_exits_1(run, fake_bulb, capsys):
    fake_bulb.errors["toggle"] = ConnectError("Cannot connect to 10.0.0.2:55443")

    with pytest.raises(SystemExit) as exc_info:
        run("toggle")

    assert exc_info.value.code == 1
    assert "Error: Cannot connect" in capsys.readouterr().err


@pytest.mark.parametrize(
    "argv, message",
    [
        (["set", "bright", "0"], "Brightness must be between 1 and 100."),
        (["set", "ct", "9000"], "Color temperature must be between 1700 and 6500."),
        (["set", "hsv", "360"], "Hue must be between 0 and 359."),
        (["adjust-percent", "ct", "150"], "Percent must be between -100 and 100."),
        (["timer", "0"], "Minutes must be at least 1."),
    ],
)
def test_out_of_range_values_rejected_locally(run, fake_bulb, capsys, argv, message):
    """Test that range checks fail before anything is sent."""
    with pytest.raises(SystemExit) as exc_info:
        run(*argv)

    assert exc_info.value.code == 1
    assert capsys.readouterr().err == f"Error: {message}\n"
    assert fake_bulb.calls == []


def test_missing_address_is_an_error(tmp_path, fake_bulb, capsys):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["--config", str(tmp_path / "config.yaml"), "toggle"])

    assert exc_info.value.code == 1
    assert "No bulb address" in capsys.readouterr().err
    assert fake_bulb.calls == []


def test_address_from_environment_and_profile(tmp_path, fake_bulb, monkeypatch):
    """Test that the environment and config profiles supply the address."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "bulbs:\n"
        "  desk:\n"
        "    name: desk\n"
        "    address: 192.168.1.20\n"
        "    port: 55444\n"
        "request_timeout: 3.0\n"
    )
    monkeypatch.setenv("YEELIGHT_ADDR", "10.0.0.7")

    cli.main(["--config", str(config_file), "toggle"])
    assert fake_bulb.address == ("10.0.0.7", 55443)
    assert fake_bulb.options["request_timeout"] == 3.0

    cli.main(["--config", str(config_file), "-b", "desk", "--timeout", "1.5", "toggle"])
    assert fake_bulb.address == ("192.168.1.20", 55444)
    assert fake_bulb.options["request_timeout"] == 1.5


def test_print_output_formats(capsys):
    props = {"power": "on", "bright": "80"}

    cli._print_output(props, "json")
    assert json.loads(capsys.readouterr().out) == props

    cli._print_output(props, "yaml")
    assert capsys.readouterr().out == "power: 'on'\nbright: '80'\n"

    cli._print_output(props, "table")
    table = capsys.readouterr().out
    assert "Property" in table
    assert "bright" in table

    cli._print_output(Result(id=1, values=("ok",)), "json")
    assert json.loads(capsys.readouterr().out) == ["ok"]

    cli._print_output(None, "plain")
    assert capsys.readouterr().out == ""


@pytest.mark.asyncio
@pytest.mark.integration
async def test_listen_prints_notifications_until_closed(bulb, mock_bulb, capsys):
    """Test that listen prints each changed property and ends with the connection."""
    listener = asyncio.create_task(cli._cmd_listen(bulb, None))
    while bulb.connection.notifications.subscription is None:
        await asyncio.sleep(0)

    await mock_bulb.send_props({"power": "on", "bright": 10})
    await mock_bulb.send_props({"ct": 2700})
    await asyncio.sleep(0.05)
    await mock_bulb.drop_clients()

    assert await asyncio.wait_for(listener, 2.0) is None
    assert capsys.readouterr().out == "power on\nbright 10\nct 2700\n"
