"""Bulb API for yeelight-console."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Sequence, Union

from . import codec
from .codec import ErrorReply, Param, Result
from .connection import DEFAULT_CONNECT_TIMEOUT, Connection
from .errors import Disconnected, ProtocolError, RequestTimeout
from .notifications import DEFAULT_BUFFER_SIZE, Subscription
from .protocol import (
    ANY_TARGET,
    DEFAULT_PORT,
    MAIN_ONLY,
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
    method_name,
)

logger = logging.getLogger(__name__)

DEFAULT_DURATION = 500


class Bulb:
    """Client for one bulb over a single shared connection.

    Every operation encodes a request with a fresh correlation id, sends it,
    and waits only for its own response, so any number of calls may run
    concurrently on the same bulb.
    """

    def __init__(self, connection: Connection, *, request_timeout: Optional[float] = None):
        """
        Initialize the bulb client.

        Args:
            connection: Open connection owned by this bulb
            request_timeout: Default per-call timeout in seconds (None waits forever)
        """
        self.connection = connection
        self.request_timeout = request_timeout

    @classmethod
    async def connect(
        cls,
        host: str,
        port: int = DEFAULT_PORT,
        *,
        connect_timeout: Optional[float] = DEFAULT_CONNECT_TIMEOUT,
        request_timeout: Optional[float] = None,
        notification_buffer: int = DEFAULT_BUFFER_SIZE,
    ) -> Bulb:
        """Open a connection to ``host:port`` and wrap it.

        Raises:
            ConnectError: if the bulb is unreachable or refuses the connection
        """
        connection = await Connection.open(
            host,
            port,
            timeout=connect_timeout,
            notification_buffer=notification_buffer,
        )
        return cls(connection, request_timeout=request_timeout)

    @property
    def host(self) -> str:
        return self.connection.host

    @property
    def port(self) -> int:
        return self.connection.port

    @property
    def is_connected(self) -> bool:
        return self.connection.is_open

    async def reconnect(self, *, connect_timeout: Optional[float] = DEFAULT_CONNECT_TIMEOUT) -> None:
        """Replace the connection with a fresh one to the same address.

        Calls pending on the old connection fail with Disconnected.
        """
        old = self.connection
        await old.close()
        self.connection = await Connection.open(
            old.host,
            old.port,
            timeout=connect_timeout,
            notification_buffer=old.notifications.buffer_size,
        )

    async def close(self) -> None:
        """Close the connection."""
        await self.connection.close()

    async def __aenter__(self) -> Bulb:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.close()

    # Request plumbing

    async def call(
        self,
        method: str,
        params: Sequence[Param] = (),
        *,
        timeout: Optional[float] = None,
    ) -> Result:
        """
        Send one request and wait for its response.

        Args:
            method: Wire method name
            params: Ordered parameters
            timeout: Seconds to wait for the response (defaults to request_timeout)

        Returns:
            The bulb's result values

        Raises:
            Disconnected: if the connection is, or becomes, closed
            ProtocolError: if the bulb answers with an error object
            RequestTimeout: if no response arrives in time
            BulbIOError: if the request cannot be written
        """
        connection = self.connection
        if not connection.is_open:
            raise Disconnected(f"cannot send {method}: connection is closed")

        request_id = connection.next_id()
        line = codec.encode(request_id, method, params)
        future = connection.tracker.register(request_id, method)
        if timeout is None:
            timeout = self.request_timeout

        try:
            await connection.send(line)
            response = await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise RequestTimeout(
                f"No response to {method} (id {request_id}) within {timeout}s"
            ) from exc
        finally:
            connection.tracker.discard(request_id)
            if future.done() and not future.cancelled():
                # failed by fail_all while send() raised; mark it retrieved
                future.exception()

        if isinstance(response, ErrorReply):
            raise ProtocolError(response.code, response.message)
        return response

    # Power

    async def set_power(
        self,
        power: Power,
        effect: Effect = Effect.SMOOTH,
        duration: int = DEFAULT_DURATION,
        mode: Mode = Mode.NORMAL,
        *,
        target: Target = Target.MAIN,
        timeout: Optional[float] = None,
    ) -> Result:
        """Switch the light on or off, entering ``mode`` when turning on."""
        return await self.call(
            method_name("set_power", target), [power, effect, duration, mode], timeout=timeout
        )

    async def turn_on(
        self,
        effect: Effect = Effect.SMOOTH,
        duration: int = DEFAULT_DURATION,
        mode: Mode = Mode.NORMAL,
        *,
        target: Target = Target.MAIN,
        timeout: Optional[float] = None,
    ) -> Result:
        return await self.set_power(Power.ON, effect, duration, mode, target=target, timeout=timeout)

    async def turn_off(
        self,
        effect: Effect = Effect.SMOOTH,
        duration: int = DEFAULT_DURATION,
        mode: Mode = Mode.NORMAL,
        *,
        target: Target = Target.MAIN,
        timeout: Optional[float] = None,
    ) -> Result:
        return await self.set_power(Power.OFF, effect, duration, mode, target=target, timeout=timeout)

    async def toggle(self, *, target: Target = Target.MAIN, timeout: Optional[float] = None) -> Result:
        """Toggle the main light, the background light, or both (DEVICE)."""
        return await self.call(method_name("toggle", target, ANY_TARGET), timeout=timeout)

    # Color and brightness

    async def set_ct_abx(
        self,
        ct: int,
        effect: Effect = Effect.SMOOTH,
        duration: int = DEFAULT_DURATION,
        *,
        target: Target = Target.MAIN,
        timeout: Optional[float] = None,
    ) -> Result:
        return await self.call(method_name("set_ct_abx", target), [ct, effect, duration], timeout=timeout)

    async def set_rgb(
        self,
        rgb: int,
        effect: Effect = Effect.SMOOTH,
        duration: int = DEFAULT_DURATION,
        *,
        target: Target = Target.MAIN,
        timeout: Optional[float] = None,
    ) -> Result:
        return await self.call(method_name("set_rgb", target), [rgb, effect, duration], timeout=timeout)

    async def set_hsv(
        self,
        hue: int,
        sat: int,
        effect: Effect = Effect.SMOOTH,
        duration: int = DEFAULT_DURATION,
        *,
        target: Target = Target.MAIN,
        timeout: Optional[float] = None,
    ) -> Result:
        return await self.call(
            method_name("set_hsv", target), [hue, sat, effect, duration], timeout=timeout
        )

    async def set_bright(
        self,
        brightness: int,
        effect: Effect = Effect.SMOOTH,
        duration: int = DEFAULT_DURATION,
        *,
        target: Target = Target.MAIN,
        timeout: Optional[float] = None,
    ) -> Result:
        return await self.call(
            method_name("set_bright", target), [brightness, effect, duration], timeout=timeout
        )

    async def set_scene(
        self,
        scene_class: SceneClass,
        val1: Union[int, str, FlowExpression],
        val2: Union[int, str, FlowExpression, None] = None,
        val3: Union[int, str, FlowExpression, None] = None,
        *,
        target: Target = Target.MAIN,
        timeout: Optional[float] = None,
    ) -> Result:
        """
        Jump straight to a scene, turning the light on if needed.

        Trailing values left as None are not sent, so e.g. a CT scene is
        ``set_scene(SceneClass.CT, 4000, 80)``.
        """
        values = [val1, val2, val3]
        while values and values[-1] is None:
            values.pop()
        if None in values:
            raise ValueError("scene values must be contiguous")
        return await self.call(method_name("set_scene", target), [scene_class, *values], timeout=timeout)

    async def set_default(self, *, target: Target = Target.MAIN, timeout: Optional[float] = None) -> Result:
        """Save the current state as the power-on default."""
        return await self.call(method_name("set_default", target), timeout=timeout)

    async def set_name(self, name: str, *, timeout: Optional[float] = None) -> Result:
        return await self.call(method_name("set_name", Target.MAIN, MAIN_ONLY), [name], timeout=timeout)

    # Properties

    async def get_prop(
        self, *properties: Union[Property, str], timeout: Optional[float] = None
    ) -> Result:
        """Read properties; values come back in request order, "" if unsupported."""
        if not properties:
            raise ValueError("get_prop needs at least one property")
        return await self.call("get_prop", [Property(prop) for prop in properties], timeout=timeout)

    async def get_props(
        self, *properties: Union[Property, str], timeout: Optional[float] = None
    ) -> dict[str, str]:
        """Read properties into a name -> value mapping.

        Raises:
            ValueError: if the bulb answers with a different number of values
        """
        props = [Property(prop) for prop in properties]
        result = await self.get_prop(*props, timeout=timeout)
        if len(result.values) != len(props):
            raise ValueError(
                f"asked for {len(props)} properties but the bulb returned {len(result.values)} values"
            )
        return {prop.value: value for prop, value in zip(props, result.values)}

    # Color flow

    async def start_cf(
        self,
        count: int,
        action: CfAction,
        expression: Union[FlowExpression, str],
        *,
        target: Target = Target.MAIN,
        timeout: Optional[float] = None,
    ) -> Result:
        """Start a color flow; a ``count`` of 0 loops forever."""
        if isinstance(expression, str):
            expression = FlowExpression.parse(expression)
        return await self.call(
            method_name("start_cf", target), [count, action, expression], timeout=timeout
        )

    async def stop_cf(self, *, target: Target = Target.MAIN, timeout: Optional[float] = None) -> Result:
        return await self.call(method_name("stop_cf", target), timeout=timeout)

    # Adjustments

    async def set_adjust(
        self,
        action: AdjustAction,
        prop: AdjustProp,
        *,
        target: Target = Target.MAIN,
        timeout: Optional[float] = None,
    ) -> Result:
        """Nudge a property without knowing its current value."""
        if prop is AdjustProp.COLOR and action is not AdjustAction.CIRCLE:
            raise ValueError("color can only be adjusted with the circle action")
        return await self.call(method_name("set_adjust", target), [action, prop], timeout=timeout)

    async def adjust_bright(
        self,
        percent: int,
        duration: int = DEFAULT_DURATION,
        *,
        target: Target = Target.MAIN,
        timeout: Optional[float] = None,
    ) -> Result:
        return await self.adjust_percent(
            AdjustProp.BRIGHT, percent, duration, target=target, timeout=timeout
        )

    async def adjust_ct(
        self,
        percent: int,
        duration: int = DEFAULT_DURATION,
        *,
        target: Target = Target.MAIN,
        timeout: Optional[float] = None,
    ) -> Result:
        return await self.adjust_percent(AdjustProp.CT, percent, duration, target=target, timeout=timeout)

    async def adjust_color(
        self,
        percent: int,
        duration: int = DEFAULT_DURATION,
        *,
        target: Target = Target.MAIN,
        timeout: Optional[float] = None,
    ) -> Result:
        return await self.adjust_percent(
            AdjustProp.COLOR, percent, duration, target=target, timeout=timeout
        )

    async def adjust_percent(
        self,
        prop: AdjustProp,
        percent: int,
        duration: int = DEFAULT_DURATION,
        *,
        target: Target = Target.MAIN,
        timeout: Optional[float] = None,
    ) -> Result:
        """Adjust ``prop`` by a signed percentage (-100..100)."""
        if not -100 <= percent <= 100:
            raise ValueError("percent must be between -100 and 100")
        base = f"adjust_{AdjustProp(prop).value}"
        return await self.call(method_name(base, target), [percent, duration], timeout=timeout)

    # Music mode

    async def set_music(
        self,
        action: MusicAction,
        host: str = "",
        port: int = 0,
        *,
        timeout: Optional[float] = None,
    ) -> Result:
        """Ask the bulb to connect to (or drop) a music-mode TCP server."""
        if action is MusicAction.ON:
            return await self.call("set_music", [action, host, port], timeout=timeout)
        return await self.call("set_music", [action], timeout=timeout)

    # Timers

    async def cron_add(
        self, cron_type: CronType, minutes: int, *, timeout: Optional[float] = None
    ) -> Result:
        return await self.call("cron_add", [cron_type, minutes], timeout=timeout)

    async def cron_get(
        self, cron_type: CronType = CronType.OFF, *, timeout: Optional[float] = None
    ) -> Result:
        return await self.call("cron_get", [cron_type], timeout=timeout)

    async def cron_del(
        self, cron_type: CronType = CronType.OFF, *, timeout: Optional[float] = None
    ) -> Result:
        return await self.call("cron_del", [cron_type], timeout=timeout)

    # Notifications

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        """
        Subscribe to property-change notifications.

        Only one subscription is active at a time; a new one closes the old.
        The subscription ends when the connection closes.
        """
        return self.connection.notifications.subscribe(maxsize)
