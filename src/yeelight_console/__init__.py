"""Yeelight Console - asyncio client and CLI for Yeelight smart lights.

This package provides a protocol client for the Yeelight LAN control
protocol (line-delimited JSON over TCP) and a standalone CLI built on it.
"""

__version__ = "0.1.0"

from .bulb import Bulb
from .codec import ErrorReply, Notification, Result
from .connection import Connection, ConnectionState
from .errors import (
    BulbIOError,
    ConnectError,
    DecodeError,
    Disconnected,
    ProtocolError,
    RequestTimeout,
    YeelightError,
)
from .notifications import Subscription
from .protocol import (
    AdjustAction,
    AdjustProp,
    CfAction,
    CronType,
    Effect,
    FlowExpression,
    FlowMode,
    FlowTuple,
    Mode,
    MusicAction,
    Power,
    Property,
    SceneClass,
    Target,
)

connect = Bulb.connect

__all__ = [
    "AdjustAction",
    "AdjustProp",
    "Bulb",
    "BulbIOError",
    "CfAction",
    "ConnectError",
    "Connection",
    "ConnectionState",
    "CronType",
    "DecodeError",
    "Disconnected",
    "Effect",
    "ErrorReply",
    "FlowExpression",
    "FlowMode",
    "FlowTuple",
    "Mode",
    "MusicAction",
    "Notification",
    "Power",
    "Property",
    "ProtocolError",
    "RequestTimeout",
    "Result",
    "SceneClass",
    "Subscription",
    "Target",
    "YeelightError",
    "connect",
    "__version__",
]
