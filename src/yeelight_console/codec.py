"""Wire codec: JSON objects, one per line.

Outgoing requests look like ``{"id":1,"method":"toggle","params":[]}``.
Incoming lines are either responses carrying the request id, or ``props``
notifications without one.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence, Union

from pydantic import BaseModel, ValidationError

from .errors import DecodeError
from .protocol import FlowExpression

LINE_TERMINATOR = "\r\n"

Param = Union[int, str, Enum, FlowExpression]


@dataclass(frozen=True)
class Request:
    id: int
    method: str
    params: tuple[Union[int, str], ...] = ()


@dataclass(frozen=True)
class Result:
    """Successful response: the ordered result values as text."""

    id: int
    values: tuple[str, ...] = ()

    @property
    def is_ok(self) -> bool:
        return self.values == ("ok",)


@dataclass(frozen=True)
class ErrorReply:
    id: int
    code: int
    message: str


@dataclass(frozen=True)
class Notification:
    """Unsolicited property change reported by the bulb."""

    props: dict[str, str] = field(default_factory=dict)
    method: str = "props"


Response = Union[Result, ErrorReply]
Message = Union[Result, ErrorReply, Notification]


class _ErrorBody(BaseModel):
    code: int
    message: str = ""


class _ResponseModel(BaseModel):
    id: int
    result: Optional[list[Any]] = None
    error: Optional[_ErrorBody] = None


class _NotificationModel(BaseModel):
    method: str
    params: dict[str, Any]


class _RequestModel(BaseModel):
    id: int
    method: str
    params: list[Union[int, str]]


def _encode_param(value: Param) -> Union[int, str]:
    if isinstance(value, FlowExpression):
        return str(value)
    if isinstance(value, Enum):
        value = value.value
    # bool is an int subclass but the bulb has no boolean parameters
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError(f"unsupported parameter {value!r} ({type(value).__name__})")
    if isinstance(value, int):
        return int(value)
    return str(value)


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def encode(request_id: int, method: str, params: Sequence[Param] = ()) -> str:
    """Encode a request as a single line, without the terminator."""
    payload = {
        "id": request_id,
        "method": method,
        "params": [_encode_param(value) for value in params],
    }
    return json.dumps(payload, separators=(",", ":"))


def _load_object(line: Union[str, bytes]) -> dict[str, Any]:
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"line is not valid UTF-8: {exc}") from exc
    try:
        data = json.loads(line.strip())
    except (ValueError, RecursionError) as exc:
        # ValueError also covers integers past the int-to-str digit limit
        raise DecodeError(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise DecodeError(f"expected a JSON object, got {type(data).__name__}")
    return data


def decode(line: Union[str, bytes]) -> Message:
    """Decode one incoming line.

    Raises:
        DecodeError: if the line is neither a response nor a notification
    """
    data = _load_object(line)

    if "id" in data:
        try:
            model = _ResponseModel.model_validate(data)
        except ValidationError as exc:
            raise DecodeError(f"malformed response: {exc}") from exc
        if (model.result is None) == (model.error is None):
            raise DecodeError("response must carry exactly one of 'result' or 'error'")
        if model.error is not None:
            return ErrorReply(id=model.id, code=model.error.code, message=model.error.message)
        return Result(id=model.id, values=tuple(_as_text(value) for value in model.result))

    if "method" in data:
        try:
            model = _NotificationModel.model_validate(data)
        except ValidationError as exc:
            raise DecodeError(f"malformed notification: {exc}") from exc
        props = {name: _as_text(value) for name, value in model.params.items()}
        return Notification(props=props, method=model.method)

    raise DecodeError(f"unrecognised message with keys {sorted(data)}")


def decode_request(line: Union[str, bytes]) -> Request:
    """Decode a line produced by :func:`encode`."""
    data = _load_object(line)
    try:
        model = _RequestModel.model_validate(data, strict=True)
    except ValidationError as exc:
        raise DecodeError(f"malformed request: {exc}") from exc
    return Request(id=model.id, method=model.method, params=tuple(model.params))
