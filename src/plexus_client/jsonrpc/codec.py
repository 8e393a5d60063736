"""Encoding of outbound calls and classification of inbound frames."""

import json
from typing import Any

from pydantic import TypeAdapter, ValidationError

from .messages import (
    DISPATCH_METHOD,
    NOTIFICATION_METHODS,
    CallParams,
    JsonRpcErrorResponse,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResult,
)

InboundMessage = JsonRpcResult | JsonRpcErrorResponse | JsonRpcNotification

_result_adapter = TypeAdapter(JsonRpcResult)
_error_adapter = TypeAdapter(JsonRpcErrorResponse)
_notification_adapter = TypeAdapter(JsonRpcNotification)


class MalformedMessage(ValueError):
    """An inbound frame was not a message this client understands.

    Args:
        message (str): What was wrong with the frame
        data (Any): Validation details, when available
    """

    def __init__(self, message: str, data: Any = None):
        super(MalformedMessage, self).__init__(message)
        self.data = data


def build_request(
    request_id: int, method: str, params: dict[str, Any] | None = None
) -> JsonRpcRequest:
    """Wrap a logical call in a dispatch request.

    Args:
        request_id (int): The client-assigned request identifier
        method (str): The logical method name, e.g. ``"bash.execute"``
        params (dict | None): Named parameters of the logical method

    Returns:
        JsonRpcRequest: The request envelope
    """
    return JsonRpcRequest(
        jsonrpc="2.0",
        id=request_id,
        method=DISPATCH_METHOD,
        params=CallParams(method=method, params=params if params is not None else {}),
    )


def encode(obj: JsonRpcRequest) -> str:
    return json.dumps(obj)


def is_notification(obj: dict) -> bool:
    return "id" not in obj and obj.get("method") in NOTIFICATION_METHODS


def decode_message(raw: str | bytes) -> InboundMessage:
    """Parse and classify one inbound frame.

    A frame bearing an ``id`` is a response; a frame without one whose method
    is a notification method is a subscription notification.

    Args:
        raw (str | bytes): The frame as received from the transport

    Returns:
        InboundMessage: The validated response or notification

    Raises:
        MalformedMessage: If the frame is not valid JSON or matches neither shape
    """
    try:
        obj = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedMessage(
            e.msg, {"pos": e.pos, "lineno": e.lineno, "colno": e.colno}
        ) from e

    if not isinstance(obj, dict):
        raise MalformedMessage("Message is not a JSON object")

    try:
        if is_notification(obj):
            return _notification_adapter.validate_python(obj)
        if "id" in obj:
            if "error" in obj:
                return _error_adapter.validate_python(obj)
            if "result" in obj:
                return _result_adapter.validate_python(obj)
            raise MalformedMessage("Response carries neither result nor error")
    except ValidationError as e:
        raise MalformedMessage(e.title, e.errors()) from e

    raise MalformedMessage("Unknown message format")
