"""Plexus JSON-RPC 2.0 Message Type Definitions

This module defines the message types exchanged with a Plexus hub. All types
are defined using Python's TypedDict so they can be validated with pydantic.

The hub speaks JSON-RPC 2.0 with subscriptions:
1. Request - every logical call is tunneled through one dispatch method
2. Success Response - the result is the server-assigned subscription id
3. Error Response - the call was rejected before a subscription was created
4. Subscription Notification - one StreamItem of a subscription's output

A subscription emits zero or more ``data``/``progress`` items followed by
exactly one terminal item (``done`` or ``error``).

References:
    JSON-RPC 2.0 Specification: https://www.jsonrpc.org/specification
"""

from typing import Annotated, Any, Literal, NotRequired, TypedDict

from pydantic import ConfigDict, Field, with_config

DISPATCH_METHOD = "plexus.call"
"""Wire-level method that carries every logical call."""

NOTIFICATION_METHODS = frozenset({"subscription", "result"})
"""Notification method names accepted as equivalent.

The hub has been observed to use both spellings for the same message.
"""


class CallParams(TypedDict):
    """Parameters of a dispatch request.

    Fields:
        method: The logical method name, e.g. ``"echo.once"``
        params: Named parameters of the logical method
    """
    method: str
    params: dict[str, Any]


class JsonRpcRequest(TypedDict):
    """A JSON-RPC request message.

    Fields:
        jsonrpc: Must be exactly "2.0"
        method: Always the dispatch method
        params: The logical call being tunneled
        id: Client-assigned request identifier
    """
    jsonrpc: Literal["2.0"]
    method: str
    params: CallParams
    id: int


class JsonRpcResult(TypedDict):
    """A JSON-RPC success response message.

    Fields:
        jsonrpc: Must be exactly "2.0"
        result: The subscription id granted for the request
        id: The id from the original request
    """
    jsonrpc: Literal["2.0"]
    result: Any
    id: int | str | None


class JsonRpcError(TypedDict):
    """A JSON-RPC error object.

    Fields:
        code: The error code (see error code constants below)
        message: A short description of the error
        data: Optional additional error information
    """
    code: int
    message: str
    data: NotRequired[Any]


class JsonRpcErrorResponse(TypedDict):
    """A JSON-RPC error response message.

    Fields:
        jsonrpc: Must be exactly "2.0"
        error: The error that occurred
        id: The id from the original request, or null if it couldn't be determined
    """
    jsonrpc: Literal["2.0"]
    error: JsonRpcError
    id: int | str | None


@with_config(ConfigDict(extra="allow"))
class DataItem(TypedDict):
    type: Literal["data"]
    content: Any
    metadata: NotRequired[dict[str, Any]]


@with_config(ConfigDict(extra="allow"))
class ProgressItem(TypedDict):
    type: Literal["progress"]
    message: NotRequired[str]
    percentage: NotRequired[float | None]
    metadata: NotRequired[dict[str, Any]]


@with_config(ConfigDict(extra="allow"))
class ErrorItem(TypedDict):
    type: Literal["error"]
    message: NotRequired[str]
    code: NotRequired[int | str | None]
    recoverable: NotRequired[bool]
    metadata: NotRequired[dict[str, Any]]


@with_config(ConfigDict(extra="allow"))
class DoneItem(TypedDict):
    type: Literal["done"]
    metadata: NotRequired[dict[str, Any]]


StreamItem = Annotated[
    DataItem | ProgressItem | ErrorItem | DoneItem, Field(discriminator="type")
]
"""One event of a subscription's output, discriminated by ``type``."""

TERMINAL_TYPES = frozenset({"done", "error"})


class SubscriptionParams(TypedDict):
    subscription: int
    result: StreamItem


class JsonRpcNotification(TypedDict):
    """A subscription notification.

    Notifications carry no id. The method is one of ``NOTIFICATION_METHODS``.

    Fields:
        jsonrpc: Must be exactly "2.0"
        method: ``"subscription"`` or ``"result"``
        params: The subscription id and the StreamItem being delivered
    """
    jsonrpc: Literal["2.0"]
    method: str
    params: SubscriptionParams


def is_terminal(item: StreamItem) -> bool:
    """Whether ``item`` ends its subscription's stream."""
    return item["type"] in TERMINAL_TYPES


# Standard JSON-RPC 2.0 error codes
JSONRPC_PARSE_ERROR = -32700
"""Invalid JSON was received by the server."""

JSONRPC_INVALID_REQUEST = -32600
"""The JSON sent is not a valid Request object."""

JSONRPC_METHOD_NOT_FOUND = -32601
"""The method does not exist / is not available."""

JSONRPC_INVALID_PARAMS = -32602
"""Invalid method parameter(s)."""

JSONRPC_INTERNAL_ERROR = -32603
"""Internal JSON-RPC error."""
