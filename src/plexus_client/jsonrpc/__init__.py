from .connection import (
    ConnectionState,
    PlexusConfig,
    PlexusConnection,
    method,
    stream,
)
from .errors import (
    ConnectFailedError,
    ConnectionClosedError,
    ConnectTimeoutError,
    JsonRpcException,
    NoDataError,
    PlexusConnectionError,
    PlexusError,
)
from .messages import (
    JSONRPC_INTERNAL_ERROR,
    JSONRPC_INVALID_PARAMS,
    JSONRPC_INVALID_REQUEST,
    JSONRPC_METHOD_NOT_FOUND,
    JSONRPC_PARSE_ERROR,
    StreamItem,
)
from .stream import camelize_keys, collect_one, extract_data
from .transport import (
    JsonRpcStreamTransport,
    JsonRpcTransport,
    JsonRpcWebSocketTransport,
    open_transport,
)

__all__ = (
    "ConnectionState",
    "PlexusConfig",
    "PlexusConnection",
    "method",
    "stream",
    "ConnectFailedError",
    "ConnectionClosedError",
    "ConnectTimeoutError",
    "JsonRpcException",
    "NoDataError",
    "PlexusConnectionError",
    "PlexusError",
    "JSONRPC_INTERNAL_ERROR",
    "JSONRPC_INVALID_PARAMS",
    "JSONRPC_INVALID_REQUEST",
    "JSONRPC_METHOD_NOT_FOUND",
    "JSONRPC_PARSE_ERROR",
    "StreamItem",
    "camelize_keys",
    "collect_one",
    "extract_data",
    "JsonRpcStreamTransport",
    "JsonRpcTransport",
    "JsonRpcWebSocketTransport",
    "open_transport",
)
