"""Exceptions raised by the Plexus client.

Errors local to one call (``JsonRpcException``, ``PlexusError``) never affect
other calls sharing the connection. Connection failures are broadcast to every
pending call.
"""

from typing import Any

from .messages import JsonRpcError


class JsonRpcException(Exception):
    """Exception raised for JSON-RPC error responses.

    The hub rejected a call before granting it a subscription.

    Args:
        message (str): A human-readable error description
        code (int): The JSON-RPC error code (see messages.py for standard codes)
        data (Any): Optional additional error data

    Example:
        ```python
        try:
            await hub.echo.once(message="hi")
        except JsonRpcException as e:
            if e.code == JSONRPC_METHOD_NOT_FOUND:
                print(f"Method not found: {e}")
            else:
                print(f"RPC error {e.code}: {e}")
        ```
    """

    def __init__(self, message: str, code: int, data: Any = None):
        super(JsonRpcException, self).__init__(message)
        self.code = code
        self.data = data

    @staticmethod
    def from_error(err: JsonRpcError) -> "JsonRpcException":
        """Create an exception from a JSON-RPC error object.

        Args:
            err (JsonRpcError): The error object from a JSON-RPC response

        Returns:
            JsonRpcException: The corresponding exception
        """
        if "data" in err:
            return JsonRpcException(err["message"], err["code"], err["data"])
        else:
            return JsonRpcException(err["message"], err["code"])


class PlexusConnectionError(ConnectionError):
    """Base class for failures of the connection to the hub."""


class ConnectFailedError(PlexusConnectionError):
    """The channel to the hub could not be opened."""


class ConnectTimeoutError(PlexusConnectionError, TimeoutError):
    """The channel did not open within the configured timeout."""


class ConnectionClosedError(PlexusConnectionError):
    """The connection was closed while a call was waiting on it."""


class PlexusError(Exception):
    """An ``error`` item ended a subscription's stream.

    Args:
        message (str): The error description sent by the hub
        code (int | str | None): The hub's error code, if any
        recoverable (bool): Whether retrying the call may succeed
        metadata (dict | None): Free-form metadata attached to the item
    """

    def __init__(
        self,
        message: str,
        code: int | str | None = None,
        recoverable: bool = False,
        metadata: dict[str, Any] | None = None,
    ):
        super(PlexusError, self).__init__(message)
        self.message = message
        self.code = code
        self.recoverable = recoverable
        self.metadata = metadata

    def __repr__(self):
        return (
            f"PlexusError({self.message!r}, code={self.code!r}, "
            f"recoverable={self.recoverable!r})"
        )


class NoDataError(Exception):
    """A single-result call ended without producing a data item."""
