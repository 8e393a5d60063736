"""Plexus Connection Management

This module provides the client side of the Plexus hub protocol, including:
1. Connection lifecycle (connect, disconnect, failure propagation)
2. Request/response correlation
3. Subscription multiplexing over one shared channel
4. Client proxy generation from declared hub methods

Every logical call is a subscription: the request is answered with a
subscription id, and the call's output then arrives as notifications for that
id until a terminal item ends the stream. Many calls may be in flight over
one connection; their items never cross.

Example:
    ```python
    class EchoClient:
        @method("echo.once")
        async def once(self, message: str) -> EchoEvent: ...

    async with PlexusConnection(PlexusConfig(url="ws://127.0.0.1:4444")) as conn:
        async for item in conn.call("bash.execute", {"command": "ls"}):
            print(item)

        echo = conn.get_client(EchoClient)
        event = await echo.once("hi")
    ```

See Also:
    - transport.py: Transport layer implementations
    - subscription.py: Per-subscription delivery
"""

import asyncio
import collections.abc
import contextlib
import enum
import inspect
import logging
import typing
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Awaitable, Callable, Type, overload

from pydantic import TypeAdapter

from .codec import MalformedMessage, build_request, decode_message, encode
from .errors import (
    ConnectFailedError,
    ConnectionClosedError,
    ConnectTimeoutError,
    JsonRpcException,
)
from .messages import (
    JSONRPC_INTERNAL_ERROR,
    JsonRpcErrorResponse,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResult,
    StreamItem,
    is_terminal,
)
from .stream import collect_one, extract_data
from .subscription import Subscription, SubscriptionRegistry
from .transport import JsonRpcTransport, open_transport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[str], Awaitable[JsonRpcTransport]]


@dataclass(kw_only=True)
class PlexusConfig:
    """Settings of a hub connection.

    Fields:
        url: Endpoint of the hub (ws://, wss://, tcp:// or unix://)
        connection_timeout: Seconds allowed for opening the channel
        debug: Log every frame sent and received
    """

    url: str = "ws://127.0.0.1:4444"
    connection_timeout: float = 5.0
    debug: bool = False


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"


@overload
def method[T: Callable[..., Any]](name: str) -> Callable[[T], T]: ...


@overload
def method[T: Callable[..., Any]](func: T) -> T: ...


def method(name_or_func):
    """Decorator declaring a single-result hub method.

    Calling the method on a client returns the first data item of the call's
    stream, validated against the declared return type.

    Args:
        name_or_func (str | Callable): Either the hub method name
            (e.g. ``"echo.once"``), or the function to decorate, in which
            case the function's name is used.

    Raises:
        ValueError: If the decorated function is not async or is already a stream.

    Example:
        ```python
        class HealthClient:
            @method("health.check")
            async def check(self) -> HealthEvent: ...
        ```
    """
    if isinstance(name_or_func, str):
        name = name_or_func
    else:
        name = name_or_func.__name__

    def decorator[T: Callable[..., Any]](func: T) -> T:
        if not inspect.iscoroutinefunction(func):
            raise ValueError("Only async methods can be hub methods")
        if getattr(func, "__plexus_stream__", None) is not None:
            raise ValueError("A method can't also be a stream")
        _check_declaration_sig(func)
        setattr(func, "__plexus_method__", name)
        return func

    if isinstance(name_or_func, str):
        return decorator
    else:
        return decorator(name_or_func)


@overload
def stream[T: Callable[..., Any]](name: str) -> Callable[[T], T]: ...


@overload
def stream[T: Callable[..., Any]](func: T) -> T: ...


def stream(name_or_func):
    """Decorator declaring a streaming hub method.

    Calling the method on a client returns an async iterator over the content
    of every data item of the call's stream.

    Example:
        ```python
        class BashClient:
            @stream("bash.execute")
            def execute(self, command: str) -> AsyncIterator[BashEvent]: ...
        ```
    """
    if isinstance(name_or_func, str):
        name = name_or_func
    else:
        name = name_or_func.__name__

    def decorator[T: Callable[..., Any]](func: T) -> T:
        if getattr(func, "__plexus_method__", None) is not None:
            raise ValueError("A stream can't also be a method")
        _check_declaration_sig(func)
        setattr(func, "__plexus_stream__", name)
        return func

    if isinstance(name_or_func, str):
        return decorator
    else:
        return decorator(name_or_func)


def _check_declaration_sig(func: Callable):
    """Hub parameters are named, so ``*args`` can't be mapped onto them."""
    for param in inspect.signature(func).parameters.values():
        if param.kind == inspect.Parameter.VAR_POSITIONAL:
            raise ValueError("Hub methods can't accept *args")


def _bind_params(
    sig: inspect.Signature, args: tuple, kwargs: dict[str, Any]
) -> dict[str, Any]:
    bound = sig.bind(None, *args, **kwargs)
    bound.apply_defaults()

    params: dict[str, Any] = {}
    for i, (name, value) in enumerate(bound.arguments.items()):
        if i == 0:
            continue
        if sig.parameters[name].kind == inspect.Parameter.VAR_KEYWORD:
            params.update(value)
        else:
            params[name] = value
    return params


def _validator(tp: Any) -> Callable[[Any], Any] | None:
    if tp is Any or tp in (None, type(None)):
        return None
    return TypeAdapter(tp).validate_python


def _item_type(tp: Any) -> Any:
    origin = typing.get_origin(tp)
    if origin in (
        collections.abc.AsyncIterator,
        collections.abc.AsyncIterable,
        collections.abc.AsyncGenerator,
    ):
        return typing.get_args(tp)[0]
    return Any


class PlexusConnection:
    """Manages one connection to a Plexus hub.

    The connection owns the correlation table (requests awaiting their
    subscription id), the subscription registry and the early-delivery
    buffer. All three are only touched from the event loop the connection
    runs on.

    The channel is opened on the first call, or explicitly with ``connect``.
    If it closes, every pending call fails with ``ConnectionClosedError`` and
    every open stream ends; the next call opens a new channel.

    Args:
        config (PlexusConfig | None): Connection settings
        transport_factory (TransportFactory | None): Opens a transport for a
            URL. Defaults to ``open_transport``.
        decode_content (Callable | None): Applied to the content of every data
            item before it is yielded, e.g. ``camelize_keys``
    """

    def __init__(
        self,
        config: PlexusConfig | None = None,
        *,
        transport_factory: TransportFactory | None = None,
        decode_content: Callable[[Any], Any] | None = None,
    ):
        self._config = config if config is not None else PlexusConfig()
        self._transport_factory = transport_factory or open_transport
        self._decode_content = decode_content
        self._transport: JsonRpcTransport | None = None
        self._state = ConnectionState.DISCONNECTED
        self._next_id = 1
        self._pending_requests: dict[int, asyncio.Future[Subscription]] = {}
        self._abandoned: set[int] = set()
        self._subscriptions = SubscriptionRegistry()
        self._connect_task: asyncio.Task | None = None
        self._reader_task: asyncio.Task | None = None

    @property
    def config(self) -> PlexusConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        return self._state

    async def __aenter__(self) -> "PlexusConnection":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info):
        await self.disconnect()

    def get_client[T](self, proto: Type[T]) -> T:
        """Create a client from a class declaring hub methods.

        Every public attribute of ``proto`` must be decorated with ``@method``
        or ``@stream``. Arguments are bound against the declared signature and
        sent as named parameters; results are validated against the declared
        return type with pydantic.

        Args:
            proto (Type[T]): A class declaring the hub methods

        Returns:
            T: A proxy object implementing the class

        Raises:
            ValueError: If the class contains undecorated or non-method attributes
        """
        attributes = {}

        for attr_name in dir(proto):
            if attr_name.startswith("_"):
                continue

            attr = getattr(proto, attr_name)

            if not callable(attr):
                raise ValueError("Clients must only expose methods")

            method_name: str | None = getattr(attr, "__plexus_method__", None)
            stream_name: str | None = getattr(attr, "__plexus_stream__", None)
            sig = inspect.signature(attr)
            returns = typing.get_type_hints(attr).get("return", Any)

            if method_name is not None:

                def get_method_impl(name, sig, validate):
                    async def method_impl(self, *args, **kwargs):
                        params = _bind_params(sig, args, kwargs)
                        return await collect_one(self._conn.call(name, params), validate)

                    method_impl.__signature__ = sig
                    return method_impl

                attributes[attr_name] = get_method_impl(
                    method_name, sig, _validator(returns)
                )
            elif stream_name is not None:

                def get_stream_impl(name, sig, validate):
                    def stream_impl(self, *args, **kwargs):
                        params = _bind_params(sig, args, kwargs)
                        return extract_data(self._conn.call(name, params), validate)

                    stream_impl.__signature__ = sig
                    return stream_impl

                attributes[attr_name] = get_stream_impl(
                    stream_name, sig, _validator(_item_type(returns))
                )
            else:
                raise ValueError("Only methods and streams are supported")
        klass = type(f"Plexus{proto.__name__}", (), attributes)
        instance = klass()
        instance._conn = self
        return instance

    async def connect(self):
        """Open the channel to the hub.

        Does nothing if the channel is already open. Concurrent callers share
        a single attempt and observe the same outcome.

        Raises:
            ConnectTimeoutError: If the channel did not open in time
            ConnectFailedError: If the channel could not be opened
            ConnectionClosedError: If ``disconnect`` was called meanwhile
        """
        if self._state is ConnectionState.OPEN:
            return

        if self._connect_task is None:
            self._state = ConnectionState.CONNECTING
            self._connect_task = asyncio.create_task(self._open())

        task = self._connect_task
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                raise ConnectionClosedError("Disconnected while connecting") from None
            raise

    async def _open(self):
        current = asyncio.current_task()
        url = self._config.url
        timeout = self._config.connection_timeout
        try:
            try:
                transport = await asyncio.wait_for(
                    self._transport_factory(url), timeout
                )
            except TimeoutError as e:
                raise ConnectTimeoutError(
                    f"Connection timeout after {timeout}s"
                ) from e
            except Exception as e:
                raise ConnectFailedError(f"Connection to {url} failed: {e}") from e
        except BaseException:
            if self._connect_task is current:
                self._connect_task = None
                self._state = ConnectionState.DISCONNECTED
            raise

        self._connect_task = None
        self._transport = transport
        self._state = ConnectionState.OPEN
        self._reader_task = asyncio.create_task(self._read_messages(transport))
        logger.info("Connected to %s", url)

    async def disconnect(self):
        """Close the channel.

        Every pending call fails with ``ConnectionClosedError`` and every open
        stream ends. The connection can be used again afterwards.
        """
        connect_task, self._connect_task = self._connect_task, None
        if connect_task is not None:
            connect_task.cancel()

        transport, self._transport = self._transport, None
        reader, self._reader_task = self._reader_task, None
        if reader is not None:
            reader.cancel()

        self._state = ConnectionState.DISCONNECTED
        self._fail_all()

        if transport is not None:
            with contextlib.suppress(OSError):
                await transport.close()
            logger.info("Disconnected from %s", self._config.url)

    def _fail_all(self):
        pending = list(self._pending_requests.values())
        self._pending_requests.clear()
        for fut in pending:
            if not fut.done():
                fut.set_exception(ConnectionClosedError("Connection closed"))
        self._abandoned.clear()
        self._subscriptions.close_all()

    def _trace(self, msg: str, obj: Any):
        if self._config.debug:
            logger.debug(msg, extra={"jsonRpcMsg": obj})

    async def _send_obj(self, transport: JsonRpcTransport, obj: JsonRpcRequest):
        self._trace("Object sent", obj)
        await transport.send_message(encode(obj))

    async def call(
        self, method: str, params: dict[str, Any] | None = None
    ) -> AsyncGenerator[StreamItem, None]:
        """Call a hub method and iterate over its stream of items.

        Nothing is sent until iteration starts. The iteration ends after the
        terminal item (``done`` or ``error``), or without one if the
        connection is lost. Leaving the iteration early abandons the
        subscription.

        Args:
            method (str): Logical method name, e.g. ``"echo.once"``
            params (dict | None): Named parameters of the method

        Yields:
            StreamItem: The items of the call's subscription in arrival order

        Raises:
            JsonRpcException: If the hub rejected the call
            PlexusConnectionError: If the connection failed or was closed
        """
        await self.connect()

        transport = self._transport
        if transport is None or self._state is not ConnectionState.OPEN:
            raise ConnectionClosedError("Not connected")

        request_id = self._next_id
        self._next_id = self._next_id + 1

        future = asyncio.get_running_loop().create_future()
        self._pending_requests[request_id] = future

        try:
            try:
                await self._send_obj(transport, build_request(request_id, method, params))
            except OSError as e:
                raise ConnectionClosedError(f"Failed to send request: {e}") from e
            sub = await future
        except asyncio.CancelledError:
            self._abandon(request_id, future)
            raise
        finally:
            self._pending_requests.pop(request_id, None)

        logger.debug(
            "Call %s got subscription %s", method, sub.id,
            extra={"requestId": request_id},
        )
        try:
            while True:
                item = await sub.next_item()
                if item is None:
                    return
                if item["type"] == "data" and self._decode_content is not None:
                    item = {**item, "content": self._decode_content(item["content"])}
                yield item
                if is_terminal(item):
                    return
        finally:
            self._subscriptions.release(sub.id, sub)

    def _abandon(self, request_id: int, future: asyncio.Future[Subscription]):
        """Forget a call whose caller stopped waiting for its subscription."""
        if not future.done() or future.cancelled():
            if self._pending_requests.pop(request_id, None) is not None:
                self._abandoned.add(request_id)
        elif future.exception() is None:
            sub = future.result()
            self._subscriptions.release(sub.id, sub)

    def _handle_message(self, raw: str):
        self._trace("Received message", raw)

        try:
            msg = decode_message(raw)
        except MalformedMessage as e:
            logger.warning(
                "Discarding malformed message: %s",
                e,
                extra={"raw": raw, "details": e.data},
            )
            return

        if "id" in msg:
            if "error" in msg:
                self._handle_error(msg)
            else:
                self._handle_result(msg)
        else:
            self._handle_notification(msg)

    def _take_pending(
        self, id: int | str | None
    ) -> asyncio.Future[Subscription] | None:
        fut = self._pending_requests.pop(id, None) if id is not None else None
        if fut is None or fut.done():
            return None
        return fut

    def _handle_result(self, res: JsonRpcResult):
        id = res["id"]
        result = res["result"]
        valid = isinstance(result, int) and not isinstance(result, bool)

        if id in self._abandoned:
            self._abandoned.discard(id)
            if valid:
                self._subscriptions.retire(result)
            return

        fut = self._take_pending(id)
        if fut is None:
            logger.warning(
                "Received result for invalid id %s", id, extra={"result": result}
            )
            return

        if valid:
            # Registered before the caller resumes: _fail_all only reaches
            # registered subscriptions.
            fut.set_result(self._subscriptions.register(result))
        else:
            fut.set_exception(
                JsonRpcException(
                    f"Expected a subscription id, got {result!r}",
                    JSONRPC_INTERNAL_ERROR,
                )
            )

    def _handle_error(self, res: JsonRpcErrorResponse):
        id = res["id"]
        error = res["error"]

        fut = self._take_pending(id)
        if fut is None:
            logger.warning(
                "Received error with invalid id %s", id, extra={"error": error}
            )
            return

        fut.set_exception(JsonRpcException.from_error(error))

    def _handle_notification(self, noti: JsonRpcNotification):
        params = noti["params"]
        self._subscriptions.dispatch(params["subscription"], params["result"])

    async def _read_messages(self, transport: JsonRpcTransport):
        try:
            while True:
                self._handle_message(await transport.receive_message())
        except (EOFError, OSError) as e:
            logger.info("Connection to %s closed: %s", self._config.url, e)
        except Exception:
            logger.exception("Failed reading from %s", self._config.url)

        if self._transport is transport:
            self._transport = None
            self._reader_task = None
            self._state = ConnectionState.DISCONNECTED
            self._fail_all()
        with contextlib.suppress(OSError):
            await transport.close()
