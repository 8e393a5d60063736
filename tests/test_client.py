"""Tests for client proxies built from declared hub methods."""

from typing import AsyncIterator

import pydantic
import pytest

from helpers import DONE, data
from plexus_client import hub as plexus_hub
from plexus_client.jsonrpc import NoDataError, PlexusError, method, stream


def echo_handler(method_name, params):
    match method_name:
        case "echo.once":
            return [data({"message": params["message"]}), DONE]
        case "echo.echo":
            return [
                data({"message": params["message"], "count": i})
                for i in range(params["count"])
            ] + [DONE]
        case "health.check":
            return [data({"status": "healthy", "uptime_seconds": 12}), DONE]
        case "bash.execute":
            return [
                data({"stdout": "a.txt"}),
                {"type": "progress", "message": "running"},
                data({"stdout": "b.txt"}),
                data({"exit_code": 0}),
                DONE,
            ]
        case "bash.schema":
            return [DONE]
        case _:
            return [{"type": "error", "message": f"unknown {method_name}", "code": 404}]


@pytest.fixture
def hub_api(conn, hub):
    hub.handler = echo_handler
    return plexus_hub.Hub(conn)


async def test_single_result_method(hub_api, hub):
    assert await hub_api.echo.once("hi") == {"message": "hi"}
    assert hub.transport.sent[0]["params"] == {
        "method": "echo.once",
        "params": {"message": "hi"},
    }


async def test_positional_and_keyword_arguments_are_named(hub_api, hub):
    await hub_api.echo.echo(2, message="twice")

    assert hub.transport.sent[0]["params"]["params"] == {"count": 2, "message": "twice"}


async def test_single_result_takes_first_data_item(hub_api):
    assert await hub_api.echo.echo(count=3, message="m") == {"message": "m", "count": 0}


async def test_streaming_method(hub_api):
    events = [e async for e in hub_api.bash.execute("ls")]

    assert events == [{"stdout": "a.txt"}, {"stdout": "b.txt"}, {"exit_code": 0}]


async def test_results_keep_unknown_fields(hub_api):
    assert await hub_api.health.check() == {"status": "healthy", "uptime_seconds": 12}


async def test_unexpected_argument(hub_api):
    with pytest.raises(TypeError):
        await hub_api.echo.once("hi", loud=True)


async def test_no_data(hub_api):
    with pytest.raises(NoDataError):
        await hub_api.bash.schema()


async def test_result_is_validated(conn, hub):
    hub.handler = lambda method_name, params: [data({"count": 1}), DONE]
    echo = conn.get_client(plexus_hub.EchoClient)

    with pytest.raises(pydantic.ValidationError):
        await echo.once("hi")


async def test_remote_error_is_raised(conn, hub):
    class Unknown:
        @method("nothing.here")
        async def call(self, *, value: int = 1) -> dict: ...

    hub.handler = echo_handler

    with pytest.raises(PlexusError) as exc_info:
        await conn.get_client(Unknown).call()
    assert exc_info.value.code == 404
    assert hub.transport.sent[0]["params"]["params"] == {"value": 1}


async def test_extra_keyword_parameters_are_flattened(conn, hub):
    class Loose:
        @method("echo.once")
        async def once(self, message: str, **options) -> dict: ...

    hub.handler = echo_handler

    await conn.get_client(Loose).once("hi", loud=True)
    assert hub.transport.sent[0]["params"]["params"] == {"message": "hi", "loud": True}


async def test_smoke_test_passes(hub_api, hub):
    await plexus_hub.smoke_test(hub_api)

    methods = [req["params"]["method"] for req in hub.transport.sent]
    assert methods == ["health.check", "echo.once", "echo.echo"]


async def test_smoke_test_detects_wrong_echo(conn, hub):
    def wrong_echo(method_name, params):
        if method_name == "echo.once":
            return [data({"message": "something else"}), DONE]
        return echo_handler(method_name, params)

    hub.handler = wrong_echo

    with pytest.raises(ValueError):
        await plexus_hub.smoke_test(plexus_hub.Hub(conn))


def test_undecorated_methods_are_rejected(conn):
    class Plain:
        async def nothing(self): ...

    with pytest.raises(ValueError):
        conn.get_client(Plain)


def test_declarations_reject_bad_shapes():
    with pytest.raises(ValueError):

        @method("sync.method")
        def not_async(self): ...

    with pytest.raises(ValueError):

        @method("var.args")
        async def var_args(self, *values): ...

    with pytest.raises(ValueError):

        @stream("both")
        @method("both")
        async def both(self) -> AsyncIterator[int]: ...


def test_method_name_defaults_to_function_name():
    @method
    async def ping(self): ...

    assert ping.__plexus_method__ == "ping"


async def test_none_return_is_not_validated(conn, hub):
    class Untyped:
        @method("echo.once")
        async def once(self, message: str) -> None: ...

    hub.handler = echo_handler

    assert await conn.get_client(Untyped).once("hi") == {"message": "hi"}
