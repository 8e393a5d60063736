import logging
from typing import Any, AsyncIterator, NotRequired, TypedDict

from pydantic import ConfigDict, with_config

from . import jsonrpc

logger = logging.getLogger(__name__)


@with_config(ConfigDict(extra="allow"))
class HealthEvent(TypedDict, total=False):
    status: str
    uptime_seconds: int | float
    timestamp: int | float


@with_config(ConfigDict(extra="allow"))
class EchoEvent(TypedDict):
    """Echoed back by the echo plugin."""

    message: str
    count: NotRequired[int]


@with_config(ConfigDict(extra="allow"))
class BashEvent(TypedDict, total=False):
    """One event of a running command: a line of output, or its exit code."""

    stdout: str
    stderr: str
    exit_code: int


class HealthClient:
    @jsonrpc.method("health.check")
    async def check(self) -> HealthEvent: ...  # type: ignore

    @jsonrpc.method("health.schema")
    async def schema(self) -> Any: ...  # type: ignore


class EchoClient:
    @jsonrpc.method("echo.echo")
    async def echo(self, count: int, message: str) -> EchoEvent: ...  # type: ignore

    @jsonrpc.method("echo.once")
    async def once(self, message: str) -> EchoEvent: ...  # type: ignore

    @jsonrpc.method("echo.schema")
    async def schema(self) -> Any: ...  # type: ignore


class BashClient:
    @jsonrpc.stream("bash.execute")
    def execute(self, command: str) -> AsyncIterator[BashEvent]: ...  # type: ignore

    @jsonrpc.method("bash.schema")
    async def schema(self) -> Any: ...  # type: ignore


class Hub:
    """Typed access to the plugins of one hub connection."""

    def __init__(self, conn: jsonrpc.PlexusConnection):
        self.health = conn.get_client(HealthClient)
        self.echo = conn.get_client(EchoClient)
        self.bash = conn.get_client(BashClient)


async def smoke_test(hub: Hub):
    """Exercise a few non-streaming methods, raising on unexpected answers."""
    status = await hub.health.check()
    logger.info("health.check: %s", status, extra={"result": status})

    once = await hub.echo.once("test message")
    logger.info("echo.once: %s", once, extra={"result": once})
    if once["message"] != "test message":
        raise ValueError(f"Expected 'test message', got {once['message']!r}")

    echoed = await hub.echo.echo(3, "test")
    logger.info("echo.echo: %s", echoed, extra={"result": echoed})
