"""In-memory transport and small utilities shared by the tests."""

import asyncio
import json
from typing import Any, Callable

Handler = Callable[[str, dict[str, Any]], list[dict[str, Any]]]


class FakeTransport:
    """Transport whose inbound frames are fed by the test.

    When a ``handler`` is set, every request is answered automatically: the
    subscription id is ``request id + 100`` and the handler's items are
    published right after the response.
    """

    def __init__(self, handler: Handler | None = None):
        self.handler = handler
        self.inbox: asyncio.Queue[str | None] = asyncio.Queue()
        self.requests: asyncio.Queue[dict] = asyncio.Queue()
        self.sent: list[dict] = []
        self.closed = False

    async def receive_message(self) -> str:
        frame = await self.inbox.get()
        if frame is None:
            raise EOFError("closed by peer")
        return frame

    async def send_message(self, body: str):
        if self.closed:
            raise ConnectionResetError("transport closed")
        req = json.loads(body)
        self.sent.append(req)
        self.requests.put_nowait(req)
        if self.handler is not None:
            sub = req["id"] + 100
            items = self.handler(req["params"]["method"], req["params"]["params"])
            self.respond(req["id"], sub)
            for item in items:
                self.notify(sub, item)

    async def close(self):
        self.closed = True

    def feed(self, obj: Any):
        self.inbox.put_nowait(obj if isinstance(obj, str) else json.dumps(obj))

    def respond(self, request_id: int, subscription_id: int):
        self.feed({"jsonrpc": "2.0", "id": request_id, "result": subscription_id})

    def reject(self, request_id: int, code: int, message: str):
        self.feed(
            {
                "jsonrpc": "2.0",
                "id": request_id,
                "error": {"code": code, "message": message},
            }
        )

    def notify(self, subscription_id: int, item: dict, method: str = "subscription"):
        self.feed(
            {
                "jsonrpc": "2.0",
                "method": method,
                "params": {"subscription": subscription_id, "result": item},
            }
        )

    def hang_up(self):
        self.inbox.put_nowait(None)

    async def next_request(self) -> dict:
        return await asyncio.wait_for(self.requests.get(), 1)


class FakeHub:
    """Transport factory handing out a fresh ``FakeTransport`` per connect."""

    def __init__(self):
        self.transports: list[FakeTransport] = []
        self.urls: list[str] = []
        self.handler: Handler | None = None

    async def open(self, url: str) -> FakeTransport:
        self.urls.append(url)
        transport = FakeTransport(self.handler)
        self.transports.append(transport)
        return transport

    @property
    def transport(self) -> FakeTransport:
        return self.transports[-1]


async def wait_until(predicate: Callable[[], bool], attempts: int = 100):
    """Let the event loop run until ``predicate`` holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


async def drain(stream) -> list:
    return [item async for item in stream]


def data(content: Any) -> dict:
    return {"type": "data", "content": content}


DONE = {"type": "done"}
