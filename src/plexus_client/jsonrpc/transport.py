"""Channels to a Plexus hub

A transport moves whole JSON-RPC frames, as text, between the client and a
hub. It knows nothing of their contents.

The module defines:
1. ``JsonRpcTransport``, the interface the connection relies on
2. A WebSocket transport, the hub's native channel
3. A length-prefixed stream transport for TCP and Unix sockets
4. ``open_transport``, which picks a transport from an endpoint URL

Transports signal that the peer closed the channel by raising ``EOFError``
from ``receive_message``.
"""

import asyncio
import contextlib
import logging
import urllib.parse
from typing import Protocol

import websockets.asyncio.client
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)


class JsonRpcTransport(Protocol):
    """What ``PlexusConnection`` needs from a channel.

    Only one task receives at a time, but sends may overlap with a receive.
    """

    async def receive_message(self) -> str:
        """Wait for the next whole frame.

        Raises:
            EOFError: If the peer closed the channel
        """
        ...

    async def send_message(self, body: str):
        """Write one frame.

        Raises:
            ConnectionError: If the channel can no longer be written to
        """
        ...

    async def close(self):
        """Close the channel. Closing twice is harmless."""
        ...


class JsonRpcWebSocketTransport:
    """WebSocket transport implementation.

    Each JSON-RPC message travels as one text frame.

    Args:
        ws (ClientConnection): An open websocket connection
    """

    def __init__(self, ws: ClientConnection):
        self._ws = ws

    @classmethod
    async def connect(cls, url: str) -> "JsonRpcWebSocketTransport":
        """Open a websocket to ``url``.

        Callers bound the time spent here themselves, so the library's own
        open timeout is disabled.
        """
        ws = await websockets.asyncio.client.connect(
            url, open_timeout=None, max_size=None
        )
        return cls(ws)

    async def receive_message(self) -> str:
        try:
            frame = await self._ws.recv()
        except ConnectionClosed as e:
            raise EOFError(f"WebSocket closed: {e}") from e
        if isinstance(frame, bytes):
            return frame.decode()
        return frame

    async def send_message(self, body: str):
        try:
            await self._ws.send(body)
        except ConnectionClosed as e:
            raise ConnectionResetError(f"WebSocket closed: {e}") from e

    async def close(self):
        await self._ws.close(code=1000, reason="Client disconnect")


class JsonRpcStreamTransport:
    """Transport over a byte stream, for hubs listening on TCP or Unix sockets.

    Frames are delimited the way language servers delimit them: a block of
    ``Name: value`` header lines, a blank line, then exactly
    ``Content-Length`` bytes of UTF-8 JSON.

        Content-Length: 52
        Content-Type: application/json;charset=utf-8

        {"jsonrpc": "2.0", ...}

    Header blocks without a length can't be framed and are skipped. End of
    stream surfaces as ``asyncio.IncompleteReadError``, which is an
    ``EOFError``.

    Args:
        reader (asyncio.StreamReader): Incoming side of the socket
        writer (asyncio.StreamWriter): Outgoing side of the socket
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self._reader = reader
        self._writer = writer

    async def _header_block(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        while (line := await self._reader.readuntil(b"\r\n")) != b"\r\n":
            name, sep, value = line.partition(b":")
            if not sep:
                logger.warning("Ignoring malformed header line", extra={"row": line})
                continue
            headers[name.strip().lower().decode()] = value.strip().decode()
        return headers

    async def receive_message(self) -> str:
        while True:
            length = (await self._header_block()).get("content-length")
            if length is not None:
                break
            logger.warning("Received message with no Content-Length header")
        return (await self._reader.readexactly(int(length))).decode()

    async def send_message(self, body: str):
        payload = body.encode()
        head = (
            f"Content-Length: {len(payload)}\r\n"
            "Content-Type: application/json;charset=utf-8\r\n"
            "\r\n"
        )
        self._writer.write(head.encode() + payload)
        await self._writer.drain()

    async def close(self):
        if self._writer.is_closing():
            return
        self._writer.close()
        with contextlib.suppress(ConnectionError):
            await self._writer.wait_closed()


async def open_transport(url: str) -> JsonRpcTransport:
    """Open a transport to the endpoint named by ``url``.

    Supported schemes: ``ws``/``wss`` (WebSocket), ``tcp`` and ``unix``
    (length-prefixed streams). Examples: ws://127.0.0.1:4444
    tcp://localhost:1234 unix:///tmp/plexus.sock

    Raises:
        ValueError: If the scheme is not supported
        OSError: If the endpoint cannot be reached
    """
    path = urllib.parse.urlparse(url)
    match path.scheme:
        case "ws" | "wss":
            return await JsonRpcWebSocketTransport.connect(url)
        case "tcp":
            (reader, writer) = await asyncio.open_connection(path.hostname, path.port)
            return JsonRpcStreamTransport(reader, writer)
        case "unix":
            (reader, writer) = await asyncio.open_unix_connection(path.path)
            return JsonRpcStreamTransport(reader, writer)
        case _:
            raise ValueError(f"Unsupported scheme {path.scheme}")
