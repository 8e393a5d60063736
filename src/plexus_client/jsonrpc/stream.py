"""Helpers turning a raw StreamItem stream into plain values."""

import contextlib
import re
from typing import Any, AsyncGenerator, Callable

from .errors import NoDataError, PlexusError
from .messages import ErrorItem, StreamItem

_SNAKE_RE = re.compile(r"_([a-z])")


def camelize_keys(value: Any) -> Any:
    """Recursively rename snake_case keys to camelCase.

    Suitable as the ``decode_content`` hook of a ``PlexusConnection``.
    """
    if isinstance(value, list):
        return [camelize_keys(v) for v in value]
    if isinstance(value, dict):
        return {
            _SNAKE_RE.sub(lambda m: m.group(1).upper(), k)
            if isinstance(k, str)
            else k: camelize_keys(v)
            for k, v in value.items()
        }
    return value


def to_exception(item: ErrorItem) -> PlexusError:
    return PlexusError(
        item.get("message", "Unknown error"),
        item.get("code"),
        item.get("recoverable", False),
        item.get("metadata"),
    )


async def extract_data(
    stream: AsyncGenerator[StreamItem, None],
    validate: Callable[[Any], Any] | None = None,
) -> AsyncGenerator[Any, None]:
    """Yield the content of every ``data`` item of ``stream``.

    Progress items are skipped and the iteration stops at ``done``.

    Args:
        stream (AsyncGenerator[StreamItem, None]): Items as produced by
            ``PlexusConnection.call``
        validate (Callable | None): Applied to each content before it is yielded

    Raises:
        PlexusError: When the stream ends with an ``error`` item
    """
    async with contextlib.aclosing(stream):
        async for item in stream:
            match item["type"]:
                case "data":
                    content = item["content"]
                    yield validate(content) if validate is not None else content
                case "error":
                    raise to_exception(item)
                case "done":
                    return


async def collect_one(
    stream: AsyncGenerator[StreamItem, None],
    validate: Callable[[Any], Any] | None = None,
) -> Any:
    """Return the content of the first ``data`` item of ``stream``.

    The rest of the stream is abandoned once a value has been obtained.

    Raises:
        PlexusError: When an ``error`` item arrives before any data
        NoDataError: When the stream ends without a data item
    """
    async with contextlib.aclosing(extract_data(stream, validate)) as data:
        async for content in data:
            return content
    raise NoDataError("No data received from method call")
