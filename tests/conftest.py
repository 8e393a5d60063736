"""Pytest configuration for the Plexus client tests."""

import pytest

from helpers import FakeHub
from plexus_client.jsonrpc import PlexusConfig, PlexusConnection


@pytest.fixture
def hub():
    return FakeHub()


@pytest.fixture
async def conn(hub):
    connection = PlexusConnection(
        PlexusConfig(url="ws://hub.test:4444"), transport_factory=hub.open
    )
    yield connection
    await connection.disconnect()
