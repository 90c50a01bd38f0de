"""Shared fixtures: an in-process mock bulb and a client connected to it."""

import pytest_asyncio

from mock_server import MockBulb
from yeelight_console.bulb import Bulb


@pytest_asyncio.fixture
async def mock_bulb():
    """Mock bulb listening on an ephemeral local port."""
    server = await MockBulb().start()
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def bulb(mock_bulb):
    """Bulb client connected to the mock bulb."""
    client = await Bulb.connect(mock_bulb.host, mock_bulb.port, request_timeout=2.0)
    yield client
    await client.close()
