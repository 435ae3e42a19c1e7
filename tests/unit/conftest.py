"""Shared fixtures for coordinator unit tests."""

from unittest.mock import MagicMock

import pytest

from stream_coordinator.handlers import BlockStreamsHandler, ExecutorsHandler
from stream_coordinator.redis_store import RedisClient


@pytest.fixture
def redis_client():
    """RedisClient mock with no stored state"""
    client = MagicMock(spec=RedisClient)
    client.get_stream_version.return_value = None
    client.get_last_published_block.return_value = None
    client.set_stream_version.return_value = None
    client.set_migrated_stream_version.return_value = None
    client.clear_block_stream.return_value = None
    return client


@pytest.fixture
def block_streams_handler():
    """BlockStreamsHandler mock with no running streams"""
    handler = MagicMock(spec=BlockStreamsHandler)
    handler.list.return_value = []
    handler.start.return_value = None
    handler.stop.return_value = None
    return handler


@pytest.fixture
def executors_handler():
    """ExecutorsHandler mock with no running executors"""
    handler = MagicMock(spec=ExecutorsHandler)
    handler.list.return_value = []
    handler.start.return_value = None
    handler.stop.return_value = None
    return handler
