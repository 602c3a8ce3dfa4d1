"""Shared fixtures for the perch test suite."""

import pytest

from perch.cache.memory import MemoryCacheAdapter
from perch.data.query_log import query_log


@pytest.fixture(autouse=True)
def _isolate_process_state():
    """The memory cache and the default query log are process-wide."""
    MemoryCacheAdapter().clear()
    query_log.reset()
    yield
    MemoryCacheAdapter().clear()
