import json
import os
from typing import Callable

import pytest
from prometheus_client import CollectorRegistry

from usageshare.clock import ManualClock
from usageshare.server_config import InMemoryJsonConfig


@pytest.fixture()
def registry() -> "CollectorRegistry":
    """
    fresh Prometheus registry to avoid cross-test state.
    """
    return CollectorRegistry()


@pytest.fixture()
def clock() -> "ManualClock":
    return ManualClock(now_ms=1_000_000)


@pytest.fixture()
def server_config() -> "InMemoryJsonConfig":
    return InMemoryJsonConfig({"serverId": "server-1", "metricsEnabled": True})


@pytest.fixture()
def rewrite_json() -> "Callable[[object, dict], None]":
    """
    rewrites a JSON file the way another process would, bumping the
    mtime so the change is visible even on coarse-grained filesystems.
    """

    def _rewrite(path: "object", data: "dict") -> "None":
        previous = os.stat(path).st_mtime_ns
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f)
        bumped = previous + 1_000_000_000
        os.utime(path, ns=(bumped, bumped))

    return _rewrite
