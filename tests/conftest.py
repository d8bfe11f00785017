from __future__ import annotations

import fakeredis
import pytest

from fakes import FakeServer, RecordingPorts


@pytest.fixture()
def fake_redis() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def fake_server() -> FakeServer:
    return FakeServer()


@pytest.fixture()
def ports() -> RecordingPorts:
    return RecordingPorts()
