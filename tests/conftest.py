"""Shared test fixtures for overlay-relay."""

import asyncio
import json

import pytest

from overlay_relay.relay import Connection, RelayContext
from overlay_relay.storage import DocumentStorage


class FakeTransport:
    """send_text 만 가진 가짜 WebSocket."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send_text(self, text):
        if self.fail:
            raise RuntimeError("broken pipe")
        self.sent.append(text)


def drain(connection):
    """송신 큐에 쌓인 메시지를 디코드해서 꺼냄."""
    out = []
    while True:
        try:
            payload = connection.outbox.get_nowait()
        except asyncio.QueueEmpty:
            return out
        if payload is not None:
            out.append(json.loads(payload))


@pytest.fixture
def storage(tmp_path):
    return DocumentStorage(tmp_path / "data")


@pytest.fixture
def context(storage):
    return RelayContext(storage=storage, focus_max_index=4)


@pytest.fixture
def connect(context):
    """핸드셰이크까지 마친 연결을 만들고 initial 메시지는 비워둠."""

    def _connect(name=None, transport=None):
        connection = Connection(transport or FakeTransport(), connection_id=name)
        context.handshake(connection)
        drain(connection)
        return connection

    return _connect
