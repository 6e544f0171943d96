"""
연결 레지스트리.

Connection 은 WebSocket 하나를 감싸는 상태 머신:
    connecting → open → closing → closed   (전송 오류 시 어느 상태에서든 closed)
open 상태만 팬아웃 대상. 송신은 연결별 큐에 쌓고, 연결마다 하나인 pump() 태스크가
순서대로 전송하므로 한 연결 안에서 메시지 순서가 유지됨.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable, Iterable, Optional

from .models import ConnectionState

logger = logging.getLogger(__name__)

_CLOSE_SENTINEL = None

# 연결당 송신 대기 한도. 넘으면 느린 클라이언트로 보고 연결 종료.
OUTBOX_LIMIT = 256


class ConnectionNotOpen(Exception):
    """open 아닌 연결에 전송 시도"""


class Connection:
    """WebSocket 연결 하나 (send_text 코루틴을 가진 어떤 전송 객체든 가능)"""

    def __init__(
        self,
        transport: Any,
        connection_id: Optional[str] = None,
        outbox_limit: int = OUTBOX_LIMIT,
    ):
        self.id = connection_id or uuid.uuid4().hex[:8]
        self.state = ConnectionState.CONNECTING
        self._transport = transport
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=max(1, int(outbox_limit)))
        # closed 전환 시 한 번 호출 (레지스트리 해제용)
        self.on_closed: Optional[Callable[["Connection"], Any]] = None

    def __repr__(self) -> str:
        return f"<Connection {self.id} {self.state.value}>"

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    def open(self) -> None:
        """핸드셰이크 완료"""
        if self.state is not ConnectionState.CONNECTING:
            raise ConnectionNotOpen(f"{self.id}: {self.state.value} 상태에서 open 불가")
        self.state = ConnectionState.OPEN

    def begin_close(self) -> None:
        if self.state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            self.state = ConnectionState.CLOSING

    def mark_closed(self) -> None:
        """종료 확정. pump 루프에 종료 신호."""
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED
        try:
            self.outbox.put_nowait(_CLOSE_SENTINEL)
        except asyncio.QueueFull:
            pass  # pump 가 다음 get 에서 CLOSED 를 보고 멈춤
        if self.on_closed is not None:
            self.on_closed(self)

    def deliver(self, payload: str) -> None:
        """직렬화된 메시지를 송신 큐에 적재 (동기)."""
        if not self.is_open:
            raise ConnectionNotOpen(f"{self.id}: {self.state.value}")
        try:
            self.outbox.put_nowait(payload)
        except asyncio.QueueFull:
            logger.warning("송신 대기 한도 초과, 연결 종료: %s (%d개)", self.id, self.outbox.maxsize)
            self.mark_closed()
            raise ConnectionNotOpen(f"{self.id}: 송신 대기 한도 초과") from None

    async def pump(self) -> None:
        """송신 큐를 비우며 전송. 전송 실패 시 연결을 closed 로 전환하고 종료."""
        while True:
            payload = await self.outbox.get()
            # 닫힌 뒤 남은 메시지는 버림
            if payload is _CLOSE_SENTINEL or self.state is ConnectionState.CLOSED:
                break
            try:
                await self._transport.send_text(payload)
            except Exception as e:
                logger.warning("전송 실패, 연결 종료 처리: %s (%s)", self.id, e)
                self.mark_closed()
                break


class ConnectionRegistry:
    """현재 열린 연결 집합. 영속 상태 없음."""

    def __init__(self):
        self._connections: dict[str, Connection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection: Connection) -> bool:
        return self._connections.get(connection.id) is connection

    def register(self, connection: Connection) -> None:
        self._connections[connection.id] = connection
        logger.info("새 클라이언트 연결: %s (총 %d)", connection.id, len(self._connections))

    def unregister(self, connection: Connection) -> bool:
        removed = self._connections.pop(connection.id, None) is not None
        if removed:
            logger.info("클라이언트 연결 해제: %s (총 %d)", connection.id, len(self._connections))
        return removed

    def snapshot(self) -> tuple[Connection, ...]:
        """순회용 고정 사본 (순회 중 연결이 닫혀도 안전)."""
        return tuple(self._connections.values())

    def for_each(self, visitor: Callable[[Connection], None]) -> None:
        for connection in self.snapshot():
            visitor(connection)

    def open_connections(self) -> Iterable[Connection]:
        return (c for c in self.snapshot() if c.is_open)
