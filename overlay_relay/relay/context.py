"""
프로세스당 하나인 릴레이 컨텍스트.
상태 저장소·연결 레지스트리·팬아웃·라우터·스냅샷 응답을 묶어 명시적으로 전달.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from .broadcast import BroadcastFanOut, serialize
from .models import HISTORY_LIMIT, SLOT_SHAPES
from .registry import Connection, ConnectionRegistry
from .router import DEFAULT_FOCUS_MAX_INDEX, UpdateRouter
from .snapshot import SnapshotResponder
from .state import FicheStore, SharedStateStore

logger = logging.getLogger(__name__)


class RelayContext:
    def __init__(
        self,
        storage: Any = None,
        history_limit: int = HISTORY_LIMIT,
        focus_max_index: int = DEFAULT_FOCUS_MAX_INDEX,
    ):
        self.store = SharedStateStore(history_limit=history_limit)
        self.fiches = FicheStore()
        self.registry = ConnectionRegistry()
        self.fanout = BroadcastFanOut(self.registry)
        self.storage = storage
        self.router = UpdateRouter(
            self.store,
            self.fanout,
            storage=storage,
            fiches=self.fiches,
            focus_max_index=focus_max_index,
        )
        self.snapshots = SnapshotResponder(self.store)

    def hydrate(self) -> list[str]:
        """
        영속 슬롯을 디스크에서 복원. 복원된 슬롯 이름 목록 반환.
        형태가 맞지 않는 문서는 버리고 기본값 유지.
        """
        if self.storage is None:
            return []
        restored = []
        for slot, value in self.storage.load_all().items():
            shape = SLOT_SHAPES.get(slot)
            if shape is not None and not isinstance(value, shape):
                logger.warning(
                    "복원 무시 (%s): %s 이어야 하는데 %s",
                    slot, shape.__name__, type(value).__name__,
                )
                continue
            self.store.set(slot, value)
            restored.append(slot)
        return sorted(restored)

    def handshake(self, connection: Connection) -> None:
        """
        연결 open → 초기 스냅샷 적재 → 레지스트리 등록.
        await 없이 처리하므로 스냅샷이 항상 첫 메시지.
        """
        connection.open()
        connection.deliver(serialize(self.snapshots.initial_message()))
        connection.on_closed = self.registry.unregister
        self.registry.register(connection)

    def disconnect(self, connection: Optional[Connection]) -> None:
        if connection is None:
            return
        connection.begin_close()
        self.registry.unregister(connection)
        connection.mark_closed()
