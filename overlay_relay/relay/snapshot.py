"""스냅샷 응답: 읽기 전용 경로 (히스토리 id 삭제만 예외)."""

from __future__ import annotations

from typing import Any

from .models import Envelope
from .state import SharedStateStore


class SnapshotResponder:
    def __init__(self, store: SharedStateStore):
        self.store = store

    def read(self, slot: str) -> Any:
        return self.store.get(slot)

    def history(self) -> list[dict[str, Any]]:
        """최신순 전체 히스토리"""
        return [entry.to_dict() for entry in self.store.list_history()]

    def delete_history(self, entry_id: int) -> bool:
        return self.store.delete_history(entry_id)

    def initial_message(self) -> Envelope:
        """새 연결에 보내는 초기 동기화 메시지. data 는 콘텐츠 슬롯 (단일 문서 클라이언트 호환)."""
        slots = self.store.snapshot()
        return Envelope("initial", slots["content"], extra={"slots": slots})
