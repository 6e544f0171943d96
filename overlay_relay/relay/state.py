"""
공유 상태 저장소.

- 슬롯: 이름별 "최신 문서" 하나. 업데이트 시 필드 병합 없이 통째로 교체 (last-write-wins).
- 히스토리: 콘텐츠 업데이트 기록. 최신순, 최대 HISTORY_LIMIT 개. 초과 시 가장 오래된 것부터 제거.
- 피시(fiche): id로 찾는 무제한 레코드 저장소.

이벤트 루프 하나에서만 변경되므로 락 없음. 반환값은 모두 복사본.
"""

from __future__ import annotations

import copy
import logging
import uuid
from collections import deque
from typing import Any, Optional

from .errors import UnknownSlotError
from .models import HISTORY_LIMIT, SLOT_DEFAULTS, SLOT_NAMES, HistoryEntry, utcnow_iso

logger = logging.getLogger(__name__)


class SharedStateStore:
    """문서 슬롯 + 히스토리 로그"""

    def __init__(self, history_limit: int = HISTORY_LIMIT):
        self.history_limit = max(1, int(history_limit))
        self._slots: dict[str, Any] = {}
        self._history: deque[HistoryEntry] = deque()
        self._next_id = 0

    @staticmethod
    def _check(slot: str) -> None:
        if slot not in SLOT_NAMES:
            raise UnknownSlotError(slot)

    def get(self, slot: str) -> Any:
        """현재 값. 한 번도 설정되지 않았으면 기본값."""
        self._check(slot)
        if slot in self._slots:
            return copy.deepcopy(self._slots[slot])
        return SLOT_DEFAULTS[slot]()

    def set(self, slot: str, value: Any) -> Any:
        """통째로 교체하고 이전 값을 반환."""
        self._check(slot)
        previous = self.get(slot)
        self._slots[slot] = copy.deepcopy(value)
        return previous

    def snapshot(self) -> dict[str, Any]:
        """모든 슬롯의 현재 값 (초기 동기화용)."""
        return {name: self.get(name) for name in sorted(SLOT_NAMES)}

    # -- 히스토리 ---------------------------------------------------------

    def next_history_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def append_history(self, entry: HistoryEntry) -> None:
        """맨 앞에 넣고 한도를 넘으면 꼬리를 잘라냄."""
        self._history.appendleft(entry)
        while len(self._history) > self.history_limit:
            evicted = self._history.pop()
            logger.debug("히스토리 한도 초과, 제거: id=%s", evicted.id)
        if entry.id > self._next_id:
            self._next_id = entry.id

    def record_content(self, value: Any, source: str) -> HistoryEntry:
        """콘텐츠 업데이트 시점의 히스토리 항목 생성 후 추가."""
        entry = HistoryEntry(
            id=self.next_history_id(),
            timestamp=utcnow_iso(),
            source=source,
            data=copy.deepcopy(value),
        )
        self.append_history(entry)
        return entry

    def list_history(self) -> list[HistoryEntry]:
        return list(self._history)

    def delete_history(self, entry_id: int) -> bool:
        for entry in self._history:
            if entry.id == entry_id:
                self._history.remove(entry)
                return True
        return False


class FicheStore:
    """피시 레코드 저장소 (메모리, 개수 제한 없음)"""

    def __init__(self):
        self._records: dict[str, dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._records)

    def upsert(self, record: dict[str, Any]) -> tuple[dict[str, Any], bool]:
        """
        id 있으면 교체, 없으면 새 id 발급.

        Returns:
            (저장된 레코드 복사본, 새로 만들었는지 여부)
        """
        data = copy.deepcopy(record)
        fiche_id = data.get("id")
        if fiche_id in (None, ""):
            fiche_id = uuid.uuid4().hex
        fiche_id = str(fiche_id)
        created = fiche_id not in self._records
        data["id"] = fiche_id
        data["updatedAt"] = utcnow_iso()
        self._records[fiche_id] = data
        return copy.deepcopy(data), created

    def get(self, fiche_id: str) -> Optional[dict[str, Any]]:
        record = self._records.get(str(fiche_id))
        return copy.deepcopy(record) if record is not None else None

    def list_all(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._records.values()]

    def delete(self, fiche_id: str) -> bool:
        return self._records.pop(str(fiche_id), None) is not None
