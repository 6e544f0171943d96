"""
릴레이 데이터 모델
슬롯 이름·기본값, 히스토리 항목, 연결 상태
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

HISTORY_LIMIT = 50

SOURCE_DUPLEX = "duplex"
SOURCE_REQUEST = "request"


def _default_content() -> dict[str, Any]:
    data: dict[str, Any] = {"title": "En attente...", "subtitle": ""}
    for i in range(1, 25):
        data[f"line{i}"] = ""
    return data


# 슬롯 이름 → 기본값 팩토리. 여기 없는 이름은 UnknownSlotError.
SLOT_DEFAULTS = {
    "content": _default_content,
    "settings": lambda: {
        "nodeSize": 6,
        "linkDistance": 80,
        "rotationSpeed": 0.002,
        "cameraDistance": 400,
        "showLabels": True,
        "lastUpdated": None,
    },
    "alerts": list,
    "studio2027": dict,
    "dev_dashboard": dict,
    "now_playing": lambda: None,
}

SLOT_NAMES = frozenset(SLOT_DEFAULTS)

# 값 형태가 정해진 슬롯. dev_dashboard 는 아무 JSON 이나 허용.
SLOT_SHAPES = {
    "alerts": list,
    "studio2027": dict,
}

# 디스크 미러링 대상 슬롯 → 파일 이름
PERSISTENT_SLOTS = {
    "alerts": "studio-alerts.json",
    "studio2027": "studio2027.json",
    "dev_dashboard": "dev-dashboard.json",
}


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class HistoryEntry:
    """콘텐츠 업데이트 기록 (생성 후 불변, id로만 삭제)"""
    id: int
    timestamp: str
    source: str  # "duplex" | "request"
    data: Any = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "source": self.source,
            "data": copy.deepcopy(self.data),
        }


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Envelope:
    """송신 메시지 {"type": ..., "data": ...}"""
    type: str
    data: Any = None
    extra: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        out = {"type": self.type, "data": self.data}
        if self.extra:
            out.update(self.extra)
        return out
