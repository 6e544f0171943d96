"""
WebSocket 수신 메시지 스키마 (type 태그 기반 tagged union).

모든 프레임은 {"type": <kind>, "data": <payload>} 형식.
- JSON 아님 / type 없음 / 스키마 불일치 → MalformedMessage
- 알 수 없는 type → UnknownMessageKind (MalformedMessage 하위)
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, TypeAdapter, ValidationError

from .errors import MalformedMessage, UnknownMessageKind

AlertId = Union[StrictStr, StrictInt]


class _Inbound(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ContentUpdate(_Inbound):
    """오버레이 콘텐츠 전체 교체"""
    type: Literal["update"]
    data: dict[str, Any]


class SettingsUpdate(_Inbound):
    """3D 씬/그래프 설정 전체 교체"""
    type: Literal["settings", "graph_settings"]
    data: dict[str, Any]


class FocusChange(_Inbound):
    """포커스 인덱스 (슬롯에 저장하지 않음)"""
    type: Literal["focus"]
    data: StrictInt


class AlertPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: AlertId
    status: StrictStr = "new"


class AlertStatusPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: AlertId
    status: StrictStr


class AlertCreate(_Inbound):
    type: Literal["alert_create"]
    data: AlertPayload


class AlertUpdate(_Inbound):
    type: Literal["alert_update"]
    data: AlertStatusPayload


class DashboardUpdate(_Inbound):
    """dev 대시보드: 형태 검증 없이 그대로 저장"""
    type: Literal["dashboard_update"]
    data: Any = None


class StudioUpdate(_Inbound):
    """공사 진행 기록(studio2027) 교체"""
    type: Literal["studio_update"]
    data: dict[str, Any]


class NowPlaying(_Inbound):
    """재생 중 표시. 보낸 쪽에도 에코됨."""
    type: Literal["now_playing"]
    data: Any = None


InboundMessage = Annotated[
    Union[
        ContentUpdate,
        SettingsUpdate,
        FocusChange,
        AlertCreate,
        AlertUpdate,
        DashboardUpdate,
        StudioUpdate,
        NowPlaying,
    ],
    Field(discriminator="type"),
]

KNOWN_KINDS = frozenset({
    "update",
    "settings",
    "graph_settings",
    "focus",
    "alert_create",
    "alert_update",
    "dashboard_update",
    "studio_update",
    "now_playing",
})

_adapter: TypeAdapter = TypeAdapter(InboundMessage)


def parse_message(obj: Any):
    """dict → 메시지 모델. kind 판별 후 스키마 검증."""
    if not isinstance(obj, dict) or "type" not in obj:
        raise MalformedMessage("type 필드가 있는 JSON 객체가 아님")
    kind = obj["type"]
    if not isinstance(kind, str) or kind not in KNOWN_KINDS:
        raise UnknownMessageKind(kind)
    try:
        return _adapter.validate_python(obj)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ()))
        raise MalformedMessage(f"{kind} 스키마 불일치 ({loc}): {first.get('msg', e)}") from e
    except RecursionError as e:
        raise MalformedMessage(f"{kind} 중첩이 너무 깊음") from e


def parse_frame(raw: Union[str, bytes]):
    """WebSocket 텍스트 프레임 파싱."""
    try:
        obj = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedMessage(f"JSON 파싱 실패: {e}") from e
    except RecursionError as e:
        raise MalformedMessage("JSON 중첩이 너무 깊음") from e
    return parse_message(obj)
