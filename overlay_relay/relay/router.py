"""
업데이트 라우터: 들어온 업데이트를 검증 → 공유 상태에 반영 → 팬아웃.

WebSocket 프레임이든 HTTP 요청이든 모든 변경은 여기를 지나감.
상태 변경, 히스토리 추가, 팬아웃 적재는 await 없이 한 번에 처리되므로
업데이트끼리 중간에 섞이지 않음. 디스크 미러링만 그 뒤에 비동기로 수행.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional, Union

from . import messages as m
from .broadcast import BroadcastFanOut
from .errors import MalformedMessage, ValidationFailed
from .models import SOURCE_DUPLEX, SOURCE_REQUEST, Envelope, HistoryEntry, utcnow_iso
from .registry import Connection
from .state import FicheStore, SharedStateStore

logger = logging.getLogger(__name__)

DEFAULT_FOCUS_MAX_INDEX = 4


class FanoutPolicy(str, Enum):
    ALL = "all"
    EXCLUDE_ORIGIN = "exclude_origin"


# 송신 kind → 팬아웃 정책. ALL 은 보낸 쪽에도 에코.
FANOUT_POLICY: dict[str, FanoutPolicy] = {
    "update": FanoutPolicy.EXCLUDE_ORIGIN,
    "settings": FanoutPolicy.EXCLUDE_ORIGIN,
    "graph_settings": FanoutPolicy.EXCLUDE_ORIGIN,
    "focus": FanoutPolicy.EXCLUDE_ORIGIN,
    "alert_create": FanoutPolicy.EXCLUDE_ORIGIN,
    "alert_update": FanoutPolicy.EXCLUDE_ORIGIN,
    "dashboard_update": FanoutPolicy.EXCLUDE_ORIGIN,
    "studio_update": FanoutPolicy.EXCLUDE_ORIGIN,
    "now_playing": FanoutPolicy.ALL,
    "alerts": FanoutPolicy.ALL,
    "fiche": FanoutPolicy.ALL,
}


class UpdateRouter:
    """업데이트 종류별 적용 규칙"""

    def __init__(
        self,
        store: SharedStateStore,
        fanout: BroadcastFanOut,
        storage: Any = None,
        fiches: Optional[FicheStore] = None,
        focus_max_index: int = DEFAULT_FOCUS_MAX_INDEX,
    ):
        """
        Args:
            store: 공유 상태 저장소
            fanout: 브로드캐스트 팬아웃
            storage: 영속 슬롯 미러 (DocumentStorage). None 이면 디스크 저장 안 함
            fiches: 피시 레코드 저장소
            focus_max_index: 포커스 인덱스 허용 범위 [0, focus_max_index]
        """
        self.store = store
        self.fanout = fanout
        self.storage = storage
        self.fiches = fiches if fiches is not None else FicheStore()
        self.focus_max_index = int(focus_max_index)

    # -- 공통 -------------------------------------------------------------

    def _publish(self, kind: str, data: Any, origin: Optional[Connection]) -> int:
        exclude = origin if FANOUT_POLICY[kind] is FanoutPolicy.EXCLUDE_ORIGIN else None
        return self.fanout.publish(Envelope(kind, data), exclude=exclude)

    async def _persist(self, slot: str, value: Any) -> None:
        if self.storage is None or not self.storage.is_persistent(slot):
            return
        await self.storage.save(slot, value)

    @staticmethod
    def _source(origin: Optional[Connection]) -> str:
        return SOURCE_DUPLEX if origin is not None else SOURCE_REQUEST

    # -- 종류별 -----------------------------------------------------------

    def apply_content(self, data: dict[str, Any], origin: Optional[Connection] = None) -> HistoryEntry:
        """콘텐츠 슬롯 통째로 교체 + 히스토리 추가 + update 팬아웃."""
        if not isinstance(data, dict):
            raise ValidationFailed("콘텐츠는 JSON 객체여야 함")
        self.store.set("content", data)
        entry = self.store.record_content(data, self._source(origin))
        self._publish("update", data, origin)
        logger.info("콘텐츠 업데이트 (%s): %s", entry.source, data.get("title", data.get("titre", "")))
        return entry

    def apply_settings(
        self,
        data: dict[str, Any],
        origin: Optional[Connection] = None,
        kind: str = "settings",
    ) -> dict[str, Any]:
        """설정 슬롯 교체, lastUpdated 갱신. 히스토리 없음."""
        if not isinstance(data, dict):
            raise ValidationFailed("설정은 JSON 객체여야 함")
        value = dict(data)
        value["lastUpdated"] = utcnow_iso()
        self.store.set("settings", value)
        self._publish(kind, value, origin)
        logger.info("설정 업데이트 (%s)", self._source(origin))
        return value

    def apply_focus(self, index: Any, origin: Optional[Connection] = None) -> int:
        """포커스 인덱스 검증 후 팬아웃만 (슬롯 변경 없음)."""
        if isinstance(index, bool) or not isinstance(index, int):
            raise ValidationFailed(f"포커스 인덱스는 정수여야 함: {index!r}")
        if not 0 <= index <= self.focus_max_index:
            raise ValidationFailed(f"포커스 인덱스 범위 밖: {index} (0~{self.focus_max_index})")
        self._publish("focus", index, origin)
        return index

    async def create_alert(self, alert: dict[str, Any], origin: Optional[Connection] = None) -> bool:
        """
        같은 id 가 없을 때만 맨 앞에 추가하고 저장.

        Returns:
            새로 추가했는지 여부 (중복 id 면 False, 팬아웃 없음)
        """
        if not isinstance(alert, dict) or alert.get("id") in (None, ""):
            raise ValidationFailed("알림에는 id 가 필요함")
        alerts = self.store.get("alerts") or []
        if any(isinstance(a, dict) and a.get("id") == alert["id"] for a in alerts):
            logger.debug("이미 있는 알림 id: %s", alert["id"])
            return False
        alerts.insert(0, dict(alert))
        self.store.set("alerts", alerts)
        self._publish("alert_create", alert, origin)
        logger.info("알림 추가: %s", alert["id"])
        await self._persist("alerts", alerts)
        return True

    async def update_alert_status(
        self,
        alert_id: Any,
        status: str,
        origin: Optional[Connection] = None,
        forwarded: Optional[dict[str, Any]] = None,
    ) -> bool:
        """
        id 로 찾아 status 교체 후 저장. 못 찾으면 변경 없이 이벤트만 그대로 전달.

        Returns:
            해당 id 가 있었는지 여부
        """
        alerts = self.store.get("alerts") or []
        found = False
        for alert in alerts:
            if isinstance(alert, dict) and alert.get("id") == alert_id:
                alert["status"] = status
                found = True
                break
        if found:
            self.store.set("alerts", alerts)
        else:
            logger.warning("상태 변경 대상 알림 없음: %s (이벤트는 전달)", alert_id)
        event = forwarded if forwarded is not None else {"id": alert_id, "status": status}
        self._publish("alert_update", event, origin)
        if found:
            await self._persist("alerts", alerts)
        return found

    async def replace_alerts(self, alerts: list[Any], origin: Optional[Connection] = None) -> list[Any]:
        """알림 목록 전체 교체 (HTTP 전용)."""
        if not isinstance(alerts, list):
            raise ValidationFailed("알림 목록은 배열이어야 함")
        self.store.set("alerts", alerts)
        self._publish("alerts", alerts, origin)
        await self._persist("alerts", alerts)
        return alerts

    async def apply_dashboard(self, data: Any, origin: Optional[Connection] = None) -> Any:
        """dev 대시보드 그대로 교체."""
        self.store.set("dev_dashboard", data)
        self._publish("dashboard_update", data, origin)
        await self._persist("dev_dashboard", data)
        return data

    async def apply_studio(self, data: dict[str, Any], origin: Optional[Connection] = None) -> dict[str, Any]:
        if not isinstance(data, dict):
            raise ValidationFailed("studio2027 기록은 JSON 객체여야 함")
        self.store.set("studio2027", data)
        self._publish("studio_update", data, origin)
        await self._persist("studio2027", data)
        return data

    def apply_now_playing(self, data: Any, origin: Optional[Connection] = None) -> Any:
        """임시 슬롯 교체. 보낸 연결에도 에코."""
        self.store.set("now_playing", data)
        self._publish("now_playing", data, origin)
        return data

    def apply_fiche(self, record: dict[str, Any]) -> tuple[dict[str, Any], bool]:
        if not isinstance(record, dict):
            raise ValidationFailed("피시는 JSON 객체여야 함")
        fiche, created = self.fiches.upsert(record)
        self._publish("fiche", fiche, None)
        logger.info("피시 %s: %s", "생성" if created else "수정", fiche["id"])
        return fiche, created

    # -- WebSocket --------------------------------------------------------

    async def dispatch(self, message: Any, origin: Optional[Connection] = None) -> None:
        """파싱된 메시지를 종류별 처리로 연결."""
        if isinstance(message, m.ContentUpdate):
            self.apply_content(message.data, origin)
        elif isinstance(message, m.SettingsUpdate):
            self.apply_settings(message.data, origin, kind=message.type)
        elif isinstance(message, m.FocusChange):
            self.apply_focus(message.data, origin)
        elif isinstance(message, m.AlertCreate):
            await self.create_alert(message.data.model_dump(), origin)
        elif isinstance(message, m.AlertUpdate):
            await self.update_alert_status(
                message.data.id,
                message.data.status,
                origin,
                forwarded=message.data.model_dump(),
            )
        elif isinstance(message, m.DashboardUpdate):
            await self.apply_dashboard(message.data, origin)
        elif isinstance(message, m.StudioUpdate):
            await self.apply_studio(message.data, origin)
        elif isinstance(message, m.NowPlaying):
            self.apply_now_playing(message.data, origin)
        else:
            raise MalformedMessage(f"처리기 없는 메시지: {type(message).__name__}")

    async def handle_frame(self, raw: Union[str, bytes], origin: Optional[Connection] = None) -> bool:
        """
        WebSocket 프레임 하나 처리. 잘못된 메시지는 로그 후 버림 (연결 유지).

        Returns:
            적용했으면 True
        """
        try:
            message = m.parse_frame(raw)
            await self.dispatch(message, origin)
        except (MalformedMessage, ValidationFailed) as e:
            who = origin.id if origin is not None else "-"
            logger.warning("메시지 무시 (%s): %s", who, e)
            return False
        except Exception:
            # 처리 중 예외가 나도 연결은 유지
            who = origin.id if origin is not None else "-"
            logger.exception("메시지 처리 실패 (%s)", who)
            return False
        return True
