"""
피시 → iCalendar(.ics) 문서 생성.
같은 피시를 다시 보내면 SEQUENCE 가 1씩 올라가 캘린더 앱이 기존 일정을 갱신함 (메모리 카운터).
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from overlay_relay.relay.errors import ValidationFailed

PRODID = "-//overlay-relay//fiche//FR"


def _escape(text: str) -> str:
    return (
        str(text)
        .replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def _fold(line: str, limit: int = 75) -> list[str]:
    """RFC 5545 줄 접기 (75 옥텟, 이어지는 줄은 공백으로 시작)."""
    out = []
    current = ""
    size = 0
    for ch in line:
        n = len(ch.encode("utf-8"))
        if size + n > limit:
            out.append(current)
            current = " "
            size = 1
        current += ch
        size += n
    out.append(current)
    return out


def _parse_when(value: Any) -> Optional[Any]:
    if value in (None, ""):
        return None
    if isinstance(value, (datetime, date)):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise ValidationFailed(f"날짜 형식 오류: {value!r}") from e


def _fmt(prop: str, when: Any) -> str:
    if isinstance(when, datetime):
        if when.tzinfo is None:
            return f"{prop}:{when.strftime('%Y%m%dT%H%M%S')}"
        return f"{prop}:{when.astimezone(timezone.utc).strftime('%Y%m%dT%H%M%SZ')}"
    return f"{prop};VALUE=DATE:{when.strftime('%Y%m%d')}"


class CalendarGenerator:
    def __init__(self, domain: str = "overlay-relay"):
        self.domain = domain
        self._sequences: dict[str, int] = {}

    def next_sequence(self, uid: str) -> int:
        seq = self._sequences.get(uid, -1) + 1
        self._sequences[uid] = seq
        return seq

    def build(self, fiche: dict[str, Any]) -> str:
        """
        피시 필드: titre|title, start|date, end, lieu|location, description.
        시작 시각이 없으면 ValidationFailed.
        """
        start = _parse_when(fiche.get("start") or fiche.get("date"))
        if start is None:
            raise ValidationFailed("피시에 start 또는 date 가 필요함")
        end = _parse_when(fiche.get("end"))
        if end is None:
            end = start + (timedelta(hours=1) if isinstance(start, datetime) else timedelta(days=1))

        uid = f"fiche-{fiche.get('id') or 'sans-id'}@{self.domain}"
        summary = fiche.get("titre") or fiche.get("title") or "Fiche"
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")

        lines = [
            "BEGIN:VCALENDAR",
            "VERSION:2.0",
            f"PRODID:{PRODID}",
            "METHOD:REQUEST",
            "BEGIN:VEVENT",
            f"UID:{uid}",
            f"SEQUENCE:{self.next_sequence(uid)}",
            f"DTSTAMP:{stamp}",
            _fmt("DTSTART", start),
            _fmt("DTEND", end),
            f"SUMMARY:{_escape(summary)}",
        ]
        location = fiche.get("lieu") or fiche.get("location")
        if location:
            lines.append(f"LOCATION:{_escape(location)}")
        if fiche.get("description"):
            lines.append(f"DESCRIPTION:{_escape(fiche['description'])}")
        lines += ["END:VEVENT", "END:VCALENDAR"]

        folded = []
        for line in lines:
            folded.extend(_fold(line))
        return "\r\n".join(folded) + "\r\n"
