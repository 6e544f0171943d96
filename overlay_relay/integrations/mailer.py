"""
피시 메일 발송 (SMTP). 본문 + .ics 첨부.
smtplib 는 블로킹이므로 asyncio.to_thread 로 실행.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any, Optional

from overlay_relay.relay.errors import CollaboratorError, ValidationFailed

from .calendar_doc import CalendarGenerator

logger = logging.getLogger(__name__)


@dataclass
class SmtpConfig:
    host: str = ""
    port: int = 587
    username: str = ""
    password: str = ""
    use_tls: bool = True
    sender: str = ""
    timeout: float = 20.0


def fiche_body(fiche: dict[str, Any]) -> str:
    """메일 본문 텍스트 (피시 필드 나열)."""
    title = fiche.get("titre") or fiche.get("title") or "Fiche"
    lines = [title, "=" * len(title), ""]
    for key, value in fiche.items():
        if key in ("titre", "title") or value in (None, ""):
            continue
        lines.append(f"{key}: {value}")
    return "\n".join(lines)


class FicheMailer:
    """피시 한 건을 메일로 보냄."""

    def __init__(self, config: SmtpConfig, calendar: Optional[CalendarGenerator] = None):
        self.config = config
        self.calendar = calendar or CalendarGenerator()

    @property
    def configured(self) -> bool:
        return bool(self.config.host and self.config.sender)

    def build_message(self, fiche: dict[str, Any], to: str) -> EmailMessage:
        title = fiche.get("titre") or fiche.get("title") or "Fiche"
        msg = EmailMessage()
        msg["From"] = self.config.sender
        msg["To"] = to
        msg["Subject"] = f"Fiche : {title}"
        msg.set_content(fiche_body(fiche))
        if fiche.get("start") or fiche.get("date"):
            ics = self.calendar.build(fiche)
            msg.add_attachment(
                ics.encode("utf-8"),
                maintype="text",
                subtype="calendar",
                filename="fiche.ics",
                params={"method": "REQUEST"},
            )
        return msg

    def _send_via_smtp(self, msg: EmailMessage) -> None:
        server = smtplib.SMTP(self.config.host, self.config.port, timeout=self.config.timeout)
        try:
            if self.config.use_tls:
                server.starttls()
            if self.config.username and self.config.password:
                server.login(self.config.username, self.config.password)
            server.send_message(msg)
        finally:
            try:
                server.quit()
            except Exception:
                pass

    async def send(self, fiche: dict[str, Any], to: str) -> dict[str, Any]:
        """
        Raises:
            ValidationFailed: 수신자 없음 / 피시 날짜 형식 오류
            CollaboratorError: SMTP 미설정 또는 전송 실패
        """
        to = (to or "").strip()
        if not to or "@" not in to:
            raise ValidationFailed(f"수신자 주소가 올바르지 않음: {to!r}")
        if not self.configured:
            raise CollaboratorError("SMTP_HOST / MAIL_FROM 미설정")
        msg = self.build_message(fiche, to)
        try:
            await asyncio.to_thread(self._send_via_smtp, msg)
        except Exception as e:
            logger.error("피시 메일 전송 실패 (%s): %s", to, e)
            raise CollaboratorError(f"메일 전송 실패: {e}") from e
        logger.info("피시 메일 전송: %s → %s", fiche.get("id"), to)
        return {"ok": True, "to": to, "subject": msg["Subject"]}
