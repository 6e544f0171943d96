"""
릴레이 예외 계층.
HTTP 쪽은 ValidationFailed → 400, NotFound → 404 로 변환하고,
WebSocket 쪽은 MalformedMessage 계열을 로그만 남기고 버림 (연결 유지).
"""


class RelayError(Exception):
    """릴레이 공통 예외"""


class ValidationFailed(RelayError):
    """필수 필드 누락·범위 밖 값. 상태 변경·팬아웃 없음."""


class NotFound(RelayError):
    """알 수 없는 id 대상 작업."""


class MalformedMessage(RelayError):
    """JSON 파싱 실패 또는 알려진 kind의 스키마 불일치."""


class UnknownMessageKind(MalformedMessage):
    """type 값이 알려진 kind가 아님."""

    def __init__(self, kind):
        super().__init__(f"알 수 없는 메시지 종류: {kind!r}")
        self.kind = kind


class UnknownSlotError(RelayError, KeyError):
    """열거된 슬롯 이름이 아님 (호출 측 버그)."""


class CollaboratorError(RelayError):
    """외부 협력자(메일, 업스트림 다운로드) 실패."""
