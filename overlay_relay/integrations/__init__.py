"""외부 협력자: 피시 메일, 캘린더 문서, 대용량 영상 중계"""

from .calendar_doc import CalendarGenerator
from .mailer import FicheMailer, SmtpConfig
from .video_proxy import TooManyRedirects, UpstreamStream, VideoProxy

__all__ = [
    "CalendarGenerator",
    "FicheMailer",
    "SmtpConfig",
    "TooManyRedirects",
    "UpstreamStream",
    "VideoProxy",
]
