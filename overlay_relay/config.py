"""
환경 변수 기반 설정. .env 는 진입점(__main__)에서 load_dotenv 로 읽음.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from overlay_relay.integrations.mailer import SmtpConfig
from overlay_relay.integrations.video_proxy import DEFAULT_MAX_REDIRECTS, DEFAULT_SOURCE_URL
from overlay_relay.relay.models import HISTORY_LIMIT
from overlay_relay.relay.router import DEFAULT_FOCUS_MAX_INDEX


def project_root() -> Path:
    return Path(__file__).resolve().parent.parent


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    host: str = "127.0.0.1"
    port: int = 3000
    data_dir: Path = field(default_factory=lambda: project_root() / "data")
    videos_dir: Path = field(default_factory=lambda: project_root() / "data" / "videos")
    public_dir: Path = field(default_factory=lambda: project_root() / "public")
    log_dir: Path = field(default_factory=lambda: project_root() / "logs")
    history_limit: int = HISTORY_LIMIT
    focus_max_index: int = DEFAULT_FOCUS_MAX_INDEX
    video_source_url: str = DEFAULT_SOURCE_URL
    video_max_redirects: int = DEFAULT_MAX_REDIRECTS
    video_timeout: float = 30.0
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    smtp: SmtpConfig = field(default_factory=SmtpConfig)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        root = project_root()
        data_dir = Path(env.get("DATA_DIR") or root / "data")
        origins = [o.strip() for o in (env.get("CORS_ORIGINS") or "*").split(",") if o.strip()]
        return cls(
            host=env.get("HOST") or "127.0.0.1",
            port=int(env.get("PORT") or 3000),
            data_dir=data_dir,
            videos_dir=Path(env.get("VIDEOS_DIR") or data_dir / "videos"),
            public_dir=Path(env.get("PUBLIC_DIR") or root / "public"),
            log_dir=Path(env.get("LOG_DIR") or root / "logs"),
            history_limit=int(env.get("HISTORY_LIMIT") or HISTORY_LIMIT),
            focus_max_index=int(env.get("FOCUS_MAX_INDEX") or DEFAULT_FOCUS_MAX_INDEX),
            video_source_url=env.get("VIDEO_SOURCE_URL") or DEFAULT_SOURCE_URL,
            video_max_redirects=int(env.get("VIDEO_MAX_REDIRECTS") or DEFAULT_MAX_REDIRECTS),
            video_timeout=float(env.get("VIDEO_TIMEOUT_SEC") or 30.0),
            cors_origins=origins or ["*"],
            smtp=SmtpConfig(
                host=(env.get("SMTP_HOST") or "").strip(),
                port=int(env.get("SMTP_PORT") or 587),
                username=env.get("SMTP_USERNAME") or "",
                password=env.get("SMTP_PASSWORD") or "",
                use_tls=_flag(env.get("SMTP_USE_TLS"), True),
                sender=(env.get("MAIL_FROM") or "").strip(),
            ),
        )
