"""
프로젝트 공통 로깅 설정.

- 콘솔: WARNING 이상 (LOG_CONSOLE_LEVEL)
- 통합: logs/app.log (INFO 이상)
- 에러: logs/error.log (ERROR 이상)
- 카테고리: logs/relay.log (릴레이·서버), logs/storage.log (디스크·메일·영상 중계)
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union


class _PrefixFilter(logging.Filter):
    """logger name prefix 기반 필터."""

    def __init__(self, *prefixes: str):
        super().__init__()
        self._prefixes = tuple(p for p in prefixes if p)

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name or ""
        return any(name.startswith(p) for p in self._prefixes)


def _project_root() -> Path:
    return Path(__file__).resolve().parent.parent.parent


def _mk_rotating_handler(path: Path, level: int, fmt: logging.Formatter) -> RotatingFileHandler:
    max_mb = int(os.environ.get("LOG_MAX_MB", "10"))
    backups = int(os.environ.get("LOG_BACKUP_COUNT", "5"))
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=max_mb * 1024 * 1024,
        backupCount=backups,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(fmt)
    return handler


def _level(env_name: str, default: int) -> int:
    name = (os.environ.get(env_name) or logging.getLevelName(default)).upper()
    value = getattr(logging, name, default)
    return value if isinstance(value, int) else default


def setup_logging(log_dir: Optional[Union[Path, str]] = None) -> Path:
    """루트 로거/핸들러를 재설정하고 로그 디렉터리 경로 반환."""
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    root.setLevel(logging.DEBUG)

    log_dir = Path(log_dir) if log_dir else _project_root() / "logs"
    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )

    ch = logging.StreamHandler()
    ch.setLevel(_level("LOG_CONSOLE_LEVEL", logging.WARNING))
    ch.setFormatter(fmt)
    root.addHandler(ch)

    root.addHandler(_mk_rotating_handler(log_dir / "app.log", logging.INFO, fmt))
    root.addHandler(_mk_rotating_handler(log_dir / "error.log", logging.ERROR, fmt))

    relay_h = _mk_rotating_handler(log_dir / "relay.log", logging.DEBUG, fmt)
    relay_h.addFilter(_PrefixFilter("overlay_relay.relay", "overlay_relay.overlay"))
    root.addHandler(relay_h)

    storage_h = _mk_rotating_handler(log_dir / "storage.log", logging.DEBUG, fmt)
    storage_h.addFilter(_PrefixFilter("overlay_relay.storage", "overlay_relay.integrations"))
    root.addHandler(storage_h)

    # uvicorn 접근 로그는 요청마다 찍히므로 억제 (필요하면 UVICORN_LOG_LEVEL=INFO)
    noisy_level = _level("UVICORN_LOG_LEVEL", logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(noisy_level)
    logging.getLogger("httpx").setLevel(noisy_level)
    logging.getLogger("httpcore").setLevel(noisy_level)

    return log_dir
