"""
업로드 영상 파일 저장소. VIDEOS_DIR 아래 평면 구조, /videos/ 로 정적 서빙.
"""

from __future__ import annotations

import logging
import re
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, Union

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = frozenset({".mp4", ".webm", ".mov", ".mkv", ".m4v", ".avi"})

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(name: str) -> str:
    """경로 성분 제거 + 안전 문자만 남김. 비면 빈 문자열."""
    base = Path((name or "").replace("\\", "/")).name
    cleaned = _UNSAFE.sub("_", base).strip("._")
    return cleaned


class VideoStorage:
    def __init__(self, root: Union[Path, str]):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, name: str) -> Path:
        cleaned = safe_filename(name)
        if not cleaned:
            raise ValueError(f"잘못된 파일 이름: {name!r}")
        return self.root / cleaned

    def save(self, filename: str, stream: BinaryIO) -> dict[str, Any]:
        """
        업로드 스트림 저장 (동기, asyncio.to_thread 에서 호출).
        같은 이름이 있으면 타임스탬프 접두어를 붙임.
        """
        path = self._resolve(filename)
        if path.suffix.lower() not in VIDEO_EXTENSIONS:
            raise ValueError(f"지원하지 않는 영상 형식: {path.suffix or '(없음)'}")
        if path.exists():
            stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
            path = self.root / f"{stamp}_{path.name}"
        with open(path, "wb") as f:
            shutil.copyfileobj(stream, f)
        logger.info("영상 저장: %s", path.name)
        return self._describe(path)

    def list_files(self) -> list[dict[str, Any]]:
        files = [p for p in self.root.iterdir() if p.is_file() and p.suffix.lower() in VIDEO_EXTENSIONS]
        files.sort(key=lambda p: p.stat().st_mtime, reverse=True)
        return [self._describe(p) for p in files]

    def delete(self, name: str) -> bool:
        try:
            path = self._resolve(name)
        except ValueError:
            return False
        if not path.is_file():
            return False
        path.unlink()
        logger.info("영상 삭제: %s", path.name)
        return True

    @staticmethod
    def _describe(path: Path) -> dict[str, Any]:
        st = path.stat()
        return {
            "name": path.name,
            "size": st.st_size,
            "url": f"/videos/{path.name}",
            "modified": datetime.fromtimestamp(st.st_mtime, timezone.utc).isoformat().replace("+00:00", "Z"),
        }
