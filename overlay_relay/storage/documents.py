"""
영속 슬롯의 디스크 미러.
슬롯 하나 = JSON 파일 하나. 업데이트마다 통째로 덮어씀 (임시 파일 → os.replace).
쓰기 실패는 로그만 남김: 메모리 상태가 기준이고 디스크는 best-effort.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

from overlay_relay.relay.models import PERSISTENT_SLOTS

logger = logging.getLogger(__name__)

MISSING = object()


class DocumentStorage:
    """영속 슬롯 JSON 저장소"""

    def __init__(
        self,
        root: Union[Path, str],
        files: Optional[dict[str, str]] = None,
    ):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.files = dict(files if files is not None else PERSISTENT_SLOTS)
        self._locks: dict[str, asyncio.Lock] = {}

    def is_persistent(self, slot: str) -> bool:
        return slot in self.files

    def path_for(self, slot: str) -> Path:
        return self.root / self.files[slot]

    def load(self, slot: str) -> Any:
        """저장된 값. 파일 없거나 깨졌으면 MISSING."""
        path = self.path_for(slot)
        if not path.exists():
            return MISSING
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except Exception as e:
            logger.warning("문서 로드 실패 (%s): %s", path, e)
            return MISSING

    def load_all(self) -> dict[str, Any]:
        """시작 시 재수화용. 읽을 수 있는 슬롯만."""
        out = {}
        for slot in self.files:
            value = self.load(slot)
            if value is not MISSING:
                out[slot] = value
                logger.info("문서 복원: %s", slot)
        return out

    def write(self, slot: str, value: Any) -> Path:
        """동기 쓰기. asyncio.to_thread 에서 호출."""
        path = self.path_for(slot)
        text = json.dumps(value, ensure_ascii=False, indent=2)
        fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(self.root))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp, path)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise
        return path

    async def save(self, slot: str, value: Any) -> bool:
        """
        비동기 저장. 같은 슬롯의 쓰기는 호출 순서대로 직렬화.

        Returns:
            성공 여부 (실패 시 로그만 남기고 False)
        """
        if not self.is_persistent(slot):
            return False
        lock = self._locks.setdefault(slot, asyncio.Lock())
        async with lock:
            try:
                path = await asyncio.to_thread(self.write, slot, value)
            except Exception as e:
                logger.error("문서 저장 실패 (%s): %s", slot, e)
                return False
        logger.debug("문서 저장: %s", path)
        return True
