"""디스크 저장소: 영속 슬롯 미러, 업로드 영상"""

from .documents import MISSING, DocumentStorage
from .videos import VideoStorage, safe_filename

__all__ = ["DocumentStorage", "MISSING", "VideoStorage", "safe_filename"]
