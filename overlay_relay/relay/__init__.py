"""
실시간 상태 브로드캐스트 릴레이 코어.

- RelayContext: 프로세스당 하나. 상태·연결·팬아웃·라우터를 소유.
- UpdateRouter: 모든 업데이트의 단일 진입점.
"""

from .broadcast import BroadcastFanOut
from .context import RelayContext
from .errors import (
    CollaboratorError,
    MalformedMessage,
    NotFound,
    RelayError,
    UnknownMessageKind,
    UnknownSlotError,
    ValidationFailed,
)
from .models import ConnectionState, HistoryEntry
from .registry import Connection, ConnectionRegistry
from .router import FANOUT_POLICY, FanoutPolicy, UpdateRouter
from .snapshot import SnapshotResponder
from .state import FicheStore, SharedStateStore

__all__ = [
    "BroadcastFanOut",
    "CollaboratorError",
    "Connection",
    "ConnectionRegistry",
    "ConnectionState",
    "FANOUT_POLICY",
    "FanoutPolicy",
    "FicheStore",
    "HistoryEntry",
    "MalformedMessage",
    "NotFound",
    "RelayContext",
    "RelayError",
    "SharedStateStore",
    "SnapshotResponder",
    "UnknownMessageKind",
    "UnknownSlotError",
    "UpdateRouter",
    "ValidationFailed",
]
