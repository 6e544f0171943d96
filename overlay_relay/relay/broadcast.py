"""브로드캐스트 팬아웃: 한 번 직렬화해서 열린 연결마다 큐에 적재."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from .models import Envelope
from .registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)


def serialize(message: Any) -> str:
    if isinstance(message, Envelope):
        message = message.to_dict()
    return json.dumps(message, ensure_ascii=False)


class BroadcastFanOut:
    """
    Usage:
        fanout = BroadcastFanOut(registry)
        fanout.publish({"type": "update", "data": {...}}, exclude=origin)
    """

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    def publish(self, message: Any, exclude: Optional[Connection] = None) -> int:
        """
        exclude 를 뺀 모든 open 연결에 전송.

        연결 하나의 실패가 다른 연결 전송이나 호출자에게 번지지 않음.

        Returns:
            전송(큐 적재) 성공 수
        """
        payload = serialize(message)
        delivered = 0
        for connection in self.registry.snapshot():
            if connection is exclude or not connection.is_open:
                continue
            try:
                connection.deliver(payload)
                delivered += 1
            except Exception as e:
                logger.warning("팬아웃 실패 (%s): %s", connection.id, e)
        logger.debug("팬아웃: %d개 연결", delivered)
        return delivered
