"""
방송 오버레이 릴레이 서버.

- create_app(): FastAPI 앱 (HTTP API + WebSocket 중계)
- OBS/eCamm 브라우저 소스는 ws://127.0.0.1:3000/ 에 접속해 initial → update 수신.
"""

from .server import create_app

__all__ = ["create_app"]
