"""
릴레이 서버 실행.
실행: python -m overlay_relay  (프로젝트 루트에서, .env 에 PORT 등 설정)
"""

import logging
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from overlay_relay.config import Settings
from overlay_relay.overlay import create_app
from overlay_relay.utils import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    load_dotenv(Path(__file__).resolve().parent.parent / ".env")
    settings = Settings.from_env()
    log_dir = setup_logging(settings.log_dir)
    app = create_app(settings)
    logger.info("릴레이 서버 시작: %s:%d (로그: %s)", settings.host, settings.port, log_dir)
    print(f"🚀 Serveur WebSocket démarré sur le port {settings.port}")
    print(f"   HTTP: http://{settings.host}:{settings.port}")
    print(f"   WebSocket: ws://{settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="warning", log_config=None)


if __name__ == "__main__":
    main()
