"""
overlay-relay: 방송 오버레이용 실시간 상태 브로드캐스트 릴레이.

- relay: 공유 상태·연결 레지스트리·팬아웃·업데이트 라우터
- storage: 영속 슬롯 디스크 미러, 업로드 영상
- integrations: 피시 메일, 캘린더 문서, 대용량 영상 중계
- overlay: FastAPI HTTP/WebSocket 서버
"""

__version__ = "0.5.0"
