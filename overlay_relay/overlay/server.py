"""
릴레이 HTTP / WebSocket 서버.

- WebSocket (/, /ws): 접속 즉시 initial 스냅샷, 이후 업데이트 양방향 중계.
- /api/*: 같은 상태를 요청/응답으로 읽고 쓰기 (초기 로딩, 서버 간 연동).

상태를 건드리는 핸들러는 모두 async def (이벤트 루프 하나에서만 변경).
실행: python -m overlay_relay
"""

from __future__ import annotations

import asyncio
import html
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Body, FastAPI, File, HTTPException, Query, Request, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles

from overlay_relay.config import Settings
from overlay_relay.integrations.mailer import FicheMailer
from overlay_relay.integrations.video_proxy import VideoProxy
from overlay_relay.relay import Connection, RelayContext
from overlay_relay.relay.errors import CollaboratorError, NotFound, ValidationFailed
from overlay_relay.storage import DocumentStorage, VideoStorage

logger = logging.getLogger(__name__)

STATUS_HTML = """<!DOCTYPE html>
<html lang="fr">
<head>
  <meta charset="UTF-8">
  <title>Overlay Relay</title>
  <style>
    body {{ font-family: system-ui, sans-serif; margin: 40px; color: #1e293b; }}
    code {{ background: #f1f5f9; padding: 2px 6px; border-radius: 4px; }}
  </style>
</head>
<body>
  <h1>Overlay Relay WebSocket Server</h1>
  <p>Serveur actif avec {clients} client(s) connecté(s)</p>
  <p>Dernières données: {title}</p>
  <p>WebSocket: <code>ws://{host}/</code> &middot; API: <code>/api/data</code></p>
</body>
</html>
"""


def _unwrap_content(payload: dict[str, Any]) -> dict[str, Any]:
    """{"type": "update", "data": {...}} 봉투로 와도 받아줌."""
    if (
        payload.get("type") == "update"
        and isinstance(payload.get("data"), dict)
        and set(payload) <= {"type", "data"}
    ):
        return payload["data"]
    return payload


def create_app(
    settings: Optional[Settings] = None,
    *,
    context: Optional[RelayContext] = None,
    mailer: Optional[FicheMailer] = None,
    video_proxy: Optional[VideoProxy] = None,
    videos: Optional[VideoStorage] = None,
) -> FastAPI:
    """
    앱 생성. 인자로 넘기지 않은 협력자는 settings 로 만듦.

    Args:
        settings: 설정 (None 이면 환경 변수)
        context: 릴레이 컨텍스트 (테스트에서 주입)
        mailer: 피시 메일 발송기
        video_proxy: 대용량 영상 중계
        videos: 업로드 영상 저장소
    """
    settings = settings or Settings.from_env()
    if context is None:
        context = RelayContext(
            storage=DocumentStorage(settings.data_dir),
            history_limit=settings.history_limit,
            focus_max_index=settings.focus_max_index,
        )
    videos = videos or VideoStorage(settings.videos_dir)
    mailer = mailer or FicheMailer(settings.smtp)
    video_proxy = video_proxy or VideoProxy(
        settings.video_source_url,
        max_redirects=settings.video_max_redirects,
        timeout=settings.video_timeout,
    )
    router = context.router
    snapshots = context.snapshots

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        restored = context.hydrate()
        if restored:
            logger.info("디스크에서 복원한 슬롯: %s", ", ".join(restored))
        try:
            yield
        finally:
            for connection in context.registry.snapshot():
                context.disconnect(connection)

    app = FastAPI(title="Overlay Relay", docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.relay = context
    app.state.settings = settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )
    app.mount("/videos", StaticFiles(directory=str(videos.root)), name="videos")
    if settings.public_dir.is_dir():
        app.mount("/static", StaticFiles(directory=str(settings.public_dir)), name="public")

    # -- 오류 변환 --------------------------------------------------------

    @app.exception_handler(ValidationFailed)
    async def _validation_failed(request: Request, exc: ValidationFailed):
        return JSONResponse({"ok": False, "error": str(exc)}, status_code=400)

    @app.exception_handler(RequestValidationError)
    async def _request_invalid(request: Request, exc: RequestValidationError):
        return JSONResponse({"ok": False, "error": "요청 형식 오류", "detail": jsonable_encoder(exc.errors())}, status_code=400)

    @app.exception_handler(NotFound)
    async def _not_found(request: Request, exc: NotFound):
        return JSONResponse({"ok": False, "error": str(exc)}, status_code=404)

    @app.exception_handler(CollaboratorError)
    async def _collaborator_failed(request: Request, exc: CollaboratorError):
        logger.error("외부 협력자 실패 (%s): %s", request.url.path, exc)
        return JSONResponse({"ok": False, "error": str(exc)}, status_code=502)

    # -- 상태 / 콘텐츠 ----------------------------------------------------

    @app.get("/", response_class=HTMLResponse)
    async def status_page(request: Request):
        """서버 상태 확인용 페이지."""
        content = snapshots.read("content")
        title = content.get("title", content.get("titre", "")) if isinstance(content, dict) else ""
        return HTMLResponse(STATUS_HTML.format(
            clients=len(context.registry),
            title=html.escape(str(title)),
            host=html.escape(request.headers.get("host", "localhost")),
        ))

    @app.get("/health")
    async def health():
        return {
            "ok": True,
            "clients": len(context.registry),
            "history": len(context.store.list_history()),
        }

    @app.get("/api/data")
    async def get_data():
        return snapshots.read("content")

    @app.post("/api/data")
    @app.post("/api/update")
    async def post_data(payload: dict[str, Any] = Body(...)):
        """콘텐츠 교체 → 히스토리 추가 → 모든 연결에 update."""
        entry = router.apply_content(_unwrap_content(payload))
        return {"ok": True, "history_id": entry.id, "data": entry.data}

    @app.get("/api/history")
    async def get_history():
        return snapshots.history()

    @app.delete("/api/history/{entry_id}")
    async def delete_history(entry_id: int):
        if not snapshots.delete_history(entry_id):
            raise NotFound(f"히스토리 항목 없음: {entry_id}")
        return {"ok": True, "id": entry_id}

    @app.post("/api/focus")
    async def post_focus(payload: dict[str, Any] = Body(...)):
        if "index" not in payload:
            raise ValidationFailed("index 필드가 필요함")
        index = router.apply_focus(payload["index"])
        return {"ok": True, "index": index}

    @app.get("/api/graph")
    async def get_graph():
        return snapshots.read("settings")

    @app.post("/api/graph")
    async def post_graph(payload: dict[str, Any] = Body(...)):
        return router.apply_settings(payload)

    # -- 피시 -------------------------------------------------------------

    @app.post("/api/fiches")
    async def post_fiche(payload: dict[str, Any] = Body(...)):
        fiche, created = router.apply_fiche(payload)
        return JSONResponse({"ok": True, "created": created, "fiche": fiche}, status_code=201 if created else 200)

    @app.get("/api/fiches")
    async def list_fiches():
        return context.fiches.list_all()

    @app.get("/api/fiches/{fiche_id}")
    async def get_fiche(fiche_id: str):
        fiche = context.fiches.get(fiche_id)
        if fiche is None:
            raise NotFound(f"피시 없음: {fiche_id}")
        return fiche

    @app.delete("/api/fiches/{fiche_id}")
    async def delete_fiche(fiche_id: str):
        if not context.fiches.delete(fiche_id):
            raise NotFound(f"피시 없음: {fiche_id}")
        return {"ok": True, "id": fiche_id}

    @app.post("/api/send-fiche")
    async def send_fiche(payload: dict[str, Any] = Body(...)):
        """피시를 메일로 발송 (.ics 첨부). SMTP 실패는 502."""
        fiche = payload.get("fiche")
        if fiche is None:
            fiche_id = payload.get("fiche_id") or payload.get("id")
            if not fiche_id:
                raise ValidationFailed("fiche 또는 fiche_id 가 필요함")
            fiche = context.fiches.get(str(fiche_id))
            if fiche is None:
                raise NotFound(f"피시 없음: {fiche_id}")
        if not isinstance(fiche, dict):
            raise ValidationFailed("fiche 는 JSON 객체여야 함")
        return await mailer.send(fiche, payload.get("to") or "")

    # -- 영속 문서 슬롯 ---------------------------------------------------

    @app.get("/api/studio2027")
    async def get_studio():
        return snapshots.read("studio2027")

    @app.post("/api/studio2027")
    async def post_studio(payload: dict[str, Any] = Body(...)):
        return await router.apply_studio(payload)

    @app.get("/api/studio-alerts")
    async def get_alerts():
        return snapshots.read("alerts")

    @app.post("/api/studio-alerts")
    async def post_alerts(payload: Any = Body(...)):
        """알림 목록 전체 교체. 배열 또는 {"alerts": [...]}."""
        if isinstance(payload, dict) and "alerts" in payload:
            payload = payload["alerts"]
        return await router.replace_alerts(payload)

    @app.get("/api/dev-dashboard")
    async def get_dashboard():
        return snapshots.read("dev_dashboard")

    @app.post("/api/dev-dashboard")
    async def post_dashboard(payload: Any = Body(...)):
        return await router.apply_dashboard(payload)

    @app.get("/api/now-playing")
    async def get_now_playing():
        return {"data": snapshots.read("now_playing")}

    @app.post("/api/now-playing")
    async def post_now_playing(payload: Any = Body(None)):
        return {"ok": True, "data": router.apply_now_playing(payload)}

    # -- 영상 -------------------------------------------------------------

    @app.post("/api/upload-video")
    async def upload_video(file: UploadFile = File(...)):
        try:
            saved = await asyncio.to_thread(videos.save, file.filename or "", file.file)
        except ValueError as e:
            raise ValidationFailed(str(e)) from e
        finally:
            await file.close()
        return {"ok": True, "video": saved}

    @app.get("/api/videos-list")
    async def list_videos():
        return await asyncio.to_thread(videos.list_files)

    @app.delete("/api/videos/{name}")
    async def delete_video(name: str):
        if not await asyncio.to_thread(videos.delete, name):
            raise HTTPException(404, f"영상 없음: {name}")
        return {"ok": True, "name": name}

    @app.get("/api/video")
    async def proxy_video(request: Request, id: str = Query("")):
        """업스트림 대용량 파일 스트리밍 중계."""
        stream = await video_proxy.open(id, range_header=request.headers.get("range"))
        return StreamingResponse(
            stream.iter_bytes(),
            status_code=stream.response.status_code,
            headers=stream.headers,
            media_type=stream.media_type,
        )

    # -- WebSocket --------------------------------------------------------

    async def relay_socket(websocket: WebSocket):
        await websocket.accept()
        connection = Connection(websocket)
        context.handshake(connection)
        writer = asyncio.create_task(connection.pump())
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes")
                await router.handle_frame(raw, origin=connection)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.error("WebSocket 오류 (%s): %s", connection.id, e)
        finally:
            context.disconnect(connection)
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass

    app.add_api_websocket_route("/", relay_socket)
    app.add_api_websocket_route("/ws", relay_socket)

    return app
