"""
대용량 영상 중계 (예: Google Drive 공유 파일).
리다이렉트는 직접 따라가며 최대 max_redirects 번까지만 허용. 초과 시 해당 요청만 실패.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional
from urllib.parse import quote

import httpx

from overlay_relay.relay.errors import CollaboratorError, ValidationFailed

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_URL = "https://drive.google.com/uc?export=download&id={id}"
DEFAULT_MAX_REDIRECTS = 5
CHUNK_SIZE = 64 * 1024

# 그대로 전달할 업스트림 응답 헤더
PASS_HEADERS = ("content-type", "content-length", "content-disposition", "accept-ranges", "last-modified", "etag")


class TooManyRedirects(CollaboratorError):
    pass


@dataclass
class UpstreamStream:
    """열린 업스트림 응답. iter_bytes() 를 다 읽거나 aclose() 해야 연결이 풀림."""
    response: httpx.Response
    client: httpx.AsyncClient
    hops: int

    @property
    def headers(self) -> dict[str, str]:
        return {k: v for k, v in self.response.headers.items() if k.lower() in PASS_HEADERS}

    @property
    def media_type(self) -> str:
        return self.response.headers.get("content-type", "application/octet-stream")

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.response.aiter_bytes(CHUNK_SIZE):
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        await self.response.aclose()
        await self.client.aclose()


class VideoProxy:
    def __init__(
        self,
        source_url: str = DEFAULT_SOURCE_URL,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            source_url: {id} 자리표시자가 있는 업스트림 URL 템플릿
            max_redirects: 리다이렉트 허용 횟수
            timeout: 연결/읽기 타임아웃 (초)
            transport: 테스트용 httpx 전송 계층
        """
        self.source_url = source_url
        self.max_redirects = int(max_redirects)
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=False,
            transport=self._transport,
        )

    async def open(self, file_id: str, range_header: Optional[str] = None) -> UpstreamStream:
        """
        업스트림 응답을 스트리밍 모드로 열어 반환.

        Raises:
            ValidationFailed: id 누락
            TooManyRedirects: 리다이렉트 횟수 초과
            CollaboratorError: 업스트림 오류 응답 / 네트워크 실패
        """
        file_id = (file_id or "").strip()
        if not file_id:
            raise ValidationFailed("id 파라미터가 필요함")
        url = self.source_url.format(id=quote(file_id, safe=""))
        headers = {"Range": range_header} if range_header else {}
        client = self._client()
        try:
            for hop in range(self.max_redirects + 1):
                request = client.build_request("GET", url, headers=headers)
                response = await client.send(request, stream=True)
                if response.is_redirect:
                    location = response.headers.get("location")
                    await response.aclose()
                    if not location:
                        raise CollaboratorError(f"Location 없는 리다이렉트: {url}")
                    url = str(response.url.join(location))
                    logger.debug("리다이렉트 %d: %s", hop + 1, url)
                    continue
                if response.status_code >= 400:
                    await response.aclose()
                    raise CollaboratorError(f"업스트림 오류 {response.status_code}")
                logger.info("영상 중계 시작: id=%s (리다이렉트 %d회)", file_id, hop)
                return UpstreamStream(response=response, client=client, hops=hop)
            raise TooManyRedirects(f"리다이렉트 {self.max_redirects}회 초과: id={file_id}")
        except CollaboratorError:
            await client.aclose()
            raise
        except httpx.HTTPError as e:
            await client.aclose()
            logger.error("영상 중계 실패 (id=%s): %s", file_id, e)
            raise CollaboratorError(f"업스트림 요청 실패: {e}") from e
