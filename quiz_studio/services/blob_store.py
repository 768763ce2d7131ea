import asyncio
import logging
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

import httpx

from quiz_studio.core.config import settings
from quiz_studio.exceptions import BlobDownloadError

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    async def download(self, bucket: str, path: str) -> bytes: ...


class LocalBlobStore:
    """로컬 파일시스템 저장소 ({root}/{bucket}/{path})"""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _resolve(self, bucket: str, path: str) -> Path:
        base = (self.root / bucket).resolve()
        target = (base / path.lstrip("/")).resolve()
        # 버킷 밖으로 나가는 경로 차단
        if base not in target.parents:
            raise BlobDownloadError(bucket, path, "잘못된 경로")
        return target

    async def download(self, bucket: str, path: str) -> bytes:
        target = self._resolve(bucket, path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except OSError as e:
            logger.error(f"로컬 blob 읽기 실패: {bucket}/{path}, error={type(e).__name__}")
            raise BlobDownloadError(bucket, path, type(e).__name__) from e


class HttpBlobStore:
    """오브젝트 스토리지 REST 다운로드 ({base_url}/object/{bucket}/{path})"""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.transport = transport

    async def download(self, bucket: str, path: str) -> bytes:
        url = f"{self.base_url}/object/{quote(bucket)}/{quote(path.lstrip('/'))}"
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url, headers=headers)
                response.raise_for_status()
                return response.content
        except httpx.HTTPStatusError as e:
            logger.error(f"blob 다운로드 실패: {bucket}/{path}, status={e.response.status_code}")
            raise BlobDownloadError(bucket, path, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"blob 다운로드 실패: {bucket}/{path}, error={type(e).__name__}")
            raise BlobDownloadError(bucket, path, type(e).__name__) from e


_blob_store: BlobStore | None = None


def get_blob_store() -> BlobStore:
    """설정에 따른 blob store 싱글톤"""
    global _blob_store
    if _blob_store is None:
        if settings.blob_store_backend == "http":
            if not settings.blob_store_url:
                raise ValueError("BLOB_STORE_URL이 설정되지 않았습니다")
            _blob_store = HttpBlobStore(
                settings.blob_store_url,
                token=settings.blob_store_token,
                timeout=settings.blob_timeout_seconds,
            )
        else:
            _blob_store = LocalBlobStore(settings.blob_store_root)
        logger.info(f"Blob store 설정: backend={settings.blob_store_backend}")
    return _blob_store
