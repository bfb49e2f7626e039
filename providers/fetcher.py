"""
HTTP Fetcher
通过 httpx 流式下载视频到本地目录
"""
from pathlib import Path
from typing import Optional
from uuid import uuid4
import asyncio
import logging
import re

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import get_fetcher_settings
from utils.exceptions import FetchError

from .base import Fetcher


logger = logging.getLogger(__name__)

_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9_.-]+")


class _RetryableStatus(Exception):
    """服务端 5xx / 429, 可以重试"""


class HttpFetcher(Fetcher):
    """
    HTTP 视频下载器

    - 对网络错误、5xx 与 429 做指数退避重试
    - 其它 4xx 直接失败
    """

    def __init__(
        self,
        download_dir: Optional[str] = None,
        *,
        max_retries: Optional[int] = None,
        chunk_size: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
        backoff_multiplier: float = 1.0,
    ):
        settings = get_fetcher_settings()
        self.download_dir = Path(download_dir or settings.download_dir)
        self.max_retries = max_retries or settings.max_retries
        self.chunk_size = chunk_size or settings.chunk_size
        self.backoff_multiplier = backoff_multiplier
        self._user_agent = settings.user_agent
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(60.0, connect=10.0),
                follow_redirects=True,
                headers={"User-Agent": self._user_agent},
            )
        return self._client

    def _target_path(self, item_id: str) -> Path:
        """每次下载独立文件, 同一视频被多个任务并发下载时互不覆盖"""
        name = _SAFE_NAME_RE.sub("_", item_id).strip("._") or "item"
        return self.download_dir / f"{name}_{uuid4().hex[:8]}.mp4"

    async def _download_once(self, locator: str, target: Path) -> int:
        client = self._get_client()
        written = 0
        async with client.stream("GET", locator) as response:
            if response.status_code == 429 or response.status_code >= 500:
                raise _RetryableStatus(f"HTTP {response.status_code}")
            response.raise_for_status()
            f = await asyncio.to_thread(open, target, "wb")
            try:
                async for chunk in response.aiter_bytes(self.chunk_size):
                    await asyncio.to_thread(f.write, chunk)
                    written += len(chunk)
            finally:
                await asyncio.to_thread(f.close)
        return written

    async def fetch(self, locator: str, *, item_id: str) -> str:
        if not locator:
            raise FetchError("Item has no downloadable locator", item_id=item_id)

        self.download_dir.mkdir(parents=True, exist_ok=True)
        target = self._target_path(item_id)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=wait_exponential(multiplier=self.backoff_multiplier, min=0, max=10),
                retry=retry_if_exception_type((httpx.TransportError, _RetryableStatus)),
                reraise=True,
            ):
                with attempt:
                    written = await self._download_once(locator, target)
        except (httpx.HTTPError, _RetryableStatus, OSError) as e:
            target.unlink(missing_ok=True)
            raise FetchError(f"Download failed: {e}", item_id=item_id, locator=locator) from e

        if written == 0:
            target.unlink(missing_ok=True)
            raise FetchError("Downloaded file is empty", item_id=item_id, locator=locator)

        logger.info("downloaded item=%s bytes=%s path=%s", item_id, written, target)
        return str(target)

    async def release(self, artifact_ref: str) -> None:
        """删除已标注完成的下载文件 (只处理下载目录内的文件)"""
        path = Path(artifact_ref)
        if path.parent.resolve() != self.download_dir.resolve():
            return
        await asyncio.to_thread(path.unlink, missing_ok=True)
        logger.debug("released artifact=%s", artifact_ref)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
