"""
Annotation Cache
视频标注结果缓存 (按视频 ID 寻址, 不过期)
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Dict, Optional
import hashlib
import json
import logging

from core import AnnotationCacheEntry
from utils.exceptions import CacheError


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseAnnotationCache(ABC):
    """
    标注缓存抽象基类

    每个 item_id 至多一条记录; put 为 upsert, 命中时刷新 last_used_at。
    """

    @abstractmethod
    def get(self, item_id: str) -> Optional[AnnotationCacheEntry]:
        """获取缓存条目, 命中时更新 last_used_at"""
        pass

    @abstractmethod
    def put(self, item_id: str, entry: AnnotationCacheEntry) -> AnnotationCacheEntry:
        """写入缓存条目 (已存在则更新, 保留 created_at)"""
        pass

    @abstractmethod
    def contains(self, item_id: str) -> bool:
        """检查是否存在 (不更新 last_used_at)"""
        pass

    @abstractmethod
    def size(self) -> int:
        """返回缓存条目数"""
        pass

    @staticmethod
    def _merge(existing: Optional[AnnotationCacheEntry], item_id: str, entry: AnnotationCacheEntry) -> AnnotationCacheEntry:
        now = _utcnow()
        if existing is None:
            return entry.model_copy(update={"item_id": item_id, "last_used_at": now}, deep=True)
        return entry.model_copy(
            update={"item_id": item_id, "created_at": existing.created_at, "last_used_at": now},
            deep=True,
        )


class MemoryAnnotationCache(BaseAnnotationCache):
    """
    内存缓存
    适合开发和测试, 进程重启后丢失
    """

    def __init__(self) -> None:
        self._entries: Dict[str, AnnotationCacheEntry] = {}
        self._lock = Lock()

    def get(self, item_id: str) -> Optional[AnnotationCacheEntry]:
        with self._lock:
            entry = self._entries.get(item_id)
            if entry is None:
                return None
            entry.last_used_at = _utcnow()
            return entry.model_copy(deep=True)

    def put(self, item_id: str, entry: AnnotationCacheEntry) -> AnnotationCacheEntry:
        with self._lock:
            merged = self._merge(self._entries.get(item_id), item_id, entry)
            self._entries[item_id] = merged
            return merged.model_copy(deep=True)

    def contains(self, item_id: str) -> bool:
        with self._lock:
            return item_id in self._entries

    def size(self) -> int:
        with self._lock:
            return len(self._entries)


class DiskAnnotationCache(BaseAnnotationCache):
    """
    磁盘缓存
    每个视频一个 JSON 文件, 跨进程重启保留
    """

    def __init__(self, cache_dir: str = "./data/annotation_cache"):
        """
        初始化磁盘缓存

        Args:
            cache_dir: 缓存目录
        """
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()

    def _get_path(self, item_id: str) -> Path:
        """获取缓存文件路径 (ID 可能包含非法文件名字符, 取哈希)"""
        digest = hashlib.sha1(item_id.encode("utf-8")).hexdigest()
        return self.cache_dir / f"{digest}.json"

    def _load(self, path: Path) -> Optional[AnnotationCacheEntry]:
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return AnnotationCacheEntry.model_validate(json.load(f))
        except (OSError, ValueError) as e:
            raise CacheError(f"Failed to load cache entry {path.name}", {"error": str(e)}) from e

    def _dump(self, path: Path, entry: AnnotationCacheEntry) -> None:
        tmp_path = path.with_suffix(".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(entry.model_dump(mode="json"), f, ensure_ascii=False)
            tmp_path.replace(path)
        except OSError as e:
            raise CacheError(f"Failed to save cache entry {path.name}", {"error": str(e)}) from e

    def get(self, item_id: str) -> Optional[AnnotationCacheEntry]:
        path = self._get_path(item_id)
        with self._lock:
            entry = self._load(path)
            if entry is None:
                return None
            entry.last_used_at = _utcnow()
            self._dump(path, entry)
            return entry

    def put(self, item_id: str, entry: AnnotationCacheEntry) -> AnnotationCacheEntry:
        path = self._get_path(item_id)
        with self._lock:
            merged = self._merge(self._load(path), item_id, entry)
            self._dump(path, merged)
            return merged.model_copy(deep=True)

    def contains(self, item_id: str) -> bool:
        with self._lock:
            return self._get_path(item_id).exists()

    def size(self) -> int:
        with self._lock:
            return len(list(self.cache_dir.glob("*.json")))


# 工厂函数
_default_memory_cache = None
_default_disk_caches: Dict[str, DiskAnnotationCache] = {}


def get_annotation_cache(
    provider: Optional[str] = None,
    cache_dir: Optional[str] = None,
) -> BaseAnnotationCache:
    """
    获取标注缓存实例

    Args:
        provider: 提供商 (memory, disk), 不传则读取配置
        cache_dir: 磁盘缓存目录

    Returns:
        缓存实例
    """
    global _default_memory_cache
    from config import get_storage_settings

    settings = get_storage_settings()
    provider = provider or settings.cache_provider

    if provider == "memory":
        if _default_memory_cache is None:
            _default_memory_cache = MemoryAnnotationCache()
        return _default_memory_cache

    elif provider == "disk":
        cache_dir = cache_dir or settings.cache_path
        if cache_dir not in _default_disk_caches:
            _default_disk_caches[cache_dir] = DiskAnnotationCache(cache_dir=cache_dir)
        return _default_disk_caches[cache_dir]

    else:
        raise ValueError(f"Unknown cache provider: {provider}")
