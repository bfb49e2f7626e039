"""
Storage Module
存储模块 - 标注缓存
"""
from .cache import (
    BaseAnnotationCache,
    MemoryAnnotationCache,
    DiskAnnotationCache,
    get_annotation_cache,
)

__all__ = [
    "BaseAnnotationCache",
    "MemoryAnnotationCache",
    "DiskAnnotationCache",
    "get_annotation_cache",
]
