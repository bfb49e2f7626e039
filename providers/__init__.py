"""
Providers Module
外部服务适配: 下载、标注、文本生成
"""
from .base import Annotator, Fetcher, GenerationResult, TextGenerator
from .fetcher import HttpFetcher
from .annotator import VideoIntelligenceAnnotator, parse_annotation_response
from .text_generator import LLMTextGenerator

__all__ = [
    "Annotator",
    "Fetcher",
    "GenerationResult",
    "TextGenerator",
    "HttpFetcher",
    "VideoIntelligenceAnnotator",
    "parse_annotation_response",
    "LLMTextGenerator",
]
