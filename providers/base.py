"""
Provider Interfaces
外部服务抽象: 视频下载、视频标注、文本生成
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from core import AnnotationResult, TokenUsage


@dataclass
class GenerationResult:
    """文本生成结果"""
    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: Optional[str] = None


class Fetcher(ABC):
    """
    视频下载器抽象基类

    重试策略由具体实现负责, 失败时抛出 FetchError
    """

    @abstractmethod
    async def fetch(self, locator: str, *, item_id: str) -> str:
        """
        下载视频

        Args:
            locator: 视频公开地址或直链
            item_id: 视频 ID

        Returns:
            可供标注器读取的制品引用 (本地路径或 gs:// URI)
        """
        pass

    async def release(self, artifact_ref: str) -> None:
        """标注结束后释放下载制品 (默认不做任何事)"""
        return None

    async def aclose(self) -> None:
        return None


class Annotator(ABC):
    """视频标注器抽象基类, 失败时抛出 AnnotationError"""

    @abstractmethod
    async def annotate(self, artifact_ref: str) -> AnnotationResult:
        """对已下载的视频做标签、语音转写和镜头切换分析"""
        pass

    async def aclose(self) -> None:
        return None


class TextGenerator(ABC):
    """文本生成抽象基类, 失败时抛出 LLMError"""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        *,
        system_instruction: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> GenerationResult:
        pass

    async def aclose(self) -> None:
        return None
