"""
DeepSeek LLM
支持 DeepSeek-V3, DeepSeek-R1 等模型
"""
from typing import Optional
import logging

from .openai_llm import OpenAILLM


logger = logging.getLogger(__name__)


class DeepSeekLLM(OpenAILLM):
    """
    DeepSeek LLM 实现

    使用 OpenAI 兼容接口

    支持模型:
    - deepseek-chat (DeepSeek-V3, 推荐)
    - deepseek-reasoner (DeepSeek-R1, 推理增强)
    """

    DEFAULT_BASE_URL = "https://api.deepseek.com"

    def __init__(
        self,
        model: str = "deepseek-chat",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        timeout: float = 120.0,  # DeepSeek 可能需要更长时间
        **kwargs,
    ):
        super().__init__(model, api_key, base_url, temperature, max_tokens, timeout, **kwargs)

    @property
    def provider(self) -> str:
        return "deepseek"

    def _content(self, choice) -> str:
        # 推理过程不进入正文, 否则会破坏 JSON 输出
        reasoning = getattr(choice.message, "reasoning_content", None)
        if reasoning:
            logger.debug("deepseek reasoning chars=%s", len(reasoning))
        return choice.message.content or ""
