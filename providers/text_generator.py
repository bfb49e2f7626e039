"""
LLM Text Generator
将多供应商 LLM 层适配为 TextGenerator 接口
"""
from typing import Optional
import logging

from core import TokenUsage
from llm import BaseLLM, Message, get_llm
from utils.exceptions import LLMError

from .base import GenerationResult, TextGenerator


logger = logging.getLogger(__name__)


class LLMTextGenerator(TextGenerator):
    """
    基于 BaseLLM 的文本生成器

    请求 JSON 输出模式, SDK 异常统一包装为 LLMError
    """

    def __init__(self, llm: Optional[BaseLLM] = None, *, json_mode: bool = True):
        self._llm = llm or get_llm()
        self._json_mode = json_mode

    @property
    def llm(self) -> BaseLLM:
        return self._llm

    async def generate(
        self,
        prompt: str,
        *,
        system_instruction: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> GenerationResult:
        messages = []
        if system_instruction:
            messages.append(Message.system(system_instruction))
        messages.append(Message.user(prompt))

        try:
            response = await self._llm.acomplete(
                messages,
                json_mode=self._json_mode,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except LLMError:
            raise
        except Exception as e:
            raise LLMError(f"Text generation failed: {e}", provider=self._llm.provider, model=self._llm.model) from e

        logger.info(
            "generated provider=%s model=%s chars=%s finish=%s",
            self._llm.provider,
            response.model,
            len(response.content),
            response.finish_reason,
        )
        return GenerationResult(
            text=response.content,
            usage=TokenUsage(**{k: int(v or 0) for k, v in response.usage.items()}),
            model=response.model,
        )

    async def aclose(self) -> None:
        await self._llm.aclose()
