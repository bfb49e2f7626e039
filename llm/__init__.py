"""
LLM Module
多供应商 LLM 抽象层
"""
from .base import BaseLLM, LLMResponse, Message, MessageRole
from .openai_llm import OpenAILLM
from .deepseek_llm import DeepSeekLLM
from .gemini_llm import GeminiLLM
from .factory import DEFAULT_MODELS, get_llm

__all__ = [
    "BaseLLM",
    "LLMResponse",
    "Message",
    "MessageRole",
    "OpenAILLM",
    "DeepSeekLLM",
    "GeminiLLM",
    "DEFAULT_MODELS",
    "get_llm",
]
