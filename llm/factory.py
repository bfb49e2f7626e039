"""
LLM Factory
工厂函数 - 根据配置自动创建 LLM 实例
"""
from typing import Optional
import logging

from utils.exceptions import ConfigurationError

from .base import BaseLLM
from .openai_llm import OpenAILLM
from .deepseek_llm import DeepSeekLLM
from .gemini_llm import GeminiLLM


logger = logging.getLogger(__name__)


# 默认模型配置
DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "deepseek": "deepseek-chat",
    "gemini": "gemini-flash-latest",
}


def get_llm(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    **kwargs,
) -> BaseLLM:
    """
    获取 LLM 实例

    自动从 .env 读取配置，也可手动指定

    Args:
        provider: LLM 供应商 (openai, deepseek, gemini)
        model: 模型名称 (不传则使用默认)
        **kwargs: 额外参数 (temperature, max_tokens 等)

    Returns:
        BaseLLM 实例

    Example:
        llm = get_llm()
        llm = get_llm(provider="deepseek")
    """
    from config import get_llm_settings

    settings = get_llm_settings()

    provider = provider or settings.provider
    model = model or settings.model_name or DEFAULT_MODELS.get(provider)

    api_keys = {
        "openai": settings.openai_api_key,
        "deepseek": settings.deepseek_api_key,
        "gemini": settings.gemini_api_key,
    }
    api_key = kwargs.pop("api_key", None) or api_keys.get(provider)

    for key, value in {"temperature": settings.temperature, "max_tokens": settings.max_tokens}.items():
        kwargs.setdefault(key, value)

    logger.debug("creating llm provider=%s model=%s", provider, model)

    if provider == "openai":
        return OpenAILLM(model=model, api_key=api_key, base_url=kwargs.pop("base_url", None), **kwargs)
    elif provider == "deepseek":
        return DeepSeekLLM(model=model, api_key=api_key, base_url=kwargs.pop("base_url", None), **kwargs)
    elif provider == "gemini":
        return GeminiLLM(model=model, api_key=api_key, **kwargs)
    else:
        raise ConfigurationError(f"Unsupported LLM provider: {provider}")
