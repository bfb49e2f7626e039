"""
Configuration Management Module
统一配置管理
"""
from .settings import (
    Settings,
    get_settings,
    get_pipeline_settings,
    get_selection_settings,
    get_credit_settings,
    get_storage_settings,
    get_fetcher_settings,
    get_annotator_settings,
    get_synthesis_settings,
    get_llm_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "get_pipeline_settings",
    "get_selection_settings",
    "get_credit_settings",
    "get_storage_settings",
    "get_fetcher_settings",
    "get_annotator_settings",
    "get_synthesis_settings",
    "get_llm_settings",
]
