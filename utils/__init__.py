"""
Utils Module
通用工具函数
"""
from .logger import setup_logger, get_logger, get_job_logger, JobLoggerAdapter
from .exceptions import (
    VideoInsightsError,
    ConfigurationError,
    ItemFailure,
    FetchError,
    AnnotationError,
    ThresholdExceeded,
    SynthesisFailure,
    SynthesisParseFailure,
    InsufficientCredits,
    JobError,
    JobNotFound,
    JobTerminated,
    InvalidJobState,
    InvalidStageTransition,
    AnalysisNotFound,
    InvalidSelection,
    StorageError,
    CacheError,
    LLMError,
)

__all__ = [
    "setup_logger",
    "get_logger",
    "get_job_logger",
    "JobLoggerAdapter",
    "VideoInsightsError",
    "ConfigurationError",
    "ItemFailure",
    "FetchError",
    "AnnotationError",
    "ThresholdExceeded",
    "SynthesisFailure",
    "SynthesisParseFailure",
    "InsufficientCredits",
    "JobError",
    "JobNotFound",
    "JobTerminated",
    "InvalidJobState",
    "InvalidStageTransition",
    "AnalysisNotFound",
    "InvalidSelection",
    "StorageError",
    "CacheError",
    "LLMError",
]
