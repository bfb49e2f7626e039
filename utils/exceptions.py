"""
Custom Exceptions
自定义异常类
"""


class VideoInsightsError(Exception):
    """视频分析系统基础异常类"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(VideoInsightsError):
    """配置错误"""
    pass


class ItemFailure(VideoInsightsError):
    """单条视频处理失败 (任务内可恢复)"""

    def __init__(self, message: str, item_id: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.item_id = item_id


class FetchError(ItemFailure):
    """视频下载错误"""
    pass


class AnnotationError(ItemFailure):
    """视频标注错误"""
    pass


class ThresholdExceeded(VideoInsightsError):
    """失败比例超过阈值"""

    def __init__(self, failure_rate: float, threshold: float, **kwargs):
        message = (
            f"Failure threshold exceeded: {failure_rate:.0%} of selected items failed "
            f"(threshold {threshold:.0%})"
        )
        super().__init__(message, kwargs)
        self.failure_rate = failure_rate
        self.threshold = threshold


class SynthesisFailure(VideoInsightsError):
    """洞察生成失败 (任务终止)"""
    pass


class SynthesisParseFailure(VideoInsightsError):
    """洞察 JSON 解析失败 (非致命, 保留原始文本)"""
    pass


class InsufficientCredits(VideoInsightsError):
    """积分不足"""

    def __init__(self, required: int, available: int, **kwargs):
        super().__init__(
            f"Insufficient credits: required {required}, available {available}",
            kwargs,
        )
        self.required = required
        self.available = available


class JobError(VideoInsightsError):
    """任务状态错误"""

    def __init__(self, message: str, job_id: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.job_id = job_id


class JobNotFound(JobError):
    """任务不存在"""
    pass


class JobTerminated(JobError):
    """任务已处于终态, 不可再修改"""
    pass


class InvalidJobState(JobError):
    """任务当前状态不允许该操作"""
    pass


class InvalidStageTransition(JobError):
    """非法的阶段迁移 (阶段不可回退)"""
    pass


class AnalysisNotFound(VideoInsightsError):
    """分析上下文不存在"""
    pass


class InvalidSelection(VideoInsightsError):
    """选中的视频不合法"""
    pass


class StorageError(VideoInsightsError):
    """存储错误"""
    pass


class CacheError(StorageError):
    """缓存错误"""
    pass


class LLMError(VideoInsightsError):
    """LLM 调用错误"""

    def __init__(self, message: str, provider: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.provider = provider
