"""
Settings Configuration
使用 Pydantic 进行配置验证和管理
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class PipelineSettings(BaseSettings):
    """分析任务流水线配置"""
    failure_threshold: float = Field(default=0.5, description="失败比例阈值 (超过即终止任务)")
    item_progress_weight: int = Field(default=70, description="逐条处理阶段占用的进度百分比")
    synthesis_progress_start: int = Field(default=75, description="进入洞察生成阶段时的进度")
    fetch_timeout: float = Field(default=120.0, description="单条下载超时(秒)")
    annotate_timeout: float = Field(default=600.0, description="单条标注超时(秒)")
    generate_timeout: float = Field(default=180.0, description="洞察生成超时(秒)")
    transcript_excerpt_chars: int = Field(default=200, description="提示词中转写文本截断长度")
    max_labels_per_item: int = Field(default=10, description="提示词中每条视频展示的标签数")

    class Config:
        env_prefix = "PIPELINE_"


class SelectionSettings(BaseSettings):
    """候选视频排序与筛选配置"""
    likes_pool_size: int = Field(default=10, description="按点赞数预选的候选池大小")
    top_n: int = Field(default=5, description="按评论+分享重排后保留数量")
    distributed_total: int = Field(default=20, description="竞品模式下的总选取数量")
    category_top_n: int = Field(default=30, description="类目模式下按互动率保留数量")

    class Config:
        env_prefix = "SELECTION_"


class CreditSettings(BaseSettings):
    """积分计费配置"""
    items_per_scrape_credit: int = Field(default=50, description="每 1 积分可抓取的视频数")
    items_per_annotation_credit: int = Field(default=4, description="每 1 积分可深度分析的视频数")
    initial_balance: int = Field(default=0, description="新用户默认积分")

    class Config:
        env_prefix = "CREDITS_"


class StorageSettings(BaseSettings):
    """存储配置"""
    cache_provider: str = Field(default="memory", description="标注缓存: memory, disk")
    cache_path: str = Field(default="./data/annotation_cache", description="磁盘缓存目录")

    class Config:
        env_prefix = "STORAGE_"


class FetcherSettings(BaseSettings):
    """视频下载配置"""
    download_dir: str = Field(default="./data/downloads", description="视频下载目录")
    max_retries: int = Field(default=3, description="最大重试次数")
    chunk_size: int = Field(default=1024 * 256, description="流式下载分块大小")
    user_agent: str = Field(
        default="Mozilla/5.0 (compatible; VideoInsights/1.0)",
        description="User Agent",
    )

    class Config:
        env_prefix = "FETCHER_"


class AnnotatorSettings(BaseSettings):
    """Video Intelligence 标注配置"""
    api_key: Optional[str] = Field(default=None, description="Google Cloud API Key")
    endpoint: str = Field(
        default="https://videointelligence.googleapis.com/v1",
        description="Video Intelligence REST 端点",
    )
    language_code: str = Field(default="es-ES", description="语音转写语言")
    poll_interval: float = Field(default=5.0, description="长任务轮询间隔(秒)")
    max_polls: int = Field(default=120, description="最大轮询次数")
    request_timeout: float = Field(default=30.0, description="单次请求超时(秒)")

    class Config:
        env_prefix = "ANNOTATOR_"


class SynthesisSettings(BaseSettings):
    """洞察生成默认参数"""
    focus: str = Field(default="analytical", description="默认分析视角")
    temperature: float = Field(default=0.7, description="生成温度")
    idea_count: int = Field(default=3, description="内容创意数量")
    max_tokens: int = Field(default=4096, description="最大生成token数")

    class Config:
        env_prefix = "SYNTHESIS_"


class LLMSettings(BaseSettings):
    """LLM 配置"""
    provider: str = Field(default="gemini", description="LLM提供商: openai, deepseek, gemini")
    model_name: Optional[str] = Field(default=None, description="模型名称(不填则使用默认)")
    temperature: float = Field(default=0.7, description="生成温度")
    max_tokens: int = Field(default=4096, description="最大生成token数")

    # API Keys
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API Key")
    deepseek_api_key: Optional[str] = Field(default=None, description="DeepSeek API Key")
    gemini_api_key: Optional[str] = Field(default=None, description="Google Gemini API Key")

    class Config:
        env_prefix = "LLM_"


class Settings(BaseSettings):
    """主配置类 - 聚合所有子配置"""

    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    selection: SelectionSettings = Field(default_factory=SelectionSettings)
    credits: CreditSettings = Field(default_factory=CreditSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    fetcher: FetcherSettings = Field(default_factory=FetcherSettings)
    annotator: AnnotatorSettings = Field(default_factory=AnnotatorSettings)
    synthesis: SynthesisSettings = Field(default_factory=SynthesisSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """从指定的 .env 文件加载配置"""
        if env_path is None:
            # 默认查找 config/.env
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            pipeline=PipelineSettings(),
            selection=SelectionSettings(),
            credits=CreditSettings(),
            storage=StorageSettings(),
            fetcher=FetcherSettings(),
            annotator=AnnotatorSettings(),
            synthesis=SynthesisSettings(),
            llm=LLMSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """获取全局配置单例"""
    return Settings.load_from_env_file()


# 便捷访问
def get_pipeline_settings() -> PipelineSettings:
    return get_settings().pipeline


def get_selection_settings() -> SelectionSettings:
    return get_settings().selection


def get_credit_settings() -> CreditSettings:
    return get_settings().credits


def get_storage_settings() -> StorageSettings:
    return get_settings().storage


def get_fetcher_settings() -> FetcherSettings:
    return get_settings().fetcher


def get_annotator_settings() -> AnnotatorSettings:
    return get_settings().annotator


def get_synthesis_settings() -> SynthesisSettings:
    return get_settings().synthesis


def get_llm_settings() -> LLMSettings:
    return get_settings().llm
