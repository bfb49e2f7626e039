"""Canonical data contracts for the video analysis job pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStage(str, Enum):
    """Lifecycle stage of an analysis job, in forward order."""

    QUEUED = "queued"
    DOWNLOADING = "downloading"
    ANALYZING_ITEMS = "analyzing_items"
    GENERATING_INSIGHTS = "generating_insights"
    COMPLETED = "completed"
    FAILED = "failed"


class AnalysisMode(str, Enum):
    """How the candidate dataset was collected and ranked."""

    PROFILE = "profile"
    COMPETITOR = "competitor"
    CATEGORY = "category"


class InsightFocus(str, Enum):
    """Editorial angle requested from the synthesis step."""

    ANALYTICAL = "analytical"
    CREATIVE = "creative"
    VIRAL = "viral"
    EDUCATIONAL = "educational"
    CONSERVATIVE = "conservative"


class WriteMode(str, Enum):
    """How a synthesis result is written back onto the job."""

    OVERWRITE = "overwrite"
    VARIANT = "variant"


class CandidateItem(BaseModel):
    """One scraped video with engagement counters. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    id: str
    source_profile: str = ""
    url: str = ""
    download_url: Optional[str] = None
    views: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    saves: int = 0
    duration_seconds: float = 0.0
    published_at: Optional[datetime] = None
    description: str = ""
    hashtags: List[str] = Field(default_factory=list)
    music_title: Optional[str] = None
    music_original: Optional[bool] = None

    @field_validator("id", mode="before")
    @classmethod
    def _non_empty_id(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("id is required")
        return text

    @field_validator("views", "likes", "comments", "shares", "saves", mode="before")
    @classmethod
    def _non_negative_count(cls, value: Any) -> int:
        try:
            return max(0, int(value or 0))
        except (TypeError, ValueError):
            return 0

    @computed_field
    @property
    def engagement_rate(self) -> float:
        return (self.likes + self.comments + self.shares) / max(self.views, 1)

    @property
    def locator(self) -> str:
        return self.download_url or self.url


class AnnotationResult(BaseModel):
    """Narrow result of the remote video annotation call."""

    labels: List[str] = Field(default_factory=list)
    transcript: str = ""
    shot_change_count: int = 0


class MetricsSnapshot(BaseModel):
    """Engagement counters captured when an annotation was cached."""

    views: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    saves: int = 0
    engagement_rate: float = 0.0

    @classmethod
    def from_item(cls, item: CandidateItem) -> "MetricsSnapshot":
        return cls(
            views=item.views,
            likes=item.likes,
            comments=item.comments,
            shares=item.shares,
            saves=item.saves,
            engagement_rate=item.engagement_rate,
        )


class ItemMetadata(BaseModel):
    """Descriptive fields of the item at cache time, kept for diagnostics."""

    description: str = ""
    hashtags: List[str] = Field(default_factory=list)
    music_title: Optional[str] = None
    duration_seconds: float = 0.0
    published_at: Optional[datetime] = None

    @classmethod
    def from_item(cls, item: CandidateItem) -> "ItemMetadata":
        return cls(
            description=item.description,
            hashtags=list(item.hashtags),
            music_title=item.music_title,
            duration_seconds=item.duration_seconds,
            published_at=item.published_at,
        )


class AnnotationCacheEntry(BaseModel):
    """Cached annotation keyed by item id. At most one per item."""

    item_id: str
    result: AnnotationResult
    metrics: MetricsSnapshot = Field(default_factory=MetricsSnapshot)
    metadata: ItemMetadata = Field(default_factory=ItemMetadata)
    source_profile: str = ""
    item_url: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    last_used_at: datetime = Field(default_factory=_utcnow)


class DownloadedItem(BaseModel):
    """Artifact reference produced by the fetch step."""

    item_id: str
    locator: str
    artifact_ref: str
    downloaded_at: datetime = Field(default_factory=_utcnow)


class ItemAnnotation(BaseModel):
    """Per-item annotation record, identical in shape for fresh and cached results."""

    item_id: str
    item: CandidateItem
    annotation: AnnotationResult
    from_cache: bool = False
    analyzed_at: datetime = Field(default_factory=_utcnow)


class ItemFailureRecord(BaseModel):
    """Warning recorded when a single item could not be processed."""

    item_id: str
    error: str
    failed_at: datetime = Field(default_factory=_utcnow)


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class TopicInsight(BaseModel):
    topic: str = ""
    frequency: Union[int, float, str, None] = None
    avg_engagement: Union[int, float, str, None] = None


class EngagementAnalysis(BaseModel):
    key_factors: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class ContentIdea(BaseModel):
    title: str = ""
    concept: str = ""
    hashtags: List[str] = Field(default_factory=list)
    reasoning: str = ""


class HashtagStrategy(BaseModel):
    top_hashtags: List[str] = Field(default_factory=list)
    avoid: List[str] = Field(default_factory=list)


class MusicStrategy(BaseModel):
    recommendation: str = ""
    music_types: List[str] = Field(default_factory=list)


class OptimalFormat(BaseModel):
    duration: str = ""
    style: str = ""
    elements: List[str] = Field(default_factory=list)


class ParsedInsights(BaseModel):
    """Structured report parsed from the model response (schema version 1)."""

    schema_version: int = 1
    summary: str = ""
    patterns: List[str] = Field(default_factory=list)
    main_topics: List[TopicInsight] = Field(default_factory=list)
    engagement_analysis: EngagementAnalysis = Field(default_factory=EngagementAnalysis)
    recommendations: List[str] = Field(default_factory=list)
    content_ideas: List[ContentIdea] = Field(default_factory=list)
    hashtag_strategy: HashtagStrategy = Field(default_factory=HashtagStrategy)
    music_strategy: MusicStrategy = Field(default_factory=MusicStrategy)
    optimal_format: OptimalFormat = Field(default_factory=OptimalFormat)


class SynthesisOptions(BaseModel):
    """Tunables for one synthesis call."""

    focus: InsightFocus = InsightFocus.ANALYTICAL
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    idea_count: int = Field(default=3, ge=1, le=20)
    max_tokens: int = Field(default=4096, ge=1)


class InsightsResult(BaseModel):
    """Raw and parsed output of one synthesis call."""

    raw_response: str
    parsed_insights: Optional[ParsedInsights] = None
    usage: TokenUsage = Field(default_factory=TokenUsage)
    focus: InsightFocus = InsightFocus.ANALYTICAL
    temperature: float = 0.7
    idea_count: int = 3
    generated_at: datetime = Field(default_factory=_utcnow)


class InsightsVariant(BaseModel):
    """Alternate synthesis stored alongside the primary result."""

    name: str
    insights: InsightsResult
    created_at: datetime = Field(default_factory=_utcnow)


class HashtagStat(BaseModel):
    hashtag: str
    usage_count: int = 0
    avg_views: float = 0.0
    avg_engagement_rate: float = 0.0


class CreatorStat(BaseModel):
    source_profile: str
    item_count: int = 0
    total_views: int = 0
    avg_engagement_rate: float = 0.0


class TopicStat(BaseModel):
    topic: str
    frequency: int = 0
    avg_engagement_rate: float = 0.0


class DurationStats(BaseModel):
    """Duration range of the best performing items, in seconds."""

    min_seconds: float = 15.0
    max_seconds: float = 30.0
    median_seconds: float = 20.0
    avg_seconds: float = 20.0


class MetricsSummary(BaseModel):
    """Aggregate statistics over the full scraped dataset."""

    total_items: int = 0
    items_with_likes: int = 0
    items_with_comments: int = 0
    items_with_shares: int = 0
    avg_views: float = 0.0
    avg_likes: float = 0.0
    avg_comments: float = 0.0
    avg_shares: float = 0.0
    avg_engagement_rate: float = 0.0
    avg_hashtags_per_item: float = 0.0
    duration_buckets: Dict[str, int] = Field(default_factory=dict)
    original_music_count: int = 0
    licensed_music_count: int = 0
    top_hashtags: List[HashtagStat] = Field(default_factory=list)
    top_creators: List[CreatorStat] = Field(default_factory=list)
    top_keywords: List[TopicStat] = Field(default_factory=list)
    avg_description_length: float = 0.0
    optimal_duration: DurationStats = Field(default_factory=DurationStats)
    top_by_views: List[str] = Field(default_factory=list)
    top_by_comments: List[str] = Field(default_factory=list)
    top_by_shares: List[str] = Field(default_factory=list)


class AnalysisContext(BaseModel):
    """Parent analysis a job is created from: dataset, summary and ranked selection."""

    id: str
    owner_id: str
    mode: AnalysisMode = AnalysisMode.PROFILE
    source_profiles: List[str] = Field(default_factory=list)
    items: List[CandidateItem] = Field(default_factory=list)
    selected: List[CandidateItem] = Field(default_factory=list)
    summary: MetricsSummary = Field(default_factory=MetricsSummary)
    created_at: datetime = Field(default_factory=_utcnow)

    def find_item(self, item_id: str) -> Optional[CandidateItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None


class Job(BaseModel):
    """Persisted state machine of one analysis run."""

    id: str
    owner_id: str
    analysis_id: str
    selected_item_ids: List[str]
    stage: JobStage = JobStage.QUEUED
    progress: int = 0
    current_step: str = ""
    downloaded_items: List[DownloadedItem] = Field(default_factory=list)
    annotation_results: List[ItemAnnotation] = Field(default_factory=list)
    primary_insights: Optional[InsightsResult] = None
    insight_variants: List[InsightsVariant] = Field(default_factory=list)
    failure_count: int = 0
    item_failures: List[ItemFailureRecord] = Field(default_factory=list)
    error_message: Optional[str] = None
    credits_charged: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def failure_rate(self) -> float:
        if not self.selected_item_ids:
            return 0.0
        return self.failure_count / len(self.selected_item_ids)

    @property
    def is_terminal(self) -> bool:
        return self.stage in {JobStage.COMPLETED, JobStage.FAILED}


class CreditTransaction(BaseModel):
    """Ledger entry. Negative amount for consumption, positive for grants."""

    id: str
    owner_id: str
    amount: int
    balance_before: int
    balance_after: int
    reason: str = ""
    resource_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
