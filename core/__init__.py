"""Core contracts and shared types for the analysis job pipeline."""

from .contracts import (
    AnalysisContext,
    AnalysisMode,
    AnnotationCacheEntry,
    AnnotationResult,
    CandidateItem,
    ContentIdea,
    CreatorStat,
    CreditTransaction,
    DownloadedItem,
    DurationStats,
    HashtagStat,
    InsightFocus,
    InsightsResult,
    InsightsVariant,
    ItemAnnotation,
    ItemFailureRecord,
    ItemMetadata,
    Job,
    JobStage,
    MetricsSnapshot,
    MetricsSummary,
    ParsedInsights,
    SynthesisOptions,
    TokenUsage,
    TopicStat,
    WriteMode,
)

__all__ = [
    "AnalysisContext",
    "AnalysisMode",
    "AnnotationCacheEntry",
    "AnnotationResult",
    "CandidateItem",
    "ContentIdea",
    "CreatorStat",
    "CreditTransaction",
    "DownloadedItem",
    "DurationStats",
    "HashtagStat",
    "InsightFocus",
    "InsightsResult",
    "InsightsVariant",
    "ItemAnnotation",
    "ItemFailureRecord",
    "ItemMetadata",
    "Job",
    "JobStage",
    "MetricsSnapshot",
    "MetricsSummary",
    "ParsedInsights",
    "SynthesisOptions",
    "TokenUsage",
    "TopicStat",
    "WriteMode",
]
