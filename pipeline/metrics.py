"""Aggregate statistics over the scraped dataset and the annotated working set."""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import Dict, List, Sequence

from core import (
    CandidateItem,
    CreatorStat,
    DurationStats,
    HashtagStat,
    ItemAnnotation,
    MetricsSummary,
    TopicStat,
)


_WORD_RE = re.compile(r"\s+")


def _avg(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _top_ids(items: Sequence[CandidateItem], key, limit: int = 5) -> List[str]:
    return [item.id for item in sorted(items, key=key, reverse=True)[:limit]]


def hashtag_stats(items: Sequence[CandidateItem], *, limit: int = 15) -> List[HashtagStat]:
    """Hashtags ranked by usage, with average views and engagement of the items using them."""
    usage: Dict[str, List[CandidateItem]] = {}
    for item in items:
        for tag in item.hashtags:
            usage.setdefault(tag, []).append(item)
    stats = [
        HashtagStat(
            hashtag=tag,
            usage_count=len(tagged),
            avg_views=round(_avg([i.views for i in tagged])),
            avg_engagement_rate=_avg([i.engagement_rate for i in tagged]),
        )
        for tag, tagged in usage.items()
    ]
    stats.sort(key=lambda stat: stat.usage_count, reverse=True)
    return stats[:limit]


def creator_stats(items: Sequence[CandidateItem], *, limit: int = 10) -> List[CreatorStat]:
    grouped: Dict[str, List[CandidateItem]] = {}
    for item in items:
        grouped.setdefault(item.source_profile, []).append(item)
    stats = [
        CreatorStat(
            source_profile=profile,
            item_count=len(group),
            total_views=sum(i.views for i in group),
            avg_engagement_rate=_avg([i.engagement_rate for i in group]),
        )
        for profile, group in grouped.items()
    ]
    stats.sort(key=lambda stat: stat.avg_engagement_rate, reverse=True)
    return stats[:limit]


def optimal_duration(items: Sequence[CandidateItem]) -> DurationStats:
    """Duration range of the top 20% of items by engagement rate."""
    ranked = sorted(items, key=lambda item: item.engagement_rate, reverse=True)
    top = ranked[: math.ceil(len(items) * 0.2)]
    durations = sorted(item.duration_seconds for item in top)
    if not durations:
        return DurationStats()
    return DurationStats(
        min_seconds=durations[0],
        max_seconds=durations[-1],
        median_seconds=durations[len(durations) // 2],
        avg_seconds=_avg(durations),
    )


def duration_buckets(items: Sequence[CandidateItem]) -> Dict[str, int]:
    durations = [item.duration_seconds for item in items if item.duration_seconds > 0]
    return {
        "short": sum(1 for d in durations if d <= 15),
        "medium": sum(1 for d in durations if 15 < d <= 30),
        "long": sum(1 for d in durations if d > 30),
    }


def description_keywords(items: Sequence[CandidateItem], *, limit: int = 5) -> List[TopicStat]:
    """Most frequent description words longer than three characters."""
    counter: Counter = Counter()
    for item in items:
        words = [w for w in _WORD_RE.split(item.description.lower()) if len(w) > 3]
        counter.update(words)
    return [TopicStat(topic=word, frequency=count) for word, count in counter.most_common(limit)]


def build_summary(items: Sequence[CandidateItem]) -> MetricsSummary:
    """Summary of the full dataset used as the ranked-metrics context for synthesis."""
    if not items:
        return MetricsSummary()
    return MetricsSummary(
        total_items=len(items),
        items_with_likes=sum(1 for i in items if i.likes > 0),
        items_with_comments=sum(1 for i in items if i.comments > 0),
        items_with_shares=sum(1 for i in items if i.shares > 0),
        avg_views=_avg([i.views for i in items]),
        avg_likes=_avg([i.likes for i in items]),
        avg_comments=_avg([i.comments for i in items]),
        avg_shares=_avg([i.shares for i in items]),
        avg_engagement_rate=_avg([i.engagement_rate for i in items]),
        avg_hashtags_per_item=_avg([len(i.hashtags) for i in items]),
        duration_buckets=duration_buckets(items),
        original_music_count=sum(1 for i in items if i.music_original is True),
        licensed_music_count=sum(1 for i in items if i.music_original is False),
        top_hashtags=hashtag_stats(items),
        top_creators=creator_stats(items),
        top_keywords=description_keywords(items),
        avg_description_length=_avg([len(i.description) for i in items]),
        optimal_duration=optimal_duration(items),
        top_by_views=_top_ids(items, key=lambda i: i.views),
        top_by_comments=_top_ids(items, key=lambda i: i.comments),
        top_by_shares=_top_ids(items, key=lambda i: i.shares),
    )


def annotation_topics(results: Sequence[ItemAnnotation], *, limit: int = 15) -> List[TopicStat]:
    """Annotation labels ranked by how many analyzed items carry them."""
    grouped: Dict[str, List[float]] = {}
    for result in results:
        for label in dict.fromkeys(result.annotation.labels):
            grouped.setdefault(label, []).append(result.item.engagement_rate)
    topics = [
        TopicStat(topic=label, frequency=len(rates), avg_engagement_rate=_avg(rates))
        for label, rates in grouped.items()
    ]
    topics.sort(key=lambda topic: topic.frequency, reverse=True)
    return topics[:limit]
