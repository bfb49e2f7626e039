"""Ranking and selection of the high-value working set."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from core import CandidateItem


def select_top_engagement(
    items: Sequence[CandidateItem],
    *,
    pool_size: int = 10,
    top_n: int = 5,
) -> List[CandidateItem]:
    """Two-stage selection: top pool by likes, then re-ranked by comments + shares.

    Items without likes are excluded. Both sorts are stable, so ties keep the
    order of the previous stage.
    """
    liked = [item for item in items if item.likes > 0]
    pool = sorted(liked, key=lambda item: item.likes, reverse=True)[: max(0, pool_size)]
    reranked = sorted(pool, key=lambda item: item.comments + item.shares, reverse=True)
    return reranked[: max(0, top_n)]


def select_top_by_engagement_rate(items: Sequence[CandidateItem], *, limit: int) -> List[CandidateItem]:
    return sorted(items, key=lambda item: item.engagement_rate, reverse=True)[: max(0, limit)]


def select_distributed(items: Sequence[CandidateItem], *, total: int) -> List[CandidateItem]:
    """Balanced selection across source profiles.

    Each profile contributes up to ceil(total / profile_count) of its best items
    by engagement rate; groups are concatenated in first-seen profile order and
    the result is truncated to total.
    """
    if total <= 0 or not items:
        return []
    groups: Dict[str, List[CandidateItem]] = {}
    for item in items:
        groups.setdefault(item.source_profile, []).append(item)

    per_source = math.ceil(total / len(groups))
    selected: List[CandidateItem] = []
    for group in groups.values():
        selected.extend(select_top_by_engagement_rate(group, limit=per_source))
    return selected[:total]


def dedup_items(items: Sequence[CandidateItem]) -> List[CandidateItem]:
    """Drop repeated ids, keeping the first occurrence."""
    seen = set()
    unique: List[CandidateItem] = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        unique.append(item)
    return unique


def apply_filters(
    items: Sequence[CandidateItem],
    *,
    min_views: Optional[int] = None,
    min_engagement_rate: Optional[float] = None,
    published_from: Optional[datetime] = None,
    published_to: Optional[datetime] = None,
) -> List[CandidateItem]:
    out: List[CandidateItem] = []
    for item in items:
        if min_views is not None and item.views < min_views:
            continue
        if min_engagement_rate is not None and item.engagement_rate < min_engagement_rate:
            continue
        if published_from is not None or published_to is not None:
            # Undated items cannot satisfy a date window.
            if item.published_at is None:
                continue
            if published_from is not None and item.published_at < published_from:
                continue
            if published_to is not None and item.published_at > published_to:
                continue
        out.append(item)
    return out
