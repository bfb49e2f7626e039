"""Prompt construction for the insight synthesis call."""

from __future__ import annotations

import json
from typing import Dict, List, Sequence

from core import InsightFocus, ItemAnnotation, MetricsSummary

from .metrics import annotation_topics


BASE_SYSTEM_PROMPT = (
    "You are a short-form video content strategist. You receive engagement metrics "
    "for a creator's videos together with AI annotations of the best performing ones "
    "(visual labels, speech transcripts and scene changes). Identify what drives "
    "engagement and turn it into concrete, actionable recommendations. Always answer "
    "with a single valid JSON object and nothing else."
)

FOCUS_INSTRUCTIONS: Dict[InsightFocus, str] = {
    InsightFocus.CREATIVE: (
        "CREATIVE FOCUS: produce bold, original ideas. Prioritize creativity and visual "
        "impact, and suggest emerging trends and distinctive formats."
    ),
    InsightFocus.CONSERVATIVE: (
        "CONSERVATIVE FOCUS: produce proven, low-risk recommendations. Prioritize "
        "strategies that have worked consistently, incremental improvements and "
        "evergreen content."
    ),
    InsightFocus.ANALYTICAL: (
        "ANALYTICAL FOCUS: produce data-driven insights. Prioritize metrics, statistical "
        "patterns and quantitative evidence, and justify conclusions with numbers."
    ),
    InsightFocus.VIRAL: (
        "VIRAL FOCUS: produce ideas with high viral potential. Prioritize elements that "
        "maximize engagement, shares and reach: current trends, emotional hooks and "
        "shareable formats."
    ),
    InsightFocus.EDUCATIONAL: (
        "EDUCATIONAL FOCUS: produce valuable educational content. Prioritize clarity and "
        "usefulness: tutorials, practical tips and instructional formats."
    ),
}

RESPONSE_SCHEMA_HINT = """{
  "summary": "...",
  "patterns": ["..."],
  "main_topics": [{"topic": "...", "frequency": 0, "avg_engagement": 0.0}],
  "engagement_analysis": {"key_factors": ["..."], "recommendations": ["..."]},
  "recommendations": ["..."],
  "content_ideas": [{"title": "...", "concept": "...", "hashtags": ["..."], "reasoning": "..."}],
  "hashtag_strategy": {"top_hashtags": ["..."], "avoid": ["..."]},
  "music_strategy": {"recommendation": "...", "music_types": ["..."]},
  "optimal_format": {"duration": "...", "style": "...", "elements": ["..."]}
}"""


def system_instruction_for(focus: InsightFocus) -> str:
    instruction = FOCUS_INSTRUCTIONS.get(focus)
    if not instruction:
        return BASE_SYSTEM_PROMPT
    return f"{BASE_SYSTEM_PROMPT}\n\n{instruction}"


def _truncate(text: str, limit: int) -> str:
    text = (text or "").strip()
    return text if len(text) <= limit else text[:limit] + "..."


def _item_section(index: int, result: ItemAnnotation, *, transcript_chars: int, max_labels: int) -> str:
    item = result.item
    annotation = result.annotation
    labels = ", ".join(annotation.labels[:max_labels]) or "none detected"
    hashtags = " ".join(f"#{tag}" for tag in item.hashtags) or "none"
    transcript = _truncate(annotation.transcript, transcript_chars) or "no speech detected"
    lines = [
        f"### Video {index}: {item.id}",
        f"- Views: {item.views} | Likes: {item.likes} | Comments: {item.comments} | Shares: {item.shares}",
        f"- Engagement rate: {item.engagement_rate:.2%}",
        f"- Duration: {item.duration_seconds:g}s",
        f"- Description: {_truncate(item.description, 300) or 'n/a'}",
        f"- Hashtags: {hashtags}",
        f"- Visual labels: {labels}",
        f"- Transcript: {transcript}",
        f"- Scene changes: {annotation.shot_change_count}",
    ]
    return "\n".join(lines)


def build_prompt(
    results: Sequence[ItemAnnotation],
    summary: MetricsSummary,
    *,
    idea_count: int = 3,
    transcript_chars: int = 200,
    max_labels: int = 10,
) -> str:
    """User prompt with dataset statistics and one section per annotated item."""
    statistics = summary.model_dump(
        mode="json",
        include={
            "avg_views",
            "avg_likes",
            "avg_comments",
            "avg_shares",
            "avg_engagement_rate",
            "avg_hashtags_per_item",
            "optimal_duration",
            "duration_buckets",
        },
    )
    content = summary.model_dump(
        mode="json",
        include={
            "top_hashtags",
            "top_creators",
            "top_keywords",
            "avg_description_length",
            "original_music_count",
            "licensed_music_count",
        },
    )
    topics = [topic.model_dump(mode="json") for topic in annotation_topics(results)]
    sections: List[str] = [
        "# SHORT-FORM VIDEO PERFORMANCE ANALYSIS",
        "",
        "## 1. Dataset overview",
        f"- Total videos: {summary.total_items}",
        f"- Videos with likes: {summary.items_with_likes}",
        f"- Videos with comments: {summary.items_with_comments}",
        f"- Videos with shares: {summary.items_with_shares}",
        "",
        "### General statistics",
        json.dumps(statistics, ensure_ascii=False, indent=2),
        "",
        "### Content analysis",
        json.dumps(content, ensure_ascii=False, indent=2),
        "",
        f"## 2. AI annotation of the {len(results)} selected videos",
        "",
    ]
    for index, result in enumerate(results, start=1):
        sections.append(_item_section(index, result, transcript_chars=transcript_chars, max_labels=max_labels))
        sections.append("")
    sections.extend(
        [
            "### Recurring visual topics",
            json.dumps(topics, ensure_ascii=False, indent=2),
            "",
            "## 3. Task",
            "Cross the engagement metrics with the annotations above and explain which "
            "topics, formats, hooks, hashtags and music choices drive performance.",
            f"Propose exactly {idea_count} new content ideas grounded in the data.",
            "",
            "Respond ONLY with a JSON object with this structure:",
            RESPONSE_SCHEMA_HINT,
        ]
    )
    return "\n".join(sections)
