"""Ranking, metrics and synthesis stages of the analysis pipeline."""

from .metrics import annotation_topics, build_summary
from .normalize import extract_hashtags, normalize_record, normalize_records
from .prompts import build_prompt, system_instruction_for
from .selection import (
    apply_filters,
    dedup_items,
    select_distributed,
    select_top_by_engagement_rate,
    select_top_engagement,
)
from .synthesis import SynthesisEngine, extract_json_object, parse_insights

__all__ = [
    "annotation_topics",
    "apply_filters",
    "build_prompt",
    "build_summary",
    "dedup_items",
    "extract_hashtags",
    "extract_json_object",
    "normalize_record",
    "normalize_records",
    "parse_insights",
    "select_distributed",
    "select_top_by_engagement_rate",
    "select_top_engagement",
    "SynthesisEngine",
    "system_instruction_for",
]
