"""Credit pricing buckets for billable pipeline stages."""

from __future__ import annotations

import math
from typing import Optional

from config import get_credit_settings


def credits_for_selection(item_count: int, *, items_per_credit: Optional[int] = None) -> int:
    """Scrape/selection batch: one credit per started bucket of items."""
    per_credit = items_per_credit or get_credit_settings().items_per_scrape_credit
    return math.ceil(max(0, int(item_count)) / per_credit)


def credits_for_annotation(selected_count: int, *, items_per_credit: Optional[int] = None) -> int:
    """Deep-analysis batch: one credit per started bucket of selected items."""
    per_credit = items_per_credit or get_credit_settings().items_per_annotation_credit
    return math.ceil(max(0, int(selected_count)) / per_credit)
