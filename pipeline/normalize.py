"""Normalization of raw scraper records into CandidateItems."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional

from core import CandidateItem


logger = logging.getLogger(__name__)

_HASHTAG_RE = re.compile(r"#([\w\u00C0-\u017F]+)")
_ID_KEYS = ("id", "videoId", "video_id", "aweme_id")
_URL_KEYS = ("webVideoUrl", "url", "videoWebUrl", "shareUrl")
_DOWNLOAD_KEYS = ("videoUrl", "downloadUrl", "download_url", "mp4")


def _first(record: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None


def _nested(record: Mapping[str, Any], *path: str) -> Any:
    current: Any = record
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def _count(record: Mapping[str, Any], *keys: str) -> int:
    stats = record.get("stats") if isinstance(record.get("stats"), Mapping) else {}
    for key in keys:
        for source in (record, stats):
            value = source.get(key)
            if value in (None, ""):
                continue
            try:
                return max(0, int(float(value)))
            except (TypeError, ValueError):
                continue
    return 0


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip().replace("Z", "+00:00")
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def extract_hashtags(text: str) -> List[str]:
    """Lower-cased hashtags in first-seen order, without the leading '#'."""
    seen: List[str] = []
    for match in _HASHTAG_RE.findall(text or ""):
        tag = match.lower()
        if tag not in seen:
            seen.append(tag)
    return seen


def _hashtags(record: Mapping[str, Any], description: str) -> List[str]:
    tags = extract_hashtags(description)
    for raw in record.get("hashtags") or []:
        name = raw.get("name") if isinstance(raw, Mapping) else raw
        tag = str(name or "").strip().lstrip("#").lower()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def normalize_record(record: Mapping[str, Any], *, source_profile: Optional[str] = None) -> Optional[CandidateItem]:
    """Map one raw record to a CandidateItem. Returns None when the record has no id."""
    item_id = _first(record, _ID_KEYS)
    if item_id is None:
        return None

    description = str(_first(record, ("text", "description", "desc")) or "")
    profile = (
        source_profile
        or _nested(record, "authorMeta", "name")
        or record.get("profile")
        or record.get("source_profile")
        or ""
    )
    duration = (
        _nested(record, "videoMeta", "duration")
        or _nested(record, "video", "duration")
        or record.get("duration")
        or record.get("duration_seconds")
        or 0
    )
    download_url = _first(record, _DOWNLOAD_KEYS) or _nested(record, "videoMeta", "downloadAddr")
    music = record.get("musicMeta") if isinstance(record.get("musicMeta"), Mapping) else {}

    try:
        duration_seconds = float(duration)
    except (TypeError, ValueError):
        duration_seconds = 0.0

    return CandidateItem(
        id=str(item_id),
        source_profile=str(profile),
        url=str(_first(record, _URL_KEYS) or ""),
        download_url=str(download_url) if download_url else None,
        views=_count(record, "playCount", "views"),
        likes=_count(record, "diggCount", "likes"),
        comments=_count(record, "commentCount", "comments"),
        shares=_count(record, "shareCount", "shares"),
        saves=_count(record, "collectCount", "saves"),
        duration_seconds=duration_seconds,
        published_at=_parse_datetime(_first(record, ("createTimeISO", "published_at", "uploadDate", "createTime"))),
        description=description,
        hashtags=_hashtags(record, description),
        music_title=music.get("musicName") or None,
        music_original=music.get("musicOriginal") if "musicOriginal" in music else None,
    )


def normalize_records(
    records: Iterable[Mapping[str, Any]],
    *,
    source_profile: Optional[str] = None,
) -> List[CandidateItem]:
    """Normalize a batch, skipping records without an identifier."""
    items: List[CandidateItem] = []
    skipped = 0
    for record in records:
        item = normalize_record(record, source_profile=source_profile)
        if item is None:
            skipped += 1
            continue
        items.append(item)
    if skipped:
        logger.warning("normalize skipped=%s records without id", skipped)
    return items
