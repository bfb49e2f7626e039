from __future__ import annotations

from pipeline.normalize import extract_hashtags, normalize_record, normalize_records


def _raw(**overrides):
    record = {
        "id": "7301",
        "text": "Receta fácil de paella #Cocina #recetas #cocina",
        "authorMeta": {"name": "chef_ana"},
        "webVideoUrl": "https://www.tiktok.com/@chef_ana/video/7301",
        "videoUrl": "https://cdn.test/7301.mp4",
        "playCount": 12000,
        "diggCount": 900,
        "commentCount": 45,
        "shareCount": 30,
        "collectCount": 12,
        "videoMeta": {"duration": 27},
        "createTimeISO": "2024-05-02T10:00:00.000Z",
        "musicMeta": {"musicName": "sonido original", "musicOriginal": True},
        "hashtags": [{"name": "recetas"}, {"name": "paella"}],
    }
    record.update(overrides)
    return record


def test_extract_hashtags_lowercases_and_dedupes() -> None:
    assert extract_hashtags("#Año nuevo #año #Fiesta2024 no#tag") == ["año", "fiesta2024", "tag"]
    assert extract_hashtags("") == []


def test_normalize_scraper_record() -> None:
    item = normalize_record(_raw())

    assert item.id == "7301"
    assert item.source_profile == "chef_ana"
    assert item.url.endswith("/video/7301")
    assert item.locator == "https://cdn.test/7301.mp4"
    assert (item.views, item.likes, item.comments, item.shares, item.saves) == (12000, 900, 45, 30, 12)
    assert item.duration_seconds == 27
    assert item.published_at.year == 2024
    assert item.published_at.tzinfo is not None
    assert item.hashtags == ["cocina", "recetas", "paella"]
    assert item.music_title == "sonido original"
    assert item.music_original is True


def test_nested_stats_and_missing_fields() -> None:
    record = {"videoId": 42, "stats": {"playCount": "1500", "diggCount": 75}, "url": "https://x.test/42"}

    item = normalize_record(record, source_profile="forced")

    assert item.id == "42"
    assert item.source_profile == "forced"
    assert item.views == 1500
    assert item.likes == 75
    assert item.comments == 0
    assert item.download_url is None
    assert item.locator == "https://x.test/42"
    assert item.published_at is None
    assert item.music_original is None


def test_negative_and_garbage_counts_become_zero() -> None:
    item = normalize_record(_raw(playCount=-5, diggCount="lots"))

    assert item.views == 0
    assert item.likes == 0


def test_records_without_id_are_skipped() -> None:
    items = normalize_records([_raw(), {"text": "no id"}, _raw(id="7302")])

    assert [item.id for item in items] == ["7301", "7302"]
