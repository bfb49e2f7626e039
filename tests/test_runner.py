from __future__ import annotations

import asyncio
import json
import logging
from typing import List, Optional, Sequence

import pytest

from core import AnalysisContext, AnnotationResult, CandidateItem, JobStage
from orchestrator.runner import StageRunner
from orchestrator.state_machine import STAGE_ORDER
from orchestrator.store import InMemoryJobStore
from pipeline.metrics import build_summary
from pipeline.synthesis import SynthesisEngine
from providers.base import Annotator, Fetcher, GenerationResult, TextGenerator
from storage.cache import MemoryAnnotationCache
from utils.exceptions import AnnotationError, CacheError, FetchError, InvalidJobState, JobNotFound, LLMError


VALID_INSIGHTS = json.dumps(
    {
        "summary": "Short tutorials outperform everything else",
        "recommendations": ["Post three tutorials a week"],
        "content_ideas": [
            {"title": "60s recipe", "concept": "Fast recipe", "hashtags": ["cocina"], "reasoning": "High saves"}
        ],
    }
)


class _FakeFetcher(Fetcher):
    def __init__(self, fail_ids: Sequence[str] = (), delay: float = 0.0) -> None:
        self.fail_ids = set(fail_ids)
        self.delay = delay
        self.calls: List[str] = []
        self.released: List[str] = []

    async def fetch(self, locator: str, *, item_id: str) -> str:
        self.calls.append(item_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if item_id in self.fail_ids:
            raise FetchError("video unavailable", item_id=item_id)
        return f"/tmp/{item_id}.mp4"

    async def release(self, artifact_ref: str) -> None:
        self.released.append(artifact_ref)


class _FakeAnnotator(Annotator):
    def __init__(self) -> None:
        self.calls: List[str] = []

    async def annotate(self, artifact_ref: str) -> AnnotationResult:
        self.calls.append(artifact_ref)
        return AnnotationResult(labels=["cooking", "kitchen"], transcript="hola a todos", shot_change_count=4)


class _FailingAnnotator(Annotator):
    async def annotate(self, artifact_ref: str) -> AnnotationResult:
        raise AnnotationError("unsupported codec", artifact_ref=artifact_ref)


class _FakeGenerator(TextGenerator):
    def __init__(self, text: str = VALID_INSIGHTS, error: Optional[Exception] = None) -> None:
        self.text = text
        self.error = error
        self.prompts: List[str] = []

    async def generate(self, prompt, *, system_instruction=None, temperature=0.7, max_tokens=4096):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return GenerationResult(text=self.text)


class _BrokenWriteCache(MemoryAnnotationCache):
    def put(self, item_id, entry):
        raise CacheError("disk full")


class _RecordingStore(InMemoryJobStore):
    def __init__(self) -> None:
        super().__init__()
        self.history = []

    def _mutate(self, job_id, fn, *, allow_terminal=False):
        job = super()._mutate(job_id, fn, allow_terminal=allow_terminal)
        self.history.append((job.stage, job.progress))
        return job


def _items(count: int) -> List[CandidateItem]:
    return [
        CandidateItem(
            id=f"v{i}",
            source_profile="chef",
            url=f"https://video.test/v{i}",
            views=1000 + i,
            likes=100 + i,
            comments=10,
            shares=5,
            description=f"Recipe {i} #cocina",
            hashtags=["cocina"],
        )
        for i in range(count)
    ]


def _setup(store: InMemoryJobStore, count: int, selected: Optional[List[str]] = None):
    items = _items(count)
    store.save_analysis(
        AnalysisContext(
            id="ana_1",
            owner_id="user_1",
            items=items,
            selected=items,
            summary=build_summary(items),
        )
    )
    ids = selected if selected is not None else [item.id for item in items]
    return store.create(owner_id="user_1", analysis_id="ana_1", selected_item_ids=ids)


def _runner(store, *, fetcher=None, annotator=None, generator=None, cache=None, **kwargs) -> StageRunner:
    generator = generator or _FakeGenerator()
    return StageRunner(
        store=store,
        cache=cache if cache is not None else MemoryAnnotationCache(),
        fetcher=fetcher or _FakeFetcher(),
        annotator=annotator or _FakeAnnotator(),
        synthesis=SynthesisEngine(generator, store=store),
        failure_threshold=kwargs.pop("failure_threshold", 0.5),
        fetch_timeout=kwargs.pop("fetch_timeout", 5.0),
        annotate_timeout=kwargs.pop("annotate_timeout", 5.0),
        logger=logging.getLogger("tests.runner"),
    )


@pytest.mark.asyncio
async def test_all_items_processed_then_completed() -> None:
    store = InMemoryJobStore()
    job = _setup(store, 3)
    fetcher = _FakeFetcher()

    final = await _runner(store, fetcher=fetcher).run_job(job.id)

    assert final.stage == JobStage.COMPLETED
    assert final.progress == 100
    assert final.failure_count == 0
    assert [r.item_id for r in final.annotation_results] == ["v0", "v1", "v2"]
    assert len(final.downloaded_items) == 3
    assert all(not r.from_cache for r in final.annotation_results)
    assert final.primary_insights is not None
    assert final.primary_insights.parsed_insights is not None
    assert final.primary_insights.parsed_insights.summary.startswith("Short tutorials")
    assert final.started_at is not None and final.completed_at is not None
    assert len(final.annotation_results) + final.failure_count == len(final.selected_item_ids)


@pytest.mark.asyncio
async def test_six_of_ten_failures_abort_with_threshold_message() -> None:
    store = InMemoryJobStore()
    job = _setup(store, 10)
    generator = _FakeGenerator()
    fetcher = _FakeFetcher(fail_ids=["v0", "v2", "v4", "v6", "v8", "v9"])

    final = await _runner(store, fetcher=fetcher, generator=generator).run_job(job.id)

    assert final.stage == JobStage.FAILED
    assert final.failure_count == 6
    assert len(final.annotation_results) == 4
    assert len(final.annotation_results) + final.failure_count == 10
    assert "threshold" in final.error_message.lower()
    assert "60%" in final.error_message
    assert generator.prompts == []
    assert final.primary_insights is None
    assert final.progress == 70


@pytest.mark.asyncio
async def test_abort_happens_as_soon_as_rate_crosses_threshold() -> None:
    store = InMemoryJobStore()
    job = _setup(store, 10)
    fetcher = _FakeFetcher(fail_ids=[f"v{i}" for i in range(6)])

    final = await _runner(store, fetcher=fetcher).run_job(job.id)

    assert final.stage == JobStage.FAILED
    assert final.failure_count == 6
    assert final.annotation_results == []
    assert fetcher.calls == [f"v{i}" for i in range(6)]
    assert final.progress == 42


@pytest.mark.asyncio
async def test_four_of_ten_failures_still_synthesize_remaining_six() -> None:
    store = InMemoryJobStore()
    job = _setup(store, 10)
    generator = _FakeGenerator()
    fetcher = _FakeFetcher(fail_ids=["v1", "v3", "v5", "v7"])

    final = await _runner(store, fetcher=fetcher, generator=generator).run_job(job.id)

    assert final.stage == JobStage.COMPLETED
    assert final.failure_count == 4
    assert len(final.annotation_results) == 6
    assert [f.item_id for f in final.item_failures] == ["v1", "v3", "v5", "v7"]
    assert len(generator.prompts) == 1
    assert generator.prompts[0].count("### Video ") == 6


@pytest.mark.asyncio
async def test_second_job_uses_cache_without_remote_calls() -> None:
    store = InMemoryJobStore()
    cache = MemoryAnnotationCache()
    first = _setup(store, 3)
    second = store.create(owner_id="user_1", analysis_id="ana_1", selected_item_ids=["v0", "v1", "v2"])

    fetcher = _FakeFetcher()
    annotator = _FakeAnnotator()
    done_first = await _runner(store, fetcher=fetcher, annotator=annotator, cache=cache).run_job(first.id)
    assert len(fetcher.calls) == 3

    fetcher_2 = _FakeFetcher()
    annotator_2 = _FakeAnnotator()
    done_second = await _runner(store, fetcher=fetcher_2, annotator=annotator_2, cache=cache).run_job(second.id)

    assert fetcher_2.calls == []
    assert annotator_2.calls == []
    assert done_second.stage == JobStage.COMPLETED
    assert all(r.from_cache for r in done_second.annotation_results)
    assert [r.annotation for r in done_second.annotation_results] == [
        r.annotation for r in done_first.annotation_results
    ]
    assert done_second.downloaded_items == []
    assert cache.size() == 3


@pytest.mark.asyncio
async def test_malformed_synthesis_json_still_completes() -> None:
    store = InMemoryJobStore()
    job = _setup(store, 2)
    generator = _FakeGenerator(text="Sorry, here are my thoughts: tutorials work well.")

    final = await _runner(store, generator=generator).run_job(job.id)

    assert final.stage == JobStage.COMPLETED
    assert final.primary_insights.raw_response == "Sorry, here are my thoughts: tutorials work well."
    assert final.primary_insights.parsed_insights is None


@pytest.mark.asyncio
async def test_generation_error_fails_job_and_freezes_progress() -> None:
    store = InMemoryJobStore()
    job = _setup(store, 2)
    generator = _FakeGenerator(error=LLMError("quota exceeded", provider="gemini"))

    final = await _runner(store, generator=generator).run_job(job.id)

    assert final.stage == JobStage.FAILED
    assert "quota exceeded" in final.error_message
    assert final.progress == 75
    assert len(final.annotation_results) == 2


@pytest.mark.asyncio
async def test_stage_and_progress_never_move_backwards() -> None:
    store = _RecordingStore()
    job = _setup(store, 4)
    await _runner(store, fetcher=_FakeFetcher(fail_ids=["v2"])).run_job(job.id)

    stages = [STAGE_ORDER[stage] for stage, _ in store.history]
    progress = [value for _, value in store.history]
    assert stages == sorted(stages)
    assert progress == sorted(progress)
    assert store.history[-1] == (JobStage.COMPLETED, 100)


@pytest.mark.asyncio
async def test_fetch_timeout_counts_as_item_failure() -> None:
    store = InMemoryJobStore()
    job = _setup(store, 1)
    runner = _runner(store, fetcher=_FakeFetcher(delay=1.0), fetch_timeout=0.01, failure_threshold=1.0)

    final = await runner.run_job(job.id)

    assert final.failure_count == 1
    assert "timed out" in final.item_failures[0].error
    assert final.stage == JobStage.COMPLETED


@pytest.mark.asyncio
async def test_cache_write_failure_keeps_annotation() -> None:
    store = InMemoryJobStore()
    job = _setup(store, 2)

    final = await _runner(store, cache=_BrokenWriteCache()).run_job(job.id)

    assert final.stage == JobStage.COMPLETED
    assert final.failure_count == 0
    assert len(final.annotation_results) == 2


@pytest.mark.asyncio
async def test_item_missing_from_analysis_is_a_failure() -> None:
    store = InMemoryJobStore()
    job = _setup(store, 3, selected=["v0", "ghost", "v1"])

    final = await _runner(store).run_job(job.id)

    assert final.stage == JobStage.COMPLETED
    assert final.failure_count == 1
    assert final.item_failures[0].item_id == "ghost"
    assert [r.item_id for r in final.annotation_results] == ["v0", "v1"]


@pytest.mark.asyncio
async def test_run_job_preconditions() -> None:
    store = InMemoryJobStore()
    job = _setup(store, 1)
    runner = _runner(store)
    await runner.run_job(job.id)

    with pytest.raises(InvalidJobState):
        await runner.run_job(job.id)
    with pytest.raises(JobNotFound):
        await runner.run_job("job_missing")


@pytest.mark.asyncio
async def test_concurrent_jobs_keep_their_own_order() -> None:
    store = InMemoryJobStore()
    cache = MemoryAnnotationCache()
    first = _setup(store, 4)
    second = store.create(owner_id="user_1", analysis_id="ana_1", selected_item_ids=["v3", "v2", "v1", "v0"])
    runner = _runner(store, fetcher=_FakeFetcher(delay=0.001), cache=cache)

    done_first, done_second = await asyncio.gather(runner.run_job(first.id), runner.run_job(second.id))

    assert [r.item_id for r in done_first.annotation_results] == ["v0", "v1", "v2", "v3"]
    assert [r.item_id for r in done_second.annotation_results] == ["v3", "v2", "v1", "v0"]
    assert done_first.stage == done_second.stage == JobStage.COMPLETED
    assert cache.size() == 4


@pytest.mark.asyncio
async def test_downloaded_artifacts_are_released_after_annotation() -> None:
    store = InMemoryJobStore()
    job = _setup(store, 3)
    fetcher = _FakeFetcher(fail_ids=["v1"])

    final = await _runner(store, fetcher=fetcher, failure_threshold=1.0).run_job(job.id)

    assert final.stage == JobStage.COMPLETED
    assert fetcher.released == [d.artifact_ref for d in final.downloaded_items]
    assert fetcher.released == ["/tmp/v0.mp4", "/tmp/v2.mp4"]


@pytest.mark.asyncio
async def test_artifact_released_when_annotation_fails() -> None:
    store = InMemoryJobStore()
    job = _setup(store, 2)
    fetcher = _FakeFetcher()

    final = await _runner(store, fetcher=fetcher, annotator=_FailingAnnotator()).run_job(job.id)

    assert final.stage == JobStage.FAILED
    assert final.failure_count == 2
    assert "unsupported codec" in final.item_failures[0].error
    assert fetcher.released == ["/tmp/v0.mp4", "/tmp/v1.mp4"]


@pytest.mark.asyncio
async def test_missing_analysis_fails_job_instead_of_leaving_it_queued() -> None:
    store = InMemoryJobStore()
    job = store.create(owner_id="user_1", analysis_id="ana_gone", selected_item_ids=["v0"])
    fetcher = _FakeFetcher()

    final = await _runner(store, fetcher=fetcher).run_job(job.id)

    assert final.stage == JobStage.FAILED
    assert "not found" in final.error_message.lower()
    assert final.progress == 0
    assert fetcher.calls == []
    assert store.get(job.id).stage == JobStage.FAILED
    with pytest.raises(InvalidJobState):
        await _runner(store).run_job(job.id)


@pytest.mark.asyncio
async def test_cache_entry_keeps_item_metadata() -> None:
    store = InMemoryJobStore()
    cache = MemoryAnnotationCache()
    job = _setup(store, 1)

    await _runner(store, cache=cache).run_job(job.id)

    entry = cache.get("v0")
    assert entry is not None
    assert entry.metadata.description == "Recipe 0 #cocina"
    assert entry.metadata.hashtags == ["cocina"]
    assert entry.metadata.music_title is None
    assert entry.metrics.likes == 100
