from __future__ import annotations

import json
from typing import List

import pytest

from admission import InMemoryCreditLedger
from core import AnalysisMode, AnnotationResult, InsightFocus, JobStage
from orchestrator import JobOrchestrator
from providers.base import Annotator, Fetcher, GenerationResult, TextGenerator
from storage.cache import MemoryAnnotationCache
from utils.exceptions import AnalysisNotFound, InsufficientCredits, InvalidSelection


class _Fetcher(Fetcher):
    async def fetch(self, locator: str, *, item_id: str) -> str:
        return f"/tmp/{item_id}.mp4"


class _Annotator(Annotator):
    async def annotate(self, artifact_ref: str) -> AnnotationResult:
        return AnnotationResult(labels=["dance"], transcript="vamos", shot_change_count=6)


class _Generator(TextGenerator):
    def __init__(self) -> None:
        self.calls: List[str] = []

    async def generate(self, prompt, *, system_instruction=None, temperature=0.7, max_tokens=4096):
        self.calls.append(system_instruction)
        return GenerationResult(text=json.dumps({"summary": f"call {len(self.calls)}"}))


def _records(count: int, profile: str = "dancer") -> List[dict]:
    return [
        {
            "id": f"{profile}_{i}",
            "text": f"Paso {i} #baile",
            "authorMeta": {"name": profile},
            "webVideoUrl": f"https://video.test/{profile}/{i}",
            "playCount": 10_000 + i,
            "diggCount": 100 * (i + 1),
            "commentCount": i,
            "shareCount": 2 * i,
        }
        for i in range(count)
    ]


def _orchestrator(balance: int = 0) -> JobOrchestrator:
    ledger = InMemoryCreditLedger()
    if balance:
        ledger.grant("u1", balance)
    return JobOrchestrator(
        ledger=ledger,
        cache=MemoryAnnotationCache(),
        fetcher=_Fetcher(),
        annotator=_Annotator(),
        text_generator=_Generator(),
    )


def test_prepare_analysis_charges_selection_credits() -> None:
    orchestrator = _orchestrator(balance=10)

    analysis = orchestrator.prepare_analysis("u1", _records(60))

    assert orchestrator.ledger.balance("u1") == 8
    assert len(analysis.items) == 60
    assert len(analysis.selected) == 5
    assert analysis.summary.total_items == 60
    assert analysis.source_profiles == ["dancer"]
    assert orchestrator.ledger.history("u1")[-1].resource_id == analysis.id


def test_prepare_analysis_without_credits_stores_nothing() -> None:
    orchestrator = _orchestrator()

    with pytest.raises(InsufficientCredits):
        orchestrator.prepare_analysis("u1", _records(3))

    assert orchestrator.store.list_analyses("u1") == []


def test_prepare_analysis_dedups_repeated_ids_in_profile_mode() -> None:
    orchestrator = _orchestrator(balance=10)
    records = _records(6) + _records(6)

    analysis = orchestrator.prepare_analysis("u1", records, mode=AnalysisMode.PROFILE)

    ids = [item.id for item in analysis.items]
    selected = [item.id for item in analysis.selected]
    assert ids == [f"dancer_{i}" for i in range(6)]
    assert len(selected) == len(set(selected)) == 5
    assert analysis.summary.total_items == 6
    assert orchestrator.ledger.balance("u1") == 9

    job = orchestrator.create_job("u1", analysis.id)
    assert job.selected_item_ids == selected


def test_competitor_mode_uses_distributed_selection() -> None:
    orchestrator = _orchestrator(balance=10)
    records = _records(10, "alpha") + _records(10, "beta")

    analysis = orchestrator.prepare_analysis("u1", records, mode=AnalysisMode.COMPETITOR, total=4)

    assert [item.source_profile for item in analysis.selected] == ["alpha", "alpha", "beta", "beta"]


def test_create_job_charges_once_and_enqueues() -> None:
    orchestrator = _orchestrator(balance=10)
    analysis = orchestrator.prepare_analysis("u1", _records(8))

    job = orchestrator.create_job("u1", analysis.id)

    assert job.stage == JobStage.QUEUED
    assert job.credits_charged == 2
    assert job.selected_item_ids == [item.id for item in analysis.selected]
    assert orchestrator.ledger.balance("u1") == 10 - 1 - 2
    assert orchestrator.pending_jobs() == [job.id]
    assert [txn.resource_id for txn in orchestrator.ledger.history("u1")][-1] == job.id


def test_create_job_insufficient_credits_leaves_no_job() -> None:
    orchestrator = _orchestrator(balance=1)
    analysis = orchestrator.prepare_analysis("u1", _records(8))

    with pytest.raises(InsufficientCredits) as exc_info:
        orchestrator.create_job("u1", analysis.id)

    assert exc_info.value.required == 2
    assert exc_info.value.available == 0
    assert orchestrator.list_jobs("u1") == []
    assert orchestrator.pending_jobs() == []
    assert orchestrator.ledger.balance("u1") == 0


@pytest.mark.parametrize(
    "item_ids",
    [[], ["dancer_0", "dancer_0"], ["dancer_0", "ghost"]],
)
def test_create_job_rejects_bad_selection(item_ids) -> None:
    orchestrator = _orchestrator(balance=10)
    analysis = orchestrator.prepare_analysis("u1", _records(8))

    with pytest.raises(InvalidSelection):
        orchestrator.create_job("u1", analysis.id, item_ids)

    assert orchestrator.ledger.balance("u1") == 9


def test_create_job_checks_owner_and_analysis() -> None:
    orchestrator = _orchestrator(balance=10)
    analysis = orchestrator.prepare_analysis("u1", _records(3))

    with pytest.raises(InvalidSelection):
        orchestrator.create_job("intruder", analysis.id)
    with pytest.raises(AnalysisNotFound):
        orchestrator.create_job("u1", "ana_missing")


@pytest.mark.asyncio
async def test_end_to_end_run_and_regenerate() -> None:
    orchestrator = _orchestrator(balance=10)
    analysis = orchestrator.prepare_analysis("u1", _records(8))
    job = orchestrator.create_job("u1", analysis.id, ["dancer_7", "dancer_6"])

    done = await orchestrator.run_job(job.id)

    assert done.stage == JobStage.COMPLETED
    assert done.progress == 100
    assert [r.item_id for r in done.annotation_results] == ["dancer_7", "dancer_6"]
    assert done.primary_insights.parsed_insights.summary == "call 1"
    assert orchestrator.pending_jobs() == []

    regenerated = await orchestrator.regenerate_insights(job.id, focus=InsightFocus.VIRAL, variant_name="viral")

    assert regenerated.primary_insights.parsed_insights.summary == "call 1"
    assert regenerated.insight_variants[0].name == "viral"
    assert regenerated.insight_variants[0].insights.parsed_insights.summary == "call 2"
    assert regenerated.insight_variants[0].insights.focus == InsightFocus.VIRAL
    assert orchestrator.ledger.balance("u1") == 10 - 1 - 1


@pytest.mark.asyncio
async def test_run_next_and_run_pending_drain_queue() -> None:
    orchestrator = _orchestrator(balance=20)
    analysis = orchestrator.prepare_analysis("u1", _records(8))
    first = orchestrator.create_job("u1", analysis.id, ["dancer_0"])
    second = orchestrator.create_job("u1", analysis.id, ["dancer_1", "dancer_2"])
    third = orchestrator.create_job("u1", analysis.id, ["dancer_3"])

    ran = await orchestrator.run_next()
    assert ran.id == first.id

    finished = await orchestrator.run_pending(max_concurrent=2)

    assert sorted(job.id for job in finished) == sorted([second.id, third.id])
    assert all(job.stage == JobStage.COMPLETED for job in finished)
    assert await orchestrator.run_next() is None


@pytest.mark.asyncio
async def test_run_pending_skips_job_deleted_while_queued() -> None:
    orchestrator = _orchestrator(balance=20)
    analysis = orchestrator.prepare_analysis("u1", _records(4))
    deleted = orchestrator.create_job("u1", analysis.id, ["dancer_0"])
    kept = orchestrator.create_job("u1", analysis.id, ["dancer_1"])
    assert orchestrator.store.delete(deleted.id) is True

    finished = await orchestrator.run_pending(max_concurrent=2)

    assert [job.id for job in finished] == [kept.id]
    assert finished[0].stage == JobStage.COMPLETED
    assert orchestrator.pending_jobs() == []
