"""Orchestrator service layer: analysis preparation, admission, job queue and runs."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from admission import AdmissionGate, CreditLedger, InMemoryCreditLedger, credits_for_annotation, credits_for_selection
from config import get_credit_settings, get_pipeline_settings, get_selection_settings, get_synthesis_settings
from core import AnalysisContext, AnalysisMode, CandidateItem, InsightFocus, Job, SynthesisOptions
from pipeline.metrics import build_summary
from pipeline.normalize import normalize_records
from pipeline.selection import (
    apply_filters,
    dedup_items,
    select_distributed,
    select_top_by_engagement_rate,
    select_top_engagement,
)
from pipeline.synthesis import SynthesisEngine
from providers.base import Annotator, Fetcher, TextGenerator
from storage.cache import BaseAnnotationCache, get_annotation_cache
from utils.exceptions import InsufficientCredits, InvalidSelection

from .queue import InMemoryJobQueue
from .runner import StageRunner
from .store import InMemoryJobStore


logger = logging.getLogger(__name__)


def default_synthesis_options(
    *,
    focus: Optional[InsightFocus] = None,
    temperature: Optional[float] = None,
    idea_count: Optional[int] = None,
) -> SynthesisOptions:
    """Synthesis options with configured defaults for anything not given."""
    settings = get_synthesis_settings()
    return SynthesisOptions(
        focus=focus or InsightFocus(settings.focus),
        temperature=settings.temperature if temperature is None else temperature,
        idea_count=idea_count or settings.idea_count,
        max_tokens=settings.max_tokens,
    )


class JobOrchestrator:
    """Central entry point for analysis contexts, credit-gated job creation and runs.

    Providers are created lazily from configuration unless injected.
    """

    def __init__(
        self,
        *,
        store: Optional[InMemoryJobStore] = None,
        queue: Optional[InMemoryJobQueue] = None,
        ledger: Optional[CreditLedger] = None,
        cache: Optional[BaseAnnotationCache] = None,
        fetcher: Optional[Fetcher] = None,
        annotator: Optional[Annotator] = None,
        text_generator: Optional[TextGenerator] = None,
    ) -> None:
        self._store = store or InMemoryJobStore()
        self._queue = queue or InMemoryJobQueue()
        self._gate = AdmissionGate(ledger or InMemoryCreditLedger(initial_balance=get_credit_settings().initial_balance))
        self._cache = cache
        self._fetcher = fetcher
        self._annotator = annotator
        self._text_generator = text_generator
        self._synthesis: Optional[SynthesisEngine] = None
        self._runner: Optional[StageRunner] = None

    @property
    def store(self) -> InMemoryJobStore:
        return self._store

    @property
    def ledger(self) -> CreditLedger:
        return self._gate.ledger

    @property
    def synthesis(self) -> SynthesisEngine:
        if self._synthesis is None:
            if self._text_generator is None:
                from providers.text_generator import LLMTextGenerator
                self._text_generator = LLMTextGenerator()
            pipeline = get_pipeline_settings()
            self._synthesis = SynthesisEngine(
                self._text_generator,
                store=self._store,
                generate_timeout=pipeline.generate_timeout,
                transcript_chars=pipeline.transcript_excerpt_chars,
                max_labels=pipeline.max_labels_per_item,
            )
        return self._synthesis

    @property
    def runner(self) -> StageRunner:
        if self._runner is None:
            if self._fetcher is None:
                from providers.fetcher import HttpFetcher
                self._fetcher = HttpFetcher()
            if self._annotator is None:
                from providers.annotator import VideoIntelligenceAnnotator
                self._annotator = VideoIntelligenceAnnotator()
            self._runner = StageRunner(
                store=self._store,
                cache=self._cache or get_annotation_cache(),
                fetcher=self._fetcher,
                annotator=self._annotator,
                synthesis=self.synthesis,
            )
        return self._runner

    def prepare_analysis(
        self,
        owner_id: str,
        records: Iterable[Mapping[str, Any]],
        *,
        mode: AnalysisMode = AnalysisMode.PROFILE,
        source_profile: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None,
        total: Optional[int] = None,
    ) -> AnalysisContext:
        """Normalize scraped records, charge the scrape batch and store the ranked context."""
        records = list(records)
        items = dedup_items(normalize_records(records, source_profile=source_profile))
        if filters:
            items = apply_filters(items, **filters)

        analysis_id = self._store.new_analysis_id()
        cost = credits_for_selection(len(records))
        self._gate.charge(owner_id, cost, f"Scrape of {len(records)} items", resource_id=analysis_id)

        selected = self._select(items, mode, total)
        context = AnalysisContext(
            id=analysis_id,
            owner_id=owner_id,
            mode=mode,
            source_profiles=list(dict.fromkeys(item.source_profile for item in items if item.source_profile)),
            items=items,
            selected=selected,
            summary=build_summary(items),
        )
        logger.info(
            "analysis prepared id=%s mode=%s items=%s selected=%s credits=%s",
            analysis_id,
            mode.value,
            len(items),
            len(selected),
            cost,
        )
        return self._store.save_analysis(context)

    def _select(self, items: Sequence[CandidateItem], mode: AnalysisMode, total: Optional[int]) -> List[CandidateItem]:
        settings = get_selection_settings()
        if mode == AnalysisMode.COMPETITOR:
            return select_distributed(items, total=total or settings.distributed_total)
        if mode == AnalysisMode.CATEGORY:
            return select_top_by_engagement_rate(items, limit=total or settings.category_top_n)
        return select_top_engagement(items, pool_size=settings.likes_pool_size, top_n=total or settings.top_n)

    def create_job(
        self,
        owner_id: str,
        analysis_id: str,
        item_ids: Optional[Sequence[str]] = None,
    ) -> Job:
        """Validate the selection, charge the annotation batch once and enqueue a QUEUED job."""
        analysis = self._store.get_analysis(analysis_id)
        if analysis.owner_id != owner_id:
            raise InvalidSelection(f"Analysis {analysis_id} does not belong to {owner_id}")

        ids = list(item_ids) if item_ids is not None else [item.id for item in analysis.selected]
        if not ids:
            raise InvalidSelection("Select at least one item to analyze")
        if len(set(ids)) != len(ids):
            raise InvalidSelection("Selected item ids must be unique")
        unknown = [item_id for item_id in ids if analysis.find_item(item_id) is None]
        if unknown:
            raise InvalidSelection("Selected items are not part of the analysis", {"unknown": unknown})

        cost = credits_for_annotation(len(ids))
        self._gate.check(owner_id, cost)
        job = self._store.create(
            owner_id=owner_id,
            analysis_id=analysis_id,
            selected_item_ids=ids,
            credits_charged=cost,
        )
        try:
            self._gate.ledger.consume(owner_id, cost, f"Analysis of {len(ids)} items", resource_id=job.id)
        except InsufficientCredits:
            self._store.delete(job.id)
            raise

        self._queue.push(job.id)
        logger.info("job created id=%s owner=%s items=%s credits=%s", job.id, owner_id, len(ids), cost)
        return job

    async def run_job(self, job_id: str, options: Optional[SynthesisOptions] = None) -> Job:
        self._queue.discard(job_id)
        return await self.runner.run_job(job_id, options or default_synthesis_options())

    async def run_next(self, options: Optional[SynthesisOptions] = None) -> Optional[Job]:
        """Worker-facing: run the oldest queued job, or None when idle."""
        job_id = self._queue.pop()
        if job_id is None:
            return None
        return await self.runner.run_job(job_id, options or default_synthesis_options())

    async def run_pending(self, *, max_concurrent: int = 4) -> List[Job]:
        """Drain the queue, running up to max_concurrent jobs at once."""
        semaphore = asyncio.Semaphore(max(1, max_concurrent))
        job_ids: List[str] = []
        while True:
            job_id = self._queue.pop()
            if job_id is None:
                break
            job_ids.append(job_id)

        async def _run(job_id: str) -> Job:
            async with semaphore:
                return await self.runner.run_job(job_id, default_synthesis_options())

        results = await asyncio.gather(*(_run(job_id) for job_id in job_ids), return_exceptions=True)
        jobs: List[Job] = []
        for job_id, result in zip(job_ids, results):
            if isinstance(result, BaseException):
                logger.error("queued job %s failed to run: %s", job_id, result)
                continue
            jobs.append(result)
        return jobs

    async def regenerate_insights(
        self,
        job_id: str,
        *,
        focus: Optional[InsightFocus] = None,
        temperature: Optional[float] = None,
        idea_count: Optional[int] = None,
        save_as_variant: bool = True,
        variant_name: Optional[str] = None,
    ) -> Job:
        """Re-run synthesis on a finished job, as a new variant or over the primary result."""
        options = default_synthesis_options(focus=focus, temperature=temperature, idea_count=idea_count)
        return await self.synthesis.regenerate(
            job_id,
            options,
            variant=save_as_variant,
            variant_name=variant_name,
        )

    def get_job(self, job_id: str) -> Job:
        return self._store.get(job_id)

    def list_jobs(self, owner_id: Optional[str] = None) -> List[Job]:
        return self._store.list_jobs(owner_id)

    def get_analysis(self, analysis_id: str) -> AnalysisContext:
        return self._store.get_analysis(analysis_id)

    def pending_jobs(self) -> List[str]:
        return [job_id for job_id, _ in self._queue.pending()]

    async def aclose(self) -> None:
        for provider in (self._fetcher, self._annotator, self._text_generator):
            if provider is not None:
                await provider.aclose()


_DEFAULT_ORCHESTRATOR: Optional[JobOrchestrator] = None


def get_default_orchestrator() -> JobOrchestrator:
    global _DEFAULT_ORCHESTRATOR
    if _DEFAULT_ORCHESTRATOR is None:
        _DEFAULT_ORCHESTRATOR = JobOrchestrator()
    return _DEFAULT_ORCHESTRATOR


def prepare_analysis(owner_id: str, records: Iterable[Mapping[str, Any]], **kwargs: Any) -> AnalysisContext:
    return get_default_orchestrator().prepare_analysis(owner_id, records, **kwargs)


def create_job(owner_id: str, analysis_id: str, item_ids: Optional[Sequence[str]] = None) -> Job:
    return get_default_orchestrator().create_job(owner_id, analysis_id, item_ids)


def get_job(job_id: str) -> Job:
    return get_default_orchestrator().get_job(job_id)


async def run_job(job_id: str, options: Optional[SynthesisOptions] = None) -> Job:
    return await get_default_orchestrator().run_job(job_id, options)


async def regenerate_insights(job_id: str, **kwargs: Any) -> Job:
    return await get_default_orchestrator().regenerate_insights(job_id, **kwargs)
