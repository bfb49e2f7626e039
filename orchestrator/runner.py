"""Stage runner: drives one job through fetch, annotate and synthesize."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Union

from config import get_pipeline_settings
from core import (
    AnalysisContext,
    AnnotationCacheEntry,
    AnnotationResult,
    CandidateItem,
    DownloadedItem,
    ItemAnnotation,
    ItemMetadata,
    Job,
    JobStage,
    MetricsSnapshot,
    SynthesisOptions,
    WriteMode,
)
from pipeline.synthesis import SynthesisEngine
from providers.base import Annotator, Fetcher
from storage.cache import BaseAnnotationCache
from utils.exceptions import (
    AnalysisNotFound,
    AnnotationError,
    FetchError,
    InvalidJobState,
    ItemFailure,
    SynthesisFailure,
    ThresholdExceeded,
)
from utils.logger import get_job_logger, get_runner_logger

from .state_machine import failure_threshold_exceeded, item_progress
from .store import InMemoryJobStore


LoggerLike = Union[logging.Logger, logging.LoggerAdapter]


class StageRunner:
    """Sequential per-job pipeline. Holds no store lock across provider calls."""

    def __init__(
        self,
        *,
        store: InMemoryJobStore,
        cache: BaseAnnotationCache,
        fetcher: Fetcher,
        annotator: Annotator,
        synthesis: SynthesisEngine,
        failure_threshold: Optional[float] = None,
        fetch_timeout: Optional[float] = None,
        annotate_timeout: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        settings = get_pipeline_settings()
        self._store = store
        self._cache = cache
        self._fetcher = fetcher
        self._annotator = annotator
        self._synthesis = synthesis
        self._threshold = settings.failure_threshold if failure_threshold is None else failure_threshold
        self._fetch_timeout = settings.fetch_timeout if fetch_timeout is None else fetch_timeout
        self._annotate_timeout = settings.annotate_timeout if annotate_timeout is None else annotate_timeout
        self._item_weight = settings.item_progress_weight
        self._synthesis_progress = settings.synthesis_progress_start
        self._logger = logger or get_runner_logger()

    async def run_job(self, job_id: str, options: Optional[SynthesisOptions] = None) -> Job:
        """Run a QUEUED job to a terminal stage and return the final snapshot.

        Raises only for precondition errors: JobNotFound and InvalidJobState.
        A missing analysis, item failures and synthesis failures end up on the
        job record.
        """
        job = self._store.get(job_id)
        if job.stage != JobStage.QUEUED:
            raise InvalidJobState(f"Job is {job.stage.value}, expected queued", job_id=job_id)

        log = get_job_logger(job_id, self._logger)
        try:
            analysis = self._store.get_analysis(job.analysis_id)
        except AnalysisNotFound as exc:
            log.error("cannot start: %s", exc.message)
            return self._store.fail(job_id, exc.message)

        job = self._store.claim(job_id)
        total = len(job.selected_item_ids)
        log.info("started items=%s threshold=%s", total, self._threshold)

        for index, item_id in enumerate(job.selected_item_ids):
            try:
                result = await self._process_item(job_id, analysis, item_id, index, total, log)
            except Exception as exc:
                log.warning("item %s failed (%s/%s): %s", item_id, index + 1, total, exc)
                self._store.record_failure(job_id, item_id, str(exc) or type(exc).__name__)
            else:
                self._store.append_annotation(job_id, result)

            job = self._store.set_progress(
                job_id,
                item_progress(index + 1, total, weight=self._item_weight),
                step=f"Processed item {index + 1}/{total}",
            )
            if failure_threshold_exceeded(job, self._threshold):
                error = ThresholdExceeded(job.failure_rate, self._threshold)
                log.error("%s", error.message)
                return self._store.fail(job_id, error.message)

        return await self._synthesize(job_id, analysis, options, log)

    async def _process_item(
        self,
        job_id: str,
        analysis: AnalysisContext,
        item_id: str,
        index: int,
        total: int,
        log: LoggerLike,
    ) -> ItemAnnotation:
        item = analysis.find_item(item_id)
        if item is None:
            raise ItemFailure(f"Item {item_id} is not part of analysis {analysis.id}", item_id=item_id)

        cached = self._lookup_cache(item_id, log)
        if cached is not None:
            log.info("cache hit item=%s", item_id)
            return ItemAnnotation(item_id=item_id, item=item, annotation=cached.result, from_cache=True)

        self._store.set_progress(
            job_id,
            item_progress(index, total, weight=self._item_weight),
            step=f"Downloading item {index + 1}/{total}",
        )
        artifact_ref = await self._fetch(item)
        self._store.append_download(
            job_id,
            DownloadedItem(item_id=item_id, locator=item.locator, artifact_ref=artifact_ref),
        )

        try:
            self._store.transition(job_id, JobStage.ANALYZING_ITEMS, step=f"Analyzing item {index + 1}/{total}")
            annotation = await self._annotate(item_id, artifact_ref)
        finally:
            await self._release(artifact_ref, log)
        self._save_to_cache(item, annotation, log)
        return ItemAnnotation(item_id=item_id, item=item, annotation=annotation, from_cache=False)

    async def _release(self, artifact_ref: str, log: LoggerLike) -> None:
        try:
            await self._fetcher.release(artifact_ref)
        except Exception as exc:
            log.warning("artifact cleanup failed ref=%s: %s", artifact_ref, exc)

    async def _fetch(self, item: CandidateItem) -> str:
        try:
            return await asyncio.wait_for(
                self._fetcher.fetch(item.locator, item_id=item.id),
                timeout=self._fetch_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise FetchError(f"Fetch timed out after {self._fetch_timeout}s", item_id=item.id) from exc

    async def _annotate(self, item_id: str, artifact_ref: str) -> AnnotationResult:
        try:
            return await asyncio.wait_for(
                self._annotator.annotate(artifact_ref),
                timeout=self._annotate_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise AnnotationError(f"Annotation timed out after {self._annotate_timeout}s", item_id=item_id) from exc

    def _lookup_cache(self, item_id: str, log: LoggerLike) -> Optional[AnnotationCacheEntry]:
        try:
            return self._cache.get(item_id)
        except Exception as exc:
            log.warning("cache read failed item=%s, treating as miss: %s", item_id, exc)
            return None

    def _save_to_cache(self, item: CandidateItem, annotation: AnnotationResult, log: LoggerLike) -> None:
        entry = AnnotationCacheEntry(
            item_id=item.id,
            result=annotation,
            metrics=MetricsSnapshot.from_item(item),
            metadata=ItemMetadata.from_item(item),
            source_profile=item.source_profile,
            item_url=item.url,
        )
        try:
            self._cache.put(item.id, entry)
        except Exception as exc:
            log.warning("cache write failed item=%s: %s", item.id, exc)

    async def _synthesize(
        self,
        job_id: str,
        analysis: AnalysisContext,
        options: Optional[SynthesisOptions],
        log: LoggerLike,
    ) -> Job:
        job = self._store.transition(job_id, JobStage.GENERATING_INSIGHTS, step="Generating insights")
        self._store.set_progress(job_id, self._synthesis_progress)
        log.info("synthesizing results=%s failures=%s", len(job.annotation_results), job.failure_count)

        try:
            insights = await self._synthesis.synthesize(job.annotation_results, analysis.summary, options, log=log)
        except SynthesisFailure as exc:
            log.error("synthesis failed: %s", exc.message)
            return self._store.fail(job_id, exc.message)

        self._store.save_insights(job_id, insights, mode=WriteMode.OVERWRITE)
        job = self._store.complete(job_id)
        log.info("completed parsed=%s", insights.parsed_insights is not None)
        return job
