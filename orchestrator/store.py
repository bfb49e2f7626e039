"""In-memory job store with per-job serialized mutations."""

from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict, List, Optional, Sequence
from uuid import uuid4

from core import (
    AnalysisContext,
    DownloadedItem,
    InsightsResult,
    InsightsVariant,
    ItemAnnotation,
    ItemFailureRecord,
    Job,
    JobStage,
    WriteMode,
)
from utils.exceptions import AnalysisNotFound, InvalidJobState, JobNotFound, JobTerminated

from .state_machine import check_transition, ensure_mutable


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_job_id() -> str:
    return f"job_{_utcnow().strftime('%Y%m%d_%H%M%S')}_{uuid4().hex[:8]}"


def _new_analysis_id() -> str:
    return f"ana_{_utcnow().strftime('%Y%m%d_%H%M%S')}_{uuid4().hex[:8]}"


class InMemoryJobStore:
    """Thread-safe store for jobs and their parent analysis contexts.

    Every mutation runs under the job's own lock and returns a deep-copied
    snapshot, so callers never hold a reference into live state.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}
        self._job_locks: Dict[str, Lock] = {}
        self._analyses: Dict[str, AnalysisContext] = {}
        self._lock = Lock()

    # analysis contexts

    def save_analysis(self, context: AnalysisContext) -> AnalysisContext:
        with self._lock:
            self._analyses[context.id] = context.model_copy(deep=True)
            return context.model_copy(deep=True)

    def new_analysis_id(self) -> str:
        return _new_analysis_id()

    def get_analysis(self, analysis_id: str) -> AnalysisContext:
        with self._lock:
            context = self._analyses.get(analysis_id)
            if context is None:
                raise AnalysisNotFound(f"Analysis {analysis_id} not found")
            return context.model_copy(deep=True)

    def list_analyses(self, owner_id: Optional[str] = None) -> List[AnalysisContext]:
        with self._lock:
            return [
                context.model_copy(deep=True)
                for context in self._analyses.values()
                if owner_id is None or context.owner_id == owner_id
            ]

    # jobs

    def create(
        self,
        *,
        owner_id: str,
        analysis_id: str,
        selected_item_ids: Sequence[str],
        credits_charged: int = 0,
    ) -> Job:
        job = Job(
            id=_new_job_id(),
            owner_id=owner_id,
            analysis_id=analysis_id,
            selected_item_ids=list(selected_item_ids),
            credits_charged=credits_charged,
            current_step="Queued",
        )
        with self._lock:
            self._jobs[job.id] = job
            self._job_locks[job.id] = Lock()
            return job.model_copy(deep=True)

    def _job_lock(self, job_id: str) -> Lock:
        with self._lock:
            lock = self._job_locks.get(job_id)
            if lock is None:
                raise JobNotFound(f"Job {job_id} not found", job_id=job_id)
            return lock

    def get(self, job_id: str) -> Job:
        with self._job_lock(job_id):
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFound(f"Job {job_id} not found", job_id=job_id)
            return job.model_copy(deep=True)

    def list_jobs(self, owner_id: Optional[str] = None) -> List[Job]:
        with self._lock:
            jobs = [job for job in self._jobs.values() if owner_id is None or job.owner_id == owner_id]
        return sorted((self.get(job.id) for job in jobs), key=lambda job: job.created_at)

    def delete(self, job_id: str) -> bool:
        with self._lock:
            self._job_locks.pop(job_id, None)
            return self._jobs.pop(job_id, None) is not None

    def _mutate(self, job_id: str, fn: Callable[[Job], None], *, allow_terminal: bool = False) -> Job:
        with self._job_lock(job_id):
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFound(f"Job {job_id} not found", job_id=job_id)
            if not allow_terminal:
                ensure_mutable(job)
            fn(job)
            job.updated_at = _utcnow()
            return job.model_copy(deep=True)

    def claim(self, job_id: str) -> Job:
        """Atomically move a QUEUED job to DOWNLOADING."""

        def _apply(job: Job) -> None:
            if job.stage != JobStage.QUEUED:
                raise InvalidJobState(f"Job is {job.stage.value}, expected queued", job_id=job_id)
            job.stage = JobStage.DOWNLOADING
            job.started_at = _utcnow()
            job.current_step = "Starting item processing"

        return self._mutate(job_id, _apply)

    def transition(self, job_id: str, stage: JobStage, *, step: Optional[str] = None) -> Job:
        if stage in {JobStage.COMPLETED, JobStage.FAILED}:
            raise ValueError("use complete() or fail() for terminal stages")

        def _apply(job: Job) -> None:
            check_transition(job, stage)
            job.stage = stage
            if step is not None:
                job.current_step = step

        return self._mutate(job_id, _apply)

    def set_progress(self, job_id: str, progress: int, *, step: Optional[str] = None) -> Job:
        """Progress never decreases while the job is active."""

        def _apply(job: Job) -> None:
            job.progress = max(job.progress, max(0, min(100, int(progress))))
            if step is not None:
                job.current_step = step

        return self._mutate(job_id, _apply)

    def append_download(self, job_id: str, download: DownloadedItem) -> Job:
        return self._mutate(job_id, lambda job: job.downloaded_items.append(download))

    def _ensure_item_slot(self, job: Job) -> None:
        if len(job.annotation_results) + job.failure_count >= len(job.selected_item_ids):
            raise InvalidJobState("All selected items are already accounted for", job_id=job.id)

    def append_annotation(self, job_id: str, result: ItemAnnotation) -> Job:
        def _apply(job: Job) -> None:
            self._ensure_item_slot(job)
            job.annotation_results.append(result)

        return self._mutate(job_id, _apply)

    def record_failure(self, job_id: str, item_id: str, error: str) -> Job:
        def _apply(job: Job) -> None:
            self._ensure_item_slot(job)
            job.failure_count += 1
            job.item_failures.append(ItemFailureRecord(item_id=item_id, error=error))

        return self._mutate(job_id, _apply)

    def fail(self, job_id: str, error_message: str) -> Job:
        """Terminal failure. Progress stays where it was."""

        def _apply(job: Job) -> None:
            check_transition(job, JobStage.FAILED)
            now = _utcnow()
            job.stage = JobStage.FAILED
            job.error_message = error_message
            job.current_step = "Failed"
            job.completed_at = now

        return self._mutate(job_id, _apply)

    def complete(self, job_id: str) -> Job:
        def _apply(job: Job) -> None:
            check_transition(job, JobStage.COMPLETED)
            job.stage = JobStage.COMPLETED
            job.progress = 100
            job.current_step = "Completed"
            job.completed_at = _utcnow()

        return self._mutate(job_id, _apply)

    def save_insights(
        self,
        job_id: str,
        insights: InsightsResult,
        *,
        mode: WriteMode = WriteMode.OVERWRITE,
        variant_name: Optional[str] = None,
    ) -> Job:
        """Write synthesis output. Accepted while generating insights or after completion."""

        def _apply(job: Job) -> None:
            if job.stage == JobStage.FAILED:
                raise JobTerminated("Job failed; insights can no longer be written", job_id=job_id)
            if job.stage not in {JobStage.GENERATING_INSIGHTS, JobStage.COMPLETED}:
                raise InvalidJobState(f"Job is {job.stage.value}; insights are not expected yet", job_id=job_id)
            if mode == WriteMode.VARIANT:
                job.insight_variants.append(
                    InsightsVariant(name=variant_name or f"Variant {len(job.insight_variants) + 1}", insights=insights)
                )
                if job.primary_insights is None:
                    job.primary_insights = insights
            else:
                job.primary_insights = insights

        return self._mutate(job_id, _apply, allow_terminal=True)
