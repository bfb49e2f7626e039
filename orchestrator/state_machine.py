"""Job stage ordering and transition rules."""

from __future__ import annotations

from typing import Dict, FrozenSet

from core import Job, JobStage
from utils.exceptions import InvalidStageTransition, JobTerminated


STAGE_ORDER: Dict[JobStage, int] = {
    JobStage.QUEUED: 0,
    JobStage.DOWNLOADING: 1,
    JobStage.ANALYZING_ITEMS: 2,
    JobStage.GENERATING_INSIGHTS: 3,
    JobStage.COMPLETED: 4,
    JobStage.FAILED: 4,
}
TERMINAL_STAGES: FrozenSet[JobStage] = frozenset({JobStage.COMPLETED, JobStage.FAILED})

# Item-level loop fills 0..ITEM_PROGRESS_WEIGHT; synthesis fills the rest.
ITEM_PROGRESS_WEIGHT = 70


def is_terminal(stage: JobStage) -> bool:
    return stage in TERMINAL_STAGES


def ensure_mutable(job: Job) -> None:
    if is_terminal(job.stage):
        raise JobTerminated(f"Job is {job.stage.value} and can no longer change", job_id=job.id)


def check_transition(job: Job, target: JobStage) -> None:
    """Allow same-stage and forward moves; FAILED from any live stage."""
    ensure_mutable(job)
    if target == JobStage.FAILED:
        return
    if STAGE_ORDER[target] < STAGE_ORDER[job.stage]:
        raise InvalidStageTransition(
            f"Cannot move job from {job.stage.value} back to {target.value}",
            job_id=job.id,
        )


def item_progress(done: int, total: int, *, weight: int = ITEM_PROGRESS_WEIGHT) -> int:
    """floor(done / total * weight), with an empty selection counting as done."""
    if total <= 0:
        return weight
    return (done * weight) // total


def failure_threshold_exceeded(job: Job, threshold: float) -> bool:
    """Failure rate over the total selected count, strictly above the threshold."""
    return job.failure_rate > threshold
