"""Job orchestration: state machine, store, queue, runner and service facade."""

from .queue import InMemoryJobQueue
from .runner import StageRunner
from .service import (
    JobOrchestrator,
    create_job,
    default_synthesis_options,
    get_default_orchestrator,
    get_job,
    prepare_analysis,
    regenerate_insights,
    run_job,
)
from .state_machine import STAGE_ORDER, TERMINAL_STAGES, check_transition, failure_threshold_exceeded
from .store import InMemoryJobStore

__all__ = [
    "InMemoryJobQueue",
    "InMemoryJobStore",
    "JobOrchestrator",
    "STAGE_ORDER",
    "StageRunner",
    "TERMINAL_STAGES",
    "check_transition",
    "create_job",
    "default_synthesis_options",
    "failure_threshold_exceeded",
    "get_default_orchestrator",
    "get_job",
    "prepare_analysis",
    "regenerate_insights",
    "run_job",
]
