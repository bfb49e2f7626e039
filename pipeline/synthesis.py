"""Insight synthesis: one text-generation call over all annotated items."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional, Sequence, Union

from pydantic import ValidationError

from core import (
    InsightsResult,
    ItemAnnotation,
    Job,
    JobStage,
    MetricsSummary,
    ParsedInsights,
    SynthesisOptions,
    TokenUsage,
    WriteMode,
)
from providers.base import TextGenerator
from utils.exceptions import InvalidJobState, JobTerminated, SynthesisFailure, SynthesisParseFailure

from .prompts import build_prompt, system_instruction_for


logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]


def extract_json_object(text: str) -> dict:
    """Best-effort extraction of the outermost JSON object from a model response."""
    cleaned = _FENCE_RE.sub("", (text or "").strip())
    candidates = [cleaned]
    match = _OBJECT_RE.search(cleaned)
    if match and match.group(0) != cleaned:
        candidates.append(match.group(0))

    last_error: Optional[Exception] = None
    for candidate in candidates:
        try:
            payload = json.loads(candidate)
        except ValueError as exc:
            last_error = exc
            continue
        if isinstance(payload, dict):
            return payload
        last_error = ValueError(f"expected a JSON object, got {type(payload).__name__}")
    raise SynthesisParseFailure("Model response is not a JSON object", {"error": str(last_error)})


def parse_insights(text: str, *, log: Optional[LoggerLike] = None) -> Optional[ParsedInsights]:
    """Validate the response into ParsedInsights, or None when it does not fit."""
    log = log or logger
    try:
        payload = extract_json_object(text)
        return ParsedInsights.model_validate(payload)
    except SynthesisParseFailure as exc:
        log.warning("insights parse failed, keeping raw response: %s", exc)
    except ValidationError as exc:
        log.warning("insights schema mismatch, keeping raw response: %s", exc.errors()[:3])
    return None


def default_variant_name() -> str:
    return f"Variant {datetime.now(timezone.utc).isoformat(timespec='seconds')}"


class SynthesisEngine:
    """Builds the synthesis prompt, calls the text generator and writes results.

    ``store`` is the job store; it is only needed for ``write`` and ``regenerate``.
    """

    def __init__(
        self,
        text_generator: TextGenerator,
        *,
        store: Any = None,
        generate_timeout: Optional[float] = None,
        transcript_chars: int = 200,
        max_labels: int = 10,
        log: Optional[LoggerLike] = None,
    ) -> None:
        self._generator = text_generator
        self._store = store
        self._generate_timeout = generate_timeout
        self._transcript_chars = transcript_chars
        self._max_labels = max_labels
        self._log = log or logger

    async def synthesize(
        self,
        results: Sequence[ItemAnnotation],
        summary: MetricsSummary,
        options: Optional[SynthesisOptions] = None,
        *,
        log: Optional[LoggerLike] = None,
    ) -> InsightsResult:
        """Run one synthesis call. Generation errors raise SynthesisFailure; parse errors do not."""
        log = log or self._log
        options = options or SynthesisOptions()
        prompt = build_prompt(
            results,
            summary,
            idea_count=options.idea_count,
            transcript_chars=self._transcript_chars,
            max_labels=self._max_labels,
        )
        log.debug("synthesis prompt chars=%s items=%s focus=%s", len(prompt), len(results), options.focus.value)

        try:
            generation = await asyncio.wait_for(
                self._generator.generate(
                    prompt,
                    system_instruction=system_instruction_for(options.focus),
                    temperature=options.temperature,
                    max_tokens=options.max_tokens,
                ),
                timeout=self._generate_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise SynthesisFailure(f"Insight generation timed out after {self._generate_timeout}s") from exc
        except Exception as exc:
            raise SynthesisFailure(f"Insight generation failed: {exc}") from exc

        parsed = parse_insights(generation.text, log=log)
        return InsightsResult(
            raw_response=generation.text,
            parsed_insights=parsed,
            usage=generation.usage or TokenUsage(),
            focus=options.focus,
            temperature=options.temperature,
            idea_count=options.idea_count,
        )

    def write(
        self,
        job_id: str,
        insights: InsightsResult,
        *,
        mode: WriteMode = WriteMode.OVERWRITE,
        variant_name: Optional[str] = None,
    ) -> Job:
        """Overwrite the primary insights, or append a named variant."""
        if self._store is None:
            raise RuntimeError("SynthesisEngine.write requires a job store")
        if mode == WriteMode.VARIANT:
            variant_name = variant_name or default_variant_name()
        return self._store.save_insights(job_id, insights, mode=mode, variant_name=variant_name)

    async def regenerate(
        self,
        job_id: str,
        options: Optional[SynthesisOptions] = None,
        *,
        variant: bool = True,
        variant_name: Optional[str] = None,
    ) -> Job:
        """Re-run synthesis over an existing job's annotation results."""
        if self._store is None:
            raise RuntimeError("SynthesisEngine.regenerate requires a job store")
        job = self._store.get(job_id)
        if job.stage == JobStage.FAILED:
            raise JobTerminated("Cannot regenerate insights for a failed job", job_id=job_id)
        if job.stage not in {JobStage.GENERATING_INSIGHTS, JobStage.COMPLETED}:
            raise InvalidJobState(f"Job is {job.stage.value}; insights are not available yet", job_id=job_id)
        if not job.annotation_results:
            raise InvalidJobState("Job has no annotation results to synthesize", job_id=job_id)

        summary = self._store.get_analysis(job.analysis_id).summary
        options = options or SynthesisOptions()
        self._log.info(
            "regenerating insights job=%s focus=%s temperature=%s variant=%s",
            job_id,
            options.focus.value,
            options.temperature,
            variant,
        )
        insights = await self.synthesize(job.annotation_results, summary, options)
        mode = WriteMode.VARIANT if variant else WriteMode.OVERWRITE
        return self.write(job_id, insights, mode=mode, variant_name=variant_name)
