"""CLI entrypoint for ranking scraped videos and running analysis jobs."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from core import AnalysisMode, InsightFocus
from orchestrator import JobOrchestrator, default_synthesis_options
from utils.exceptions import VideoInsightsError
from utils.logger import setup_logger


def _load_records(path: str) -> List[Dict[str, Any]]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("items") or data.get("videos") or []
    if not isinstance(data, list):
        raise SystemExit(f"{path}: expected a JSON list of records")
    return data


def _filters(args: argparse.Namespace) -> Dict[str, Any]:
    filters: Dict[str, Any] = {}
    if args.min_views is not None:
        filters["min_views"] = args.min_views
    if args.min_engagement is not None:
        filters["min_engagement_rate"] = args.min_engagement
    return filters


def _dump(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


async def _analyze(orchestrator: JobOrchestrator, args: argparse.Namespace) -> Dict[str, Any]:
    try:
        analysis = orchestrator.prepare_analysis(
            args.owner_id,
            _load_records(args.records),
            mode=AnalysisMode(args.mode),
            filters=_filters(args),
            total=args.total,
        )
        job = orchestrator.create_job(args.owner_id, analysis.id)
        options = default_synthesis_options(
            focus=InsightFocus(args.focus) if args.focus else None,
            temperature=args.temperature,
            idea_count=args.ideas,
        )
        job = await orchestrator.run_job(job.id, options)
        return job.model_dump(mode="json", exclude={"annotation_results": {"__all__": {"item"}}})
    finally:
        await orchestrator.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Short-form video analysis CLI")
    parser.add_argument("--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    def _add_dataset_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--records", required=True, help="JSON file with raw scraped records")
        p.add_argument("--mode", choices=[m.value for m in AnalysisMode], default=AnalysisMode.PROFILE.value)
        p.add_argument("--total", type=int, default=None, help="Override the selection size")
        p.add_argument("--min-views", type=int, default=None)
        p.add_argument("--min-engagement", type=float, default=None)

    rank = sub.add_parser("rank", help="Normalize, summarize and select without running a job")
    rank.add_argument("--owner-id", default="cli")
    _add_dataset_args(rank)

    analyze = sub.add_parser("analyze", help="Select, charge credits and run a full analysis job")
    analyze.add_argument("--owner-id", default="cli")
    analyze.add_argument("--grant", type=int, default=0, help="Credits to grant the owner first")
    analyze.add_argument("--focus", choices=[f.value for f in InsightFocus], default=None)
    analyze.add_argument("--temperature", type=float, default=None)
    analyze.add_argument("--ideas", type=int, default=None)
    _add_dataset_args(analyze)

    args = parser.parse_args()
    setup_logger(name="", level=logging.DEBUG if args.verbose else logging.INFO)
    orchestrator = JobOrchestrator()

    try:
        if args.command == "rank":
            orchestrator.ledger.grant(args.owner_id, 10_000, reason="cli ranking")
            analysis = orchestrator.prepare_analysis(
                args.owner_id,
                _load_records(args.records),
                mode=AnalysisMode(args.mode),
                filters=_filters(args),
                total=args.total,
            )
            _dump(
                {
                    "analysis_id": analysis.id,
                    "summary": analysis.summary.model_dump(mode="json"),
                    "selected": [item.model_dump(mode="json") for item in analysis.selected],
                }
            )
            return

        if args.command == "analyze":
            if args.grant > 0:
                orchestrator.ledger.grant(args.owner_id, args.grant, reason="cli grant")
            _dump(asyncio.run(_analyze(orchestrator, args)))
            return
    except VideoInsightsError as exc:
        _dump({"error": type(exc).__name__, "message": str(exc)})
        raise SystemExit(1)


if __name__ == "__main__":
    main()
