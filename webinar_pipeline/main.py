from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from webinar_pipeline.adapters.client import ModelClient
from webinar_pipeline.adapters.gemini_adapter import GeminiAdapter
from webinar_pipeline.adapters.llm_base import LLMAdapter
from webinar_pipeline.adapters.mock_adapter import MockAdapter
from webinar_pipeline.adapters.openai_adapter import OpenAIAdapter
from webinar_pipeline.adapters.queue import GenerationQueue
from webinar_pipeline.artifacts.export import export_project
from webinar_pipeline.config import PipelineSettings, load_settings
from webinar_pipeline.contracts.enums import DeliverableId
from webinar_pipeline.errors import PipelineError
from webinar_pipeline.intake import create_project, load_intake
from webinar_pipeline.pipeline_webinar import ProgressEvent, RunOutcome, WebinarPipeline
from webinar_pipeline.storage import FileStore
from webinar_pipeline.utils.time import utc_timestamp

logger = logging.getLogger(__name__)

API_KEYS = {"openai": "OPENAI_API_KEY", "gemini": "GEMINI_API_KEY"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Webinar deliverable pipeline")
    parser.add_argument("--mode", choices=["mock", "live"], default="mock")
    parser.add_argument("--provider", choices=sorted(API_KEYS), default=None)
    parser.add_argument("--scenario", default="default", help="Mock adapter scenario")
    parser.add_argument("--runs-dir", default=None)
    parser.add_argument("--config", default=None, help="YAML settings file")
    parser.add_argument("--log-level", default="INFO")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Create a project from a transcript and generate everything")
    run.add_argument("--transcript", required=True)
    run.add_argument("--intake", default=None, help="Optional intake call transcript")
    run.add_argument("--notes", default=None, help="Optional operator notes")
    run.add_argument("--project-id", default=None)

    regenerate = commands.add_parser("regenerate", help="Re-run one deliverable")
    regenerate.add_argument("--project-id", required=True)
    regenerate.add_argument("--target", required=True, choices=[item.value for item in DeliverableId])
    regenerate.add_argument("--cascade", action="store_true")

    export = commands.add_parser("export", help="Write client-facing files")
    export.add_argument("--project-id", required=True)
    export.add_argument("--out", default=None)
    export.add_argument("--force", action="store_true")
    return parser


def _ensure_env(provider: str) -> None:
    key = API_KEYS[provider]
    if not os.getenv(key):
        raise RuntimeError(
            f"Missing required API key: {key}. Create a .env file from .env.example and set the key."
        )


def _adapter(mode: str, provider: str, scenario: str, settings: PipelineSettings) -> LLMAdapter:
    if mode == "mock":
        return MockAdapter(scenario=scenario)
    if provider == "gemini":
        return GeminiAdapter(model=settings.gemini_model)
    return OpenAIAdapter(model=settings.openai_model)


def _report_progress(event: ProgressEvent) -> None:
    if event.attempt is not None:
        logger.info(
            "[progress] %s %s attempt=%d/%d",
            event.deliverable.value,
            event.state,
            event.attempt,
            event.max_attempts,
        )
    else:
        logger.info("[progress] %s %s", event.deliverable.value, event.state)


def _print_outcome(outcome: RunOutcome) -> None:
    print(f"Project: {outcome.project_id}")
    print(f"Status: {outcome.project_status.value} ({outcome.status})")
    if outcome.blocked_reason:
        print(f"Blocked: {outcome.blocked_reason}")
    for deliverable, failure in outcome.failures.items():
        print(f"Failed {deliverable.value}: {failure.message}")
    if outcome.readiness:
        verdict = "pass" if outcome.readiness.pass_ else "fail"
        print(f"Readiness: {outcome.readiness.score} ({verdict})")
        for reason in outcome.readiness.blocking_reasons:
            print(f"  - {reason}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    base_dir = Path(__file__).resolve().parents[1]
    load_dotenv(base_dir / ".env")
    settings = load_settings(Path(args.config) if args.config else None)
    provider = args.provider or settings.provider
    if args.mode == "live" and args.command != "export":
        _ensure_env(provider)

    runs_dir = Path(args.runs_dir) if args.runs_dir else base_dir / "runs"
    store = FileStore(runs_dir)

    try:
        if args.command == "export":
            out_dir = Path(args.out) if args.out else runs_dir / args.project_id / "exports" / utc_timestamp()
            result = export_project(store, args.project_id, out_dir, force=args.force)
            print(f"Exported {len(result.written)} files to {out_dir}")
            return 0

        client = ModelClient(
            _adapter(args.mode, provider, args.scenario, settings),
            queue=GenerationQueue(settings.max_concurrency),
            options=settings.call_options(),
        )
        pipeline = WebinarPipeline(store, client, settings, on_progress=_report_progress)
        if args.command == "run":
            intake = load_intake(
                Path(args.transcript),
                Path(args.intake) if args.intake else None,
                Path(args.notes) if args.notes else None,
            )
            project = create_project(store, intake, project_id=args.project_id)
            outcome = asyncio.run(pipeline.run(project.project_id))
        else:
            outcome = asyncio.run(
                pipeline.regenerate(args.project_id, DeliverableId(args.target), cascade=args.cascade)
            )
    except PipelineError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    _print_outcome(outcome)
    return 0 if outcome.ok else 2


if __name__ == "__main__":
    sys.exit(main())
