"""
Command-line runner for analyzing a local project without the HTTP server

Usage:
    python -m app.cli <project_path> [--framework express] [--output report.json]
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from fastapi.encoders import jsonable_encoder

from app.agents.conversation import ChatClient
from app.agents.schemas import FileEntry, FrameworkDetectionResult
from app.agents.tools.file_scanner import load_project_files
from app.core.config import settings
from app.core.llm_client import LLMClient
from app.core.logging import setup_logging
from app.schemas.job import JobEvent, JobSnapshot
from app.services.analysis_runner import AnalysisRunner
from app.services.job_store import JobStore


def _print_event(event: JobEvent) -> None:
    if event.type == "log":
        print(f"[{event.data.level}] {event.data.message}")
    elif event.type == "progress":
        print(f"  -> {event.data.current}% {event.data.stage}")


async def run_local_analysis(
    files: List[FileEntry],
    framework: Optional[FrameworkDetectionResult] = None,
    llm: Optional[ChatClient] = None,
    store: Optional[JobStore] = None,
    verbose: bool = True,
) -> JobSnapshot:
    """Run one analysis job in-process and return its final snapshot."""
    store = store or JobStore()
    job = store.create_job(len(files), framework)
    if verbose:
        store.subscribe(job.id, _print_event)
    runner = AnalysisRunner(store, llm or LLMClient(settings), settings)
    await runner.run(job.id, files, framework)
    return store.snapshot(job.id)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Trace API endpoints in a project and report missing security controls",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("project_path", help="Directory of the project to analyze")
    parser.add_argument("--framework", default="unknown", help="Framework name passed to the checklist stage")
    parser.add_argument("--output", "-o", help="Write the final job snapshot as JSON to this file")
    parser.add_argument("--quiet", "-q", action="store_true", help="Do not print job logs")
    args = parser.parse_args(argv)

    setup_logging("WARNING" if args.quiet else None)

    try:
        files = load_project_files(args.project_path, settings.MAX_FILE_BYTES)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        return 1
    if not files:
        print(f"Error: no readable files in {args.project_path}")
        return 1

    framework = FrameworkDetectionResult(framework=args.framework)
    snapshot = asyncio.run(run_local_analysis(files, framework, verbose=not args.quiet))

    print("\n" + "=" * 60)
    print(f"Job {snapshot.id}: {snapshot.status.value}")
    if snapshot.result is not None:
        print(snapshot.result.summary)
    if snapshot.error:
        print(f"Error: {snapshot.error}")

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("w", encoding="utf-8") as fh:
            json.dump(jsonable_encoder(snapshot), fh, ensure_ascii=False, indent=2)
        print(f"Report written to {output_path}")

    return 0 if snapshot.status.value == "completed" else 2


if __name__ == "__main__":
    sys.exit(main())
