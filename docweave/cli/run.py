"""Run a named docweave pipeline over text files from the command line.

Usage::

    python -m docweave.cli.run standard-processing notes.md report.txt

    python -m docweave.cli.run rag-optimized docs/*.md --json -o result.json

    python -m docweave.cli.run --list

Each file becomes one input text unit.  A summary (stage outcomes, errors,
chunk counts, versions) is printed as text, or as JSON with ``--json``.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time
from pathlib import Path
from typing import Any

from docweave.models.pipeline import ExecutionResult


def _setup_logging(quiet: bool) -> None:
    """Route all logging to stderr; ``quiet`` keeps WARNING and above only.

    Must run before :mod:`docweave.main` is imported, because structlog
    caches loggers on first use.
    """
    from docweave.config.settings import Settings
    from docweave.utils.logging import configure_from_settings, configure_logging

    if quiet:
        configure_logging(log_level="WARNING", stream=sys.stderr)
    else:
        configure_from_settings(Settings(), stream=sys.stderr)


def _summarize(result: ExecutionResult, show_units: bool) -> dict[str, Any]:
    summary: dict[str, Any] = {
        "run_id": result.run_id,
        "pipeline": result.pipeline_name,
        "status": result.status.value,
        "success": result.success,
        "duration": round(result.duration, 4),
        "documents_processed": result.documents_processed,
        "fallback_from": result.fallback_from,
        "stages": [
            {
                "name": stage.name,
                "success": stage.success,
                "duration": round(stage.duration, 4),
                "documents_output": stage.documents_output,
                "attempts": stage.attempts,
                "error": stage.error,
            }
            for stage in result.stages
        ],
        "errors": result.errors,
        "versions": [
            {
                "document_id": version.document_id,
                "version_id": version.version_id,
                "version_number": version.version_number,
            }
            for version in result.versions
        ],
    }
    if show_units:
        summary["units"] = [unit.model_dump(mode="json") for unit in result.final_units]
    return summary


def _format_text(summary: dict[str, Any]) -> str:
    lines = [
        f"Pipeline: {summary['pipeline']} ({summary['status']})",
        f"Run:      {summary['run_id']}",
        f"Duration: {summary['duration']:.2f}s",
        f"Output:   {summary['documents_processed']} units",
    ]
    if summary["fallback_from"]:
        lines.append(f"Fallback from: {summary['fallback_from']}")
    lines.append("")
    lines.append("Stages:")
    for stage in summary["stages"]:
        mark = "ok " if stage["success"] else "ERR"
        lines.append(
            f"  [{mark}] {stage['name']:<28} {stage['duration']:.3f}s  "
            f"{stage['documents_output']} units, {stage['attempts']} attempt(s)"
        )
    if summary["errors"]:
        lines.append("")
        lines.append("Errors:")
        lines.extend(f"  - {error}" for error in summary["errors"])
    if summary["versions"]:
        lines.append("")
        lines.append(f"Versions created: {len(summary['versions'])}")
    return "\n".join(lines)


async def _run(args: argparse.Namespace) -> int:
    # Deferred so --quiet can reconfigure logging before loggers are cached.
    from docweave.config.settings import Settings
    from docweave.main import build_engine
    from docweave.providers.loader.text_file_loader import TextFileLoader
    from docweave.utils.errors import DocweaveError, PipelineNotFoundError

    settings = Settings()
    if args.pipelines:
        settings = settings.model_copy(update={"pipelines_path": args.pipelines})

    try:
        engine = build_engine(settings)
    except DocweaveError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.list:
        for name in engine.list_pipelines():
            definition = engine.registry.get(name)
            description = definition.description if definition else ""
            print(f"{name:<24} {description}")
        return 0

    if not args.pipeline or not args.files:
        print("Error: a pipeline name and at least one file are required", file=sys.stderr)
        return 1

    loader = engine.loader or TextFileLoader()
    units = []
    for source in args.files:
        try:
            loaded = await loader.load(str(Path(source).resolve()))
        except DocweaveError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        units.extend(loaded.units)

    print(f"Running '{args.pipeline}' over {len(units)} document(s)", file=sys.stderr)
    start = time.monotonic()
    try:
        result = await engine.execute_pipeline(args.pipeline, units)
    except PipelineNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(f"Done in {time.monotonic() - start:.1f}s", file=sys.stderr)

    summary = _summarize(result, show_units=args.show_units)
    text = json.dumps(summary, indent=2, ensure_ascii=False) if args.json_output else _format_text(summary)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        print(f"Results written to: {args.output}", file=sys.stderr)
    else:
        print(text)

    return 0 if result.success else 2


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m docweave.cli.run",
        description="Run a registered docweave pipeline over text files.",
    )
    parser.add_argument("pipeline", nargs="?", help="Name of the pipeline to run.")
    parser.add_argument("files", nargs="*", help="Text files to process (one unit per file).")
    parser.add_argument(
        "--list",
        action="store_true",
        help="List registered pipelines and exit.",
    )
    parser.add_argument(
        "--pipelines",
        type=str,
        default=None,
        help="YAML file with extra pipeline definitions.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output the summary as JSON.",
    )
    parser.add_argument(
        "--show-units",
        action="store_true",
        help="Include the final text units in the JSON summary.",
    )
    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Write the summary to a file instead of stdout.",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress log output (implied by --json).",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Parse arguments and run the pipeline.

    Exits 0 on success, 1 on usage or input errors, 2 when the run failed.
    """
    args = _build_parser().parse_args(argv)

    _setup_logging(quiet=args.quiet or args.json_output)

    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
