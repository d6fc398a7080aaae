#!/usr/bin/env python3
"""
ARTEligibility CLI — Pure Python entry point.

Usage:
    python -m arteligibility run <cohort.json> [--horizon N] [--now ISO] [--workers N]
    python -m arteligibility excel <cohort.json> [--horizon N] [--now ISO]
    python -m arteligibility help

Works on Windows, macOS, and Linux without bash.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DATA_DIR = _PROJECT_ROOT / "data_raw"
_OUTPUT_DIR = _PROJECT_ROOT / "outputs" / "eligibility"


def _resolve_cohort_file(name: str) -> Path:
    """Resolve cohort file from name, with or without .json extension."""
    p = Path(name)
    if p.exists():
        return p
    candidate = _DATA_DIR / name
    if candidate.exists():
        return candidate
    if not name.endswith(".json"):
        candidate = _DATA_DIR / f"{name}.json"
        if candidate.exists():
            return candidate
    print(f"Error: Cohort file not found: {name}")
    print(f"  Searched: {p}, {_DATA_DIR / name}")
    sys.exit(1)


def _parse_run_args(prog: str, args: list) -> argparse.Namespace:
    ap = argparse.ArgumentParser(prog=f"python -m arteligibility {prog}")
    ap.add_argument("cohort")
    ap.add_argument("--horizon", type=int, default=None)
    ap.add_argument("--now", default=None)
    ap.add_argument("--workers", type=int, default=1)
    return ap.parse_args(args)


def _run(args: list, prog: str):
    from arteligibility.governance.failure_log import FailureLog
    from arteligibility.ingestion.batch_eval import run_cohort_file, summarize
    from arteligibility.ingestion.build_subject_facts import parse_ts

    ns = _parse_run_args(prog, args)
    cohort_path = _resolve_cohort_file(ns.cohort)
    now = parse_ts(ns.now) if ns.now else None
    if ns.now and now is None:
        print(f"Error: invalid --now timestamp: {ns.now}")
        sys.exit(1)

    print(f"ARTEligibility -- Evaluating: {cohort_path.name}")
    print()

    failure_log = FailureLog(_PROJECT_ROOT / "outputs" / "failure_log.jsonl")
    run = run_cohort_file(cohort_path, horizon=ns.horizon, now=now, workers=ns.workers, failure_log=failure_log)

    print(f"  {len(run.results)} subjects evaluated")
    for key, count in sorted(summarize(run).items()):
        print(f"  {key}: {count}")
    if run.diagnostics:
        print(f"  Diagnostics: {len(run.diagnostics)} (see {failure_log.path})")
    return cohort_path, run


def cmd_run(args: list) -> int:
    """Evaluate a cohort export and write JSON results."""
    if not args:
        print("Usage: python -m arteligibility run <cohort.json>")
        return 1

    from arteligibility.ingestion.batch_eval import write_output

    cohort_path, run = _run(args, "run")
    json_path = write_output(run, _OUTPUT_DIR / f"{cohort_path.stem}_eligibility.json")
    print(f"  JSON:  {json_path}")
    print("Done.")
    return 0


def cmd_excel(args: list) -> int:
    """Evaluate a cohort export and write JSON + Excel results."""
    if not args:
        print("Usage: python -m arteligibility excel <cohort.json>")
        return 1

    from arteligibility.ingestion.batch_eval import write_output
    from arteligibility.reporting.excel_export import write_results_workbook

    cohort_path, run = _run(args, "excel")
    json_path = write_output(run, _OUTPUT_DIR / f"{cohort_path.stem}_eligibility.json")
    print(f"  JSON:  {json_path}")
    xlsx_path = write_results_workbook(run, _OUTPUT_DIR / f"{cohort_path.stem}_eligibility.xlsx")
    print(f"  Excel: {xlsx_path}")
    print("Done.")
    return 0


def cmd_help(args: list) -> int:
    """Show help."""
    print("ARTEligibility Engine")
    print()
    print("Usage: python -m arteligibility <command> [args]")
    print()
    print("Commands:")
    print("  run <cohort.json>    Evaluate a cohort export (writes JSON results)")
    print("  excel <cohort.json>  Evaluate and also write an Excel workbook")
    print("  help                 Show this help message")
    print()
    print("Options (run, excel):")
    print("  --horizon N          Evaluation horizon in months")
    print("  --now ISO            Evaluation time (defaults to now)")
    print("  --workers N          Parallel subject workers")
    print()
    print("Examples:")
    print("  python -m arteligibility run sample_cohort --horizon 6")
    print("  python -m arteligibility excel data_raw/sample_cohort.json --now 2020-07-01")
    print()
    return 0


_COMMANDS = {
    "run": cmd_run,
    "excel": cmd_excel,
    "help": cmd_help,
}


def main() -> int:
    args = sys.argv[1:]
    if not args:
        return cmd_help([])

    command = args[0].lower()
    handler = _COMMANDS.get(command)
    if handler is None:
        print(f"Unknown command: {command}")
        print()
        return cmd_help([])

    return handler(args[1:])


if __name__ == "__main__":
    raise SystemExit(main())
