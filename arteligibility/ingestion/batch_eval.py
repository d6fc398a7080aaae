#!/usr/bin/env python3
"""
ARTEligibility Cohort Evaluator.

Runs every subject of a cohort through the priority rule evaluator and
collects one EligibilityResult (or None) per subject.

Subjects are independent: no state is shared between them except the
horizon-shifted evaluation context, which is computed once and never mutated.
A fault in one subject degrades only that subject's result to None and is
recorded as a diagnostic.

Usage:
    python -m arteligibility.ingestion.batch_eval --cohort data_raw/cohort.json --horizon 6
    python -m arteligibility.ingestion.batch_eval --cohort data_raw/cohort.json --workers 4 --excel
"""
from __future__ import annotations

import argparse
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from arteligibility import ENGINE_VERSION, GOVERNANCE_VERSION, RULES_VERSIONS
from arteligibility.eligibility_logic.concepts import ConceptDecoder
from arteligibility.eligibility_logic.engine import SubjectInputs, evaluate_subject
from arteligibility.eligibility_logic.model import (
    EligibilityResult,
    EvaluationContext,
    ObservationType,
    RuleWarning,
    Subject,
    SubjectEvaluation,
)
from arteligibility.eligibility_logic.rules_loader import default_horizon, load_contract
from arteligibility.governance.failure_log import (
    FailureLog,
    log_dropped_input,
    log_inconsistent_state,
    log_subject_fault,
    log_upstream_failure,
)
from arteligibility.ingestion.build_subject_facts import load_cohort_file, parse_ts
from arteligibility.ingestion.sources import MODE_ALL, MODE_MOST_RECENT, CohortSource

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_OUTPUT_DIR = _PROJECT_ROOT / "outputs" / "eligibility"


@dataclass(frozen=True)
class Diagnostic:
    """A per-subject problem recorded during evaluation."""
    subject_id: str
    category: str   # "inconsistent_state", "upstream", "subject_fault"
    section: str
    message: str


@dataclass
class CohortEvaluation:
    """Results of one cohort pass, keyed by subject id in cohort order."""
    context: EvaluationContext
    results: Dict[str, Optional[EligibilityResult]] = field(default_factory=dict)
    evaluations: Dict[str, SubjectEvaluation] = field(default_factory=dict)
    diagnostics: List[Diagnostic] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Input gathering
# ---------------------------------------------------------------------------

def _most_recent(source: CohortSource, subject_id: str, obs_type: ObservationType, as_of: datetime):
    obs = source.observations(subject_id, obs_type, MODE_MOST_RECENT, as_of)
    return obs[-1] if obs else None


def gather_inputs(
    source: CohortSource,
    subject_id: str,
    context: EvaluationContext,
    membership_as_of: Optional[datetime] = None,
    diagnostics: Optional[List[Diagnostic]] = None,
) -> Tuple[SubjectInputs, List[Diagnostic]]:
    """
    Fetch one subject's inputs from the collaborators.

    Program membership is taken as of `membership_as_of` (the unshifted
    evaluation time); age, observations and treatment start as of the
    horizon-shifted `context.now`. Diagnostics are appended to `diagnostics`
    as they are found, so the caller keeps them even if a later lookup raises.
    """
    programs = context.config.get("programs", {})
    primary = programs.get("primary", "hiv")
    secondary = programs.get("secondary", "tb")
    now = context.now
    membership_as_of = membership_as_of or now
    if diagnostics is None:
        diagnostics = []

    enrollment = source.enrollment(subject_id, primary)
    subject = Subject(
        subject_id=subject_id,
        age_months=source.age_months(subject_id, now),
        enrollment_date=enrollment.date_enrolled if enrollment else None,
        in_primary_program=source.in_program(subject_id, primary, membership_as_of),
        in_secondary_program=source.in_program(subject_id, secondary, membership_as_of),
        sex=source.sex(subject_id),
    )

    try:
        treatment_start = source.treatment_start_date(subject_id)
    except Exception as e:
        logger.warning("Treatment start lookup failed for subject %s: %s", subject_id, e)
        diagnostics.append(Diagnostic(subject_id, "upstream", "treatment_start", str(e)))
        treatment_start = None

    inputs = SubjectInputs(
        subject=subject,
        pregnancy=_most_recent(source, subject_id, ObservationType.PREGNANCY_STATUS, now),
        problem=_most_recent(source, subject_id, ObservationType.PROBLEM_ADDED, now),
        tb_status=_most_recent(source, subject_id, ObservationType.TB_DISEASE_STATUS, now),
        risk_factor=_most_recent(source, subject_id, ObservationType.HIV_RISK_FACTOR, now),
        cd4=tuple(source.observations(subject_id, ObservationType.CD4_COUNT, MODE_ALL, now)),
        who_stage=tuple(source.observations(subject_id, ObservationType.WHO_STAGE, MODE_ALL, now)),
        treatment_start=treatment_start,
    )
    return inputs, diagnostics


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def _evaluate_one(
    source: CohortSource,
    subject_id: str,
    context: EvaluationContext,
    decoder: ConceptDecoder,
    membership_as_of: datetime,
) -> Tuple[SubjectEvaluation, List[Diagnostic]]:
    diagnostics: List[Diagnostic] = []
    try:
        inputs, _ = gather_inputs(source, subject_id, context, membership_as_of, diagnostics)
        ev = evaluate_subject(inputs, context, decoder)
    except Exception as e:
        logger.error("Evaluation failed for subject %s: %s", subject_id, e)
        ev = SubjectEvaluation(subject_id=subject_id)
        ev.warnings.append(RuleWarning("evaluation", f"Evaluation failed: {e}"))
        diagnostics.append(Diagnostic(subject_id, "subject_fault", type(e).__name__, str(e)))
        return ev, diagnostics

    for w in ev.warnings:
        diagnostics.append(Diagnostic(subject_id, "inconsistent_state", w.rule_id, w.message))
    return ev, diagnostics


def _record_diagnostics(diagnostics: Iterable[Diagnostic], failure_log: FailureLog, command: str) -> None:
    for d in diagnostics:
        if d.category == "inconsistent_state":
            log_inconsistent_state(failure_log, d.subject_id, d.section, d.message, command=command)
        elif d.category == "upstream":
            log_upstream_failure(failure_log, d.subject_id, d.section, d.message, command=command)
        else:
            log_subject_fault(failure_log, d.subject_id, d.message, d.section, command=command)


def evaluate_cohort(
    cohort: Iterable[str],
    context: EvaluationContext,
    source: CohortSource,
    failure_log: Optional[FailureLog] = None,
    max_workers: int = 1,
    command: str = "",
) -> CohortEvaluation:
    """
    Evaluate every subject in `cohort`.

    `context` is the unshifted context; the horizon shift is applied here,
    once, and the shifted context is shared read-only by every subject.
    Program membership is filtered at the unshifted `context.now`.
    """
    shifted = context.shifted()
    membership_as_of = context.now
    decoder = ConceptDecoder.from_contract(shifted.config or {})
    subject_ids = list(dict.fromkeys(str(s) for s in cohort))

    def one(sid: str) -> Tuple[SubjectEvaluation, List[Diagnostic]]:
        return _evaluate_one(source, sid, shifted, decoder, membership_as_of)

    if max_workers > 1 and len(subject_ids) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            outcomes = list(pool.map(one, subject_ids))
    else:
        outcomes = [one(sid) for sid in subject_ids]

    run = CohortEvaluation(context=shifted)
    for sid, (ev, diagnostics) in zip(subject_ids, outcomes):
        run.evaluations[sid] = ev
        run.results[sid] = ev.result
        run.diagnostics.extend(diagnostics)

    if failure_log is not None:
        _record_diagnostics(run.diagnostics, failure_log, command)

    return run


def evaluate(
    cohort: Iterable[str],
    context: EvaluationContext,
    source: CohortSource,
) -> Dict[str, Optional[EligibilityResult]]:
    """Map each subject id to its EligibilityResult, or None."""
    return evaluate_cohort(cohort, context, source).results


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def summarize(run: CohortEvaluation) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for result in run.results.values():
        if result is None:
            key = "NO_DETERMINATION"
        elif result.reason is None:
            key = "ON_TREATMENT"
        else:
            key = result.reason.value
        counts[key] = counts.get(key, 0) + 1
    return counts


def to_payload(run: CohortEvaluation) -> Dict[str, Any]:
    subjects: List[Dict[str, Any]] = []
    for sid, ev in run.evaluations.items():
        subjects.append({
            "subject_id": sid,
            "result": ev.result.to_dict() if ev.result else None,
            "rule_trace": [
                {"rule_id": c.rule_id, "matched": c.matched, "detail": c.detail}
                for c in ev.rule_trace
            ],
            "warnings": [{"rule_id": w.rule_id, "message": w.message} for w in ev.warnings],
        })

    return {
        "evaluated_at": run.context.now.isoformat(),
        "horizon_months": run.context.horizon_months,
        "subjects_evaluated": len(subjects),
        "summary": summarize(run),
        "subjects": subjects,
        "diagnostics": [
            {"subject_id": d.subject_id, "category": d.category, "section": d.section, "message": d.message}
            for d in run.diagnostics
        ],
        "governance_version": GOVERNANCE_VERSION,
        "engine_version": ENGINE_VERSION,
        "rules_versions": RULES_VERSIONS,
    }


def write_output(run: CohortEvaluation, out_path: Path) -> Path:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(to_payload(run), indent=2), encoding="utf-8")
    return out_path


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def run_cohort_file(
    cohort_path: Path,
    horizon: Optional[int] = None,
    now: Optional[datetime] = None,
    workers: int = 1,
    failure_log: Optional[FailureLog] = None,
) -> CohortEvaluation:
    """Load contract + cohort export and evaluate every subject in it."""
    contract = load_contract()
    source, load_warnings = load_cohort_file(cohort_path)
    command = f"batch_eval {cohort_path.name}"

    if failure_log is not None:
        for sid, warnings in load_warnings.items():
            for w in warnings:
                log_dropped_input(failure_log, sid, w, command=command)

    context = EvaluationContext(
        now=now or datetime.now(),
        horizon_months=horizon if horizon is not None else default_horizon(contract),
        config=contract,
    )
    return evaluate_cohort(
        source.subject_ids(), context, source,
        failure_log=failure_log, max_workers=workers, command=command,
    )


def main() -> int:
    ap = argparse.ArgumentParser(description="Evaluate ART medical eligibility for a cohort export")
    ap.add_argument("--cohort", required=True, help="Path to JSON cohort export")
    ap.add_argument("--horizon", type=int, default=None, help="Evaluation horizon in months")
    ap.add_argument("--now", default=None, help="Evaluation time (ISO); defaults to current time")
    ap.add_argument("--workers", type=int, default=1, help="Parallel subject workers")
    ap.add_argument("--out", default=None, help="Output JSON path")
    ap.add_argument("--excel", action="store_true", help="Also write an Excel workbook of results")
    ap.add_argument("--failure-log", default=None, help="Failure log path (JSONL)")
    args = ap.parse_args()

    now = None
    if args.now:
        now = parse_ts(args.now)
        if now is None:
            raise SystemExit(f"Invalid --now timestamp: {args.now}")

    cohort_path = Path(args.cohort)
    failure_log = FailureLog(Path(args.failure_log)) if args.failure_log else FailureLog()
    run = run_cohort_file(cohort_path, horizon=args.horizon, now=now, workers=args.workers, failure_log=failure_log)

    print(f"\nELIGIBILITY RESULTS — {cohort_path.name} — {len(run.results)} subjects")
    for key, count in sorted(summarize(run).items()):
        print(f"  {key}: {count}")
    if run.diagnostics:
        print(f"  Diagnostics: {len(run.diagnostics)} (see {failure_log.path})")

    out_path = Path(args.out) if args.out else _OUTPUT_DIR / f"{cohort_path.stem}_eligibility.json"
    write_output(run, out_path)
    print("Wrote:", out_path)

    if args.excel:
        from arteligibility.reporting.excel_export import write_results_workbook
        xlsx = write_results_workbook(run, out_path.with_suffix(".xlsx"))
        print("Wrote:", xlsx)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
