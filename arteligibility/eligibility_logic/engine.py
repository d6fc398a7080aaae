#!/usr/bin/env python3
"""
ARTEligibility — Priority Rule Evaluator (v1)

Per-subject decision procedure. Rules run in strict priority order and the
first match wins:

1. pregnancy          most recent pregnancy status = yes
2. hepatitis          most recent problem = hepatitis B
3. tb_coinfection     TB program member, or TB status diagnosed / on treatment
4. discordant_couple  most recent HIV risk factor = discordant couple
5. age_band           age-banded WHO / CD4 / age criterion

Rules 1-4 are overridden by the treatment start date when the matched
observation is later than it: the subject was already on treatment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from arteligibility.eligibility_logic import concepts as cx
from arteligibility.eligibility_logic.age_bands import select_by_age
from arteligibility.eligibility_logic.concepts import ConceptDecoder
from arteligibility.eligibility_logic.errors import InconsistentStateError
from arteligibility.eligibility_logic.model import (
    EligibilityResult,
    EvaluationContext,
    Observation,
    Reason,
    RuleCheck,
    RuleWarning,
    Subject,
    SubjectEvaluation,
)
from arteligibility.eligibility_logic.window import (
    DEFAULT_CD4_MAX,
    DEFAULT_WHO_STAGES,
    CriterionDates,
    window_end,
)


@dataclass(frozen=True)
class SubjectInputs:
    """Everything the evaluator needs for one subject, already materialized.

    The four single-valued streams hold the most recent observation (or
    None); CD4 and WHO stage hold the full time-ordered history.
    """
    subject: Subject
    pregnancy: Optional[Observation] = None
    problem: Optional[Observation] = None
    tb_status: Optional[Observation] = None
    risk_factor: Optional[Observation] = None
    cd4: Sequence[Observation] = field(default_factory=tuple)
    who_stage: Sequence[Observation] = field(default_factory=tuple)
    treatment_start: Optional[datetime] = None


def _coded_match(
    obs: Optional[Observation],
    decoder: ConceptDecoder,
    answer: str,
    end: datetime,
) -> Optional[Observation]:
    if obs is None or not decoder.is_answer(obs.value_coded, answer):
        return None
    if not obs.timestamp < end:
        return None
    return obs


def _tb_match(inputs: SubjectInputs, decoder: ConceptDecoder, end: datetime) -> Optional[Observation]:
    tb = inputs.tb_status
    coded_tb = tb is not None and (
        decoder.is_answer(tb.value_coded, cx.DISEASE_DIAGNOSED)
        or decoder.is_answer(tb.value_coded, cx.ON_TREATMENT_FOR_DISEASE)
    )
    if not (inputs.subject.in_secondary_program or coded_tb):
        return None
    if tb is None:
        raise InconsistentStateError(
            "TB program member has no TB disease status observation to date the co-infection",
            subject_id=inputs.subject.subject_id,
        )
    if not tb.timestamp < end:
        return None
    return tb


def _with_override(reason: Reason, obs: Observation, treatment_start: Optional[datetime]) -> EligibilityResult:
    if treatment_start is not None and obs.timestamp > treatment_start:
        return EligibilityResult(reason=None, date=treatment_start)
    return EligibilityResult(reason=reason, date=obs.timestamp)


def _pregnancy_applies(subject: Subject) -> bool:
    return (subject.sex or "").strip().upper() in ("F", "FEMALE")


def evaluate_subject(
    inputs: SubjectInputs,
    context: EvaluationContext,
    decoder: Optional[ConceptDecoder] = None,
) -> SubjectEvaluation:
    """Evaluate a single subject. `context` must already be horizon-shifted."""
    subject = inputs.subject
    config: Dict[str, Any] = context.config or {}
    decoder = decoder or ConceptDecoder.from_contract(config)
    thresholds: Dict[str, Any] = config.get("thresholds", {})
    horizon = context.horizon_months

    ev = SubjectEvaluation(subject_id=subject.subject_id)

    if not subject.in_primary_program or subject.enrollment_date is None:
        ev.rule_trace.append(RuleCheck("enrollment", False, "Not enrolled in primary program."))
        return ev

    enrollment_date = subject.enrollment_date
    end = window_end(enrollment_date, horizon)

    pregnancy = inputs.pregnancy if _pregnancy_applies(subject) else None
    coded_rules: List[Tuple[str, Optional[Observation], str, Reason]] = [
        ("pregnancy", pregnancy, cx.YES, Reason.PREGNANT_OR_BREASTFEEDING),
        ("hepatitis", inputs.problem, cx.HEPATITIS_B, Reason.HEPATITIS_COINFECTION),
    ]
    for rule_id, obs, answer, reason in coded_rules:
        hit = _coded_match(obs, decoder, answer, end)
        if hit is not None:
            ev.result = _with_override(reason, hit, inputs.treatment_start)
            ev.rule_trace.append(RuleCheck(rule_id, True, f"Matched observation at {hit.timestamp.isoformat()}."))
            return ev
        ev.rule_trace.append(RuleCheck(rule_id, False, "No qualifying observation in window."))

    try:
        tb_hit = _tb_match(inputs, decoder, end)
    except InconsistentStateError as e:
        ev.warnings.append(RuleWarning("tb_coinfection", str(e)))
        ev.rule_trace.append(RuleCheck("tb_coinfection", False, "Skipped: inconsistent TB state."))
        tb_hit = None
    else:
        if tb_hit is None:
            ev.rule_trace.append(RuleCheck("tb_coinfection", False, "No qualifying TB evidence in window."))
    if tb_hit is not None:
        ev.result = _with_override(Reason.TB_COINFECTION, tb_hit, inputs.treatment_start)
        ev.rule_trace.append(
            RuleCheck("tb_coinfection", True, f"Matched observation at {tb_hit.timestamp.isoformat()}.")
        )
        return ev

    hit = _coded_match(inputs.risk_factor, decoder, cx.DISCORDANT_COUPLE, end)
    if hit is not None:
        ev.result = _with_override(Reason.DISCORDANT_COUPLE, hit, inputs.treatment_start)
        ev.rule_trace.append(
            RuleCheck("discordant_couple", True, f"Matched observation at {hit.timestamp.isoformat()}.")
        )
        return ev
    ev.rule_trace.append(RuleCheck("discordant_couple", False, "No qualifying observation in window."))

    dates = CriterionDates(
        subject_id=subject.subject_id,
        cd4_obs=inputs.cd4,
        who_obs=inputs.who_stage,
        enrollment_date=enrollment_date,
        horizon_months=horizon,
        decoder=decoder,
        cd4_max=thresholds.get("cd4_max", DEFAULT_CD4_MAX),
        who_stages=tuple(thresholds.get("who_stages_qualifying", DEFAULT_WHO_STAGES)),
    )
    determination = select_by_age(
        subject.age_months,
        inputs.cd4,
        inputs.who_stage,
        inputs.treatment_start,
        enrollment_date,
        horizon,
        decoder,
        dates=dates,
        thresholds=thresholds,
    )
    ev.result = determination.to_result()
    ev.rule_trace.append(
        RuleCheck("age_band", ev.result is not None, f"{determination.kind.value} at age {subject.age_months} months.")
    )
    return ev
