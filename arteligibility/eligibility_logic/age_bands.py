#!/usr/bin/env python3
"""
ARTEligibility — Age-Banded Criterion Selector (v1)

Bands (age in full months at the evaluation time):
- <= 120          automatic eligibility at enrollment ("Age 10 years and below")
- 121 .. 180      WHO stage 3/4 vs. treatment precedence
- > 180           CD4 <= 500 vs. treatment precedence

Every branch returns a Determination, including NO_DETERMINATION, so all
combinations of present/absent dates are covered.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from arteligibility.eligibility_logic.concepts import ConceptDecoder
from arteligibility.eligibility_logic.model import Determination, Observation, Reason
from arteligibility.eligibility_logic.precedence import resolve_precedence
from arteligibility.eligibility_logic.window import (
    DEFAULT_CD4_MAX,
    DEFAULT_WHO_STAGES,
    CriterionDates,
)

CHILD_MAX_AGE_MONTHS = 120
ADOLESCENT_MAX_AGE_MONTHS = 180


def decide(
    art_date: Optional[datetime],
    criterion_date: Optional[datetime],
    treatment_start: Optional[datetime],
    reason: Reason,
) -> Determination:
    """Decision table shared by the 10-15 and >15 year bands."""
    if art_date is not None and criterion_date is not None:
        if art_date < criterion_date:
            return Determination.on_treatment(treatment_start)
        # equal or later: the criterion wins
        return Determination.criterion(reason, criterion_date)
    if criterion_date is not None:
        return Determination.criterion(reason, criterion_date)
    if art_date is not None:
        return Determination.on_treatment(treatment_start)
    return Determination.none()


def select_by_age(
    age_months: int,
    cd4_obs: Sequence[Observation],
    who_obs: Sequence[Observation],
    treatment_start: Optional[datetime],
    enrollment_date: datetime,
    horizon_months: Optional[int],
    decoder: ConceptDecoder,
    dates: Optional[CriterionDates] = None,
    thresholds: Optional[Dict[str, Any]] = None,
) -> Determination:
    thresholds = thresholds or {}
    child_max = int(thresholds.get("child_max_age_months", CHILD_MAX_AGE_MONTHS))
    adolescent_max = int(thresholds.get("adolescent_max_age_months", ADOLESCENT_MAX_AGE_MONTHS))

    if age_months <= child_max:
        return Determination.criterion(Reason.AGE_10_AND_BELOW, enrollment_date)

    if dates is None:
        dates = CriterionDates(
            subject_id="",
            cd4_obs=cd4_obs,
            who_obs=who_obs,
            enrollment_date=enrollment_date,
            horizon_months=horizon_months,
            decoder=decoder,
            cd4_max=thresholds.get("cd4_max", DEFAULT_CD4_MAX),
            who_stages=tuple(thresholds.get("who_stages_qualifying", DEFAULT_WHO_STAGES)),
        )

    art_date = resolve_precedence(treatment_start, dates.cd4(), dates.who(), enrollment_date, horizon_months)

    if age_months <= adolescent_max:
        return decide(art_date, dates.who(), treatment_start, Reason.WHO_STAGE)
    return decide(art_date, dates.cd4(), treatment_start, Reason.CD4_COUNT)
