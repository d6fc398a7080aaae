#!/usr/bin/env python3
"""
ARTEligibility — Treatment Precedence Resolver (v1)

Decides whether the externally supplied treatment (ART) start date precedes
every window-filtered criterion date, in which case it becomes the basis of
the result instead of a clinical criterion.

The four rules are independent checks, not an if/elif chain: each one may set
the result.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from arteligibility.eligibility_logic.window import window_end


def resolve_precedence(
    treatment_start: Optional[datetime],
    cd4_date: Optional[datetime],
    who_date: Optional[datetime],
    enrollment_date: datetime,
    horizon_months: Optional[int],
) -> Optional[datetime]:
    if treatment_start is None:
        return None

    upper = window_end(enrollment_date, horizon_months)
    resolved: Optional[datetime] = None

    # 1. no criterion date at all
    if cd4_date is None and who_date is None and treatment_start < upper:
        resolved = treatment_start

    # 2. WHO date only
    if who_date is not None and cd4_date is None and treatment_start < who_date and treatment_start < upper:
        resolved = treatment_start

    # 3. CD4 date only
    if cd4_date is not None and who_date is None and treatment_start < cd4_date and treatment_start < upper:
        resolved = treatment_start

    # 4. both; upper bound is not re-checked here
    if cd4_date is not None and who_date is not None:
        if treatment_start < who_date and treatment_start < cd4_date:
            resolved = treatment_start

    return resolved
