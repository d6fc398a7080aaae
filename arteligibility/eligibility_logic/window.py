#!/usr/bin/env python3
"""
ARTEligibility — Observation Window Filter (v1)

Selects the earliest qualifying observation inside the evaluation window
[enrollment, enrollment + horizon months + 1 day).

Bounds:
- CD4: (enrollment - 1 day, window_end), exclusive on both sides
- WHO stage: [enrollment, window_end), inclusive lower bound

The two lower bounds differ and are kept as-is; see DESIGN.md.

Input order is assumed chronological ascending. Nothing here sorts.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, Optional, Sequence, Tuple

from dateutil.relativedelta import relativedelta

from arteligibility.eligibility_logic.concepts import ConceptDecoder
from arteligibility.eligibility_logic.model import Observation

DEFAULT_CD4_MAX = 500
DEFAULT_WHO_STAGES = (3, 4)

CRITERION_CD4 = "cd4"
CRITERION_WHO = "who_stage"


def window_end(enrollment_date: datetime, horizon_months: Optional[int]) -> datetime:
    """Exclusive upper bound of the observation window."""
    return enrollment_date + relativedelta(months=horizon_months or 0) + timedelta(days=1)


def select_earliest(
    observations: Iterable[Observation],
    predicate: Callable[[Observation], bool],
) -> Optional[datetime]:
    for obs in observations:
        if predicate(obs):
            return obs.timestamp
    return None


def cd4_date(
    observations: Sequence[Observation],
    enrollment_date: datetime,
    horizon_months: Optional[int],
    threshold: float = DEFAULT_CD4_MAX,
) -> Optional[datetime]:
    upper = window_end(enrollment_date, horizon_months)
    lower = enrollment_date - timedelta(days=1)

    def qualifies(obs: Observation) -> bool:
        if obs.value_numeric is None:
            return False
        return obs.value_numeric <= threshold and lower < obs.timestamp < upper

    return select_earliest(observations, qualifies)


def who_date(
    observations: Sequence[Observation],
    enrollment_date: datetime,
    horizon_months: Optional[int],
    decoder: ConceptDecoder,
    stages: Tuple[int, ...] = DEFAULT_WHO_STAGES,
) -> Optional[datetime]:
    upper = window_end(enrollment_date, horizon_months)

    def qualifies(obs: Observation) -> bool:
        stage = decoder.who_stage(obs.value_coded)
        if stage is None or stage not in stages:
            return False
        return enrollment_date <= obs.timestamp < upper

    return select_earliest(observations, qualifies)


class CriterionDates:
    """
    Per-subject memo of window-filtered criterion dates.

    Lives for a single subject evaluation; each criterion date is computed at
    most once no matter how many precedence branches ask for it.
    """

    def __init__(
        self,
        subject_id: str,
        cd4_obs: Sequence[Observation],
        who_obs: Sequence[Observation],
        enrollment_date: datetime,
        horizon_months: Optional[int],
        decoder: ConceptDecoder,
        cd4_max: float = DEFAULT_CD4_MAX,
        who_stages: Tuple[int, ...] = DEFAULT_WHO_STAGES,
    ):
        self.subject_id = subject_id
        self._cd4_obs = cd4_obs
        self._who_obs = who_obs
        self._enrollment_date = enrollment_date
        self._horizon_months = horizon_months
        self._decoder = decoder
        self._cd4_max = cd4_max
        self._who_stages = who_stages
        self._cache: Dict[Tuple[str, str], Optional[datetime]] = {}
        self.computations = 0

    def _get(self, criterion: str, compute: Callable[[], Optional[datetime]]) -> Optional[datetime]:
        key = (self.subject_id, criterion)
        if key not in self._cache:
            self.computations += 1
            self._cache[key] = compute()
        return self._cache[key]

    def cd4(self) -> Optional[datetime]:
        return self._get(
            CRITERION_CD4,
            lambda: cd4_date(self._cd4_obs, self._enrollment_date, self._horizon_months, self._cd4_max),
        )

    def who(self) -> Optional[datetime]:
        return self._get(
            CRITERION_WHO,
            lambda: who_date(
                self._who_obs, self._enrollment_date, self._horizon_months, self._decoder, self._who_stages
            ),
        )
