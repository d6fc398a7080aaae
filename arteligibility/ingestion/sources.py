#!/usr/bin/env python3
"""
Collaborator contracts consumed by the cohort driver, and an in-memory
implementation backed by parsed cohort records.

Contracts:
- age_months(subject_id, as_of) -> int
- enrollment(subject_id, program) -> Optional[Enrollment]   (first enrollment)
- in_program(subject_id, program, as_of) -> bool
- observations(subject_id, obs_type, mode, as_of) -> List[Observation]
- treatment_start_date(subject_id) -> Optional[datetime]

Observation lookups only see observations on or before `as_of`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from dateutil.relativedelta import relativedelta

from arteligibility.eligibility_logic.errors import EligibilityError, UpstreamLookupError
from arteligibility.eligibility_logic.model import Enrollment, Observation, ObservationType

MODE_ALL = "all"
MODE_MOST_RECENT = "most-recent"


class CohortSource:
    """Abstract collaborator interface."""

    def subject_ids(self) -> List[str]:
        raise NotImplementedError

    def age_months(self, subject_id: str, as_of: datetime) -> int:
        raise NotImplementedError

    def sex(self, subject_id: str) -> Optional[str]:
        return None

    def enrollment(self, subject_id: str, program: str) -> Optional[Enrollment]:
        raise NotImplementedError

    def in_program(self, subject_id: str, program: str, as_of: datetime) -> bool:
        raise NotImplementedError

    def observations(
        self,
        subject_id: str,
        obs_type: ObservationType,
        mode: str = MODE_ALL,
        as_of: Optional[datetime] = None,
    ) -> List[Observation]:
        raise NotImplementedError

    def treatment_start_date(self, subject_id: str) -> Optional[datetime]:
        raise NotImplementedError


@dataclass
class SubjectRecord:
    """Raw per-subject data as loaded from a cohort export."""
    subject_id: str
    sex: Optional[str] = None
    birth_date: Optional[datetime] = None
    age_months: Optional[int] = None
    enrollments: List[Enrollment] = field(default_factory=list)
    art_start_date: Optional[datetime] = None
    art_start_error: Optional[str] = None
    observations: List[Observation] = field(default_factory=list)


def full_months_between(start: datetime, end: datetime) -> int:
    delta = relativedelta(end, start)
    return delta.years * 12 + delta.months


class InMemoryCohortSource(CohortSource):
    """CohortSource over already-materialized SubjectRecords."""

    def __init__(self, records: List[SubjectRecord]):
        self._records: Dict[str, SubjectRecord] = {}
        for r in records:
            self._records[r.subject_id] = r

    def _record(self, subject_id: str) -> SubjectRecord:
        try:
            return self._records[subject_id]
        except KeyError:
            raise EligibilityError(f"Unknown subject: {subject_id}", subject_id=subject_id)

    def subject_ids(self) -> List[str]:
        return list(self._records.keys())

    def age_months(self, subject_id: str, as_of: datetime) -> int:
        r = self._record(subject_id)
        if r.age_months is not None:
            return int(r.age_months)
        if r.birth_date is None:
            raise EligibilityError("Neither age_months nor birth_date recorded", subject_id=subject_id)
        return full_months_between(r.birth_date, as_of)

    def sex(self, subject_id: str) -> Optional[str]:
        return self._record(subject_id).sex

    def enrollment(self, subject_id: str, program: str) -> Optional[Enrollment]:
        matches = [e for e in self._record(subject_id).enrollments if e.program == program]
        if not matches:
            return None
        return min(matches, key=lambda e: e.date_enrolled)

    def in_program(self, subject_id: str, program: str, as_of: datetime) -> bool:
        return any(
            e.program == program and e.active_on(as_of)
            for e in self._record(subject_id).enrollments
        )

    def observations(
        self,
        subject_id: str,
        obs_type: ObservationType,
        mode: str = MODE_ALL,
        as_of: Optional[datetime] = None,
    ) -> List[Observation]:
        if mode not in (MODE_ALL, MODE_MOST_RECENT):
            raise ValueError(f"Unknown observation lookup mode: {mode}")
        obs = [
            o for o in self._record(subject_id).observations
            if o.obs_type == obs_type and (as_of is None or o.timestamp <= as_of)
        ]
        obs.sort(key=lambda o: o.timestamp)
        if mode == MODE_MOST_RECENT:
            return obs[-1:]
        return obs

    def treatment_start_date(self, subject_id: str) -> Optional[datetime]:
        r = self._record(subject_id)
        if r.art_start_error:
            raise UpstreamLookupError(r.art_start_error, subject_id=subject_id)
        return r.art_start_date
