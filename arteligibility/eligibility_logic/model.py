#!/usr/bin/env python3
"""
ARTEligibility — Eligibility Logic Data Models (v1)

Defines the core data structures for the eligibility engine:
- Observation: a single time-stamped clinical observation
- Subject: per-subject snapshot (age, enrollment, program flags)
- EvaluationContext: immutable evaluation time + horizon + contract
- Reason: closed set of eligibility criterion labels
- EligibilityResult: final (reason, date) record for a subject
- Determination: tagged outcome of a decision table
- RuleCheck / SubjectEvaluation: per-subject rule trace

Design:
- Deterministic
- Read-only snapshots: nothing here is mutated after construction
- Fail-closed: missing data → no determination (never guessed)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from dateutil.relativedelta import relativedelta


class ObservationType(Enum):
    """Clinical observation streams consumed by the engine."""
    WHO_STAGE = "WHO_STAGE"
    CD4_COUNT = "CD4_COUNT"
    PREGNANCY_STATUS = "PREGNANCY_STATUS"
    PROBLEM_ADDED = "PROBLEM_ADDED"  # problem list (hepatitis)
    HIV_RISK_FACTOR = "HIV_RISK_FACTOR"
    TB_DISEASE_STATUS = "TB_DISEASE_STATUS"


class Reason(Enum):
    """Human-readable eligibility criterion labels."""
    PREGNANT_OR_BREASTFEEDING = "Pregnant or breastfeeding"
    HEPATITIS_COINFECTION = "HPV/HIV coinfection"
    TB_COINFECTION = "TB/HIV co infection"
    DISCORDANT_COUPLE = "Discordant couple (HIV-negative partner)"
    AGE_10_AND_BELOW = "Age 10 years and below"
    WHO_STAGE = "WHO stage = Stage IV"
    CD4_COUNT = "CD4 count<=500"


class DeterminationKind(Enum):
    """
    Tagged outcome of an eligibility decision table.

    - CRITERION: a clinical criterion applies (reason + qualifying date)
    - ON_TREATMENT: treatment started before any criterion (date only)
    - NO_DETERMINATION: nothing applies; the subject gets no result
    """
    CRITERION = "CRITERION"
    ON_TREATMENT = "ON_TREATMENT"
    NO_DETERMINATION = "NO_DETERMINATION"


@dataclass(frozen=True)
class Observation:
    """A single clinical observation.

    Attributes:
        subject_id: Owning subject
        obs_type: Clinical stream the observation belongs to
        timestamp: When the observation was recorded
        value_coded: Coded answer (decoded through the concept dictionary)
        value_numeric: Numeric answer (e.g. CD4 count)
    """
    subject_id: str
    obs_type: ObservationType
    timestamp: datetime
    value_coded: Optional[str] = None
    value_numeric: Optional[float] = None


@dataclass(frozen=True)
class Enrollment:
    """A single program enrollment."""
    program: str
    date_enrolled: datetime
    date_completed: Optional[datetime] = None

    def active_on(self, when: datetime) -> bool:
        if self.date_enrolled > when:
            return False
        return self.date_completed is None or self.date_completed > when


@dataclass(frozen=True)
class Subject:
    """Per-subject snapshot as of the evaluation time.

    Attributes:
        subject_id: Subject identifier
        age_months: Full months of age at the (shifted) evaluation time
        enrollment_date: First enrollment date in the primary program
        in_primary_program: Active in the primary (HIV) program
        in_secondary_program: Active in the secondary (TB) program
        sex: "F", "M" or None when unrecorded
    """
    subject_id: str
    age_months: int
    enrollment_date: Optional[datetime] = None
    in_primary_program: bool = False
    in_secondary_program: bool = False
    sex: Optional[str] = None


@dataclass(frozen=True)
class EvaluationContext:
    """Immutable evaluation time and horizon, threaded through every call."""
    now: datetime
    horizon_months: Optional[int] = None
    config: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def window_months(self) -> int:
        return self.horizon_months or 0

    def shifted(self) -> "EvaluationContext":
        """Return a copy whose `now` is moved forward by the horizon."""
        if not self.horizon_months:
            return self
        return replace(self, now=self.now + relativedelta(months=self.horizon_months))


@dataclass(frozen=True)
class EligibilityResult:
    """Final eligibility record.

    `reason` is None when treatment began before the subject became eligible
    by any criterion; `date` then carries the treatment start date.
    """
    reason: Optional[Reason]
    date: datetime

    @property
    def on_treatment(self) -> bool:
        return self.reason is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason.value if self.reason else None,
            "date": self.date.isoformat(),
        }


@dataclass(frozen=True)
class Determination:
    """Outcome of a decision table; total over all input combinations."""
    kind: DeterminationKind
    reason: Optional[Reason] = None
    date: Optional[datetime] = None

    @classmethod
    def criterion(cls, reason: Reason, date: datetime) -> "Determination":
        return cls(DeterminationKind.CRITERION, reason, date)

    @classmethod
    def on_treatment(cls, date: datetime) -> "Determination":
        return cls(DeterminationKind.ON_TREATMENT, None, date)

    @classmethod
    def none(cls) -> "Determination":
        return cls(DeterminationKind.NO_DETERMINATION)

    def to_result(self) -> Optional[EligibilityResult]:
        if self.kind == DeterminationKind.NO_DETERMINATION:
            return None
        return EligibilityResult(reason=self.reason, date=self.date)


@dataclass
class RuleCheck:
    """Result of evaluating a single priority rule.

    Attributes:
        rule_id: Identifier of the rule (e.g. "pregnancy", "age_band")
        matched: Whether the rule produced the subject's result
        detail: Explanation of the result
    """
    rule_id: str
    matched: bool
    detail: str


@dataclass(frozen=True)
class RuleWarning:
    """Non-fatal inconsistency found while evaluating one rule."""
    rule_id: str
    message: str


@dataclass
class SubjectEvaluation:
    """Final evaluation of one subject.

    Attributes:
        subject_id: Subject identifier
        result: Eligibility result, or None when no determination was made
        rule_trace: Rules evaluated, in priority order
        warnings: Non-fatal data problems, tagged with the rule that found them
    """
    subject_id: str
    result: Optional[EligibilityResult] = None
    rule_trace: List[RuleCheck] = field(default_factory=list)
    warnings: List[RuleWarning] = field(default_factory=list)
