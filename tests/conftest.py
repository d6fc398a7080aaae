from datetime import datetime

import pytest

from arteligibility.eligibility_logic.concepts import ConceptDecoder
from arteligibility.eligibility_logic.model import (
    EvaluationContext,
    Observation,
    ObservationType,
    Subject,
)
from arteligibility.eligibility_logic.rules_loader import load_contract


def dt(s: str) -> datetime:
    return datetime.fromisoformat(s)


def obs(obs_type, when, coded=None, numeric=None, subject_id="S1"):
    return Observation(
        subject_id=subject_id,
        obs_type=obs_type,
        timestamp=dt(when),
        value_coded=coded,
        value_numeric=numeric,
    )


def cd4(when, value, subject_id="S1"):
    return obs(ObservationType.CD4_COUNT, when, numeric=value, subject_id=subject_id)


def who(when, code, subject_id="S1"):
    return obs(ObservationType.WHO_STAGE, when, coded=code, subject_id=subject_id)


def enrolled_subject(age_months=240, enrolled="2020-01-01", sex="F", tb=False, subject_id="S1"):
    return Subject(
        subject_id=subject_id,
        age_months=age_months,
        enrollment_date=dt(enrolled),
        in_primary_program=True,
        in_secondary_program=tb,
        sex=sex,
    )


@pytest.fixture(scope="session")
def contract():
    return load_contract()


@pytest.fixture(scope="session")
def decoder(contract):
    return ConceptDecoder.from_contract(contract)


@pytest.fixture
def context(contract):
    return EvaluationContext(now=dt("2020-07-01"), horizon_months=6, config=contract)
