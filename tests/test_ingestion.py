import json

import pytest

from arteligibility.eligibility_logic.errors import EligibilityError, UpstreamLookupError
from arteligibility.eligibility_logic.model import ObservationType
from arteligibility.ingestion.build_subject_facts import (
    build_cohort,
    build_subject_record,
    load_cohort_file,
    parse_ts,
)
from arteligibility.ingestion.sources import MODE_ALL, MODE_MOST_RECENT, full_months_between

from conftest import dt


def test_parse_ts_formats():
    assert parse_ts("2020-01-15") == dt("2020-01-15")
    assert parse_ts("2020-01-15T08:30:00Z") == dt("2020-01-15T08:30:00")
    assert parse_ts("2020-01-15 08:30") == dt("2020-01-15T08:30:00")
    assert parse_ts("01/15/2020") == dt("2020-01-15")
    assert parse_ts("") is None
    assert parse_ts(None) is None
    assert parse_ts("yesterday") is None


def test_bad_observations_are_dropped_with_warnings():
    record, warnings = build_subject_record({
        "subject_id": 7,
        "observations": [
            {"type": "CD4_COUNT", "timestamp": "2020-02-01", "value_numeric": "350"},
            {"type": "CD4_COUNT", "timestamp": "someday", "value_numeric": 100},
            {"type": "VIRAL_LOAD", "timestamp": "2020-02-01", "value_numeric": 100},
            {"type": "CD4_COUNT", "timestamp": "2020-02-01", "value_numeric": "high"},
        ],
    })
    assert record.subject_id == "7"
    assert len(record.observations) == 1
    assert record.observations[0].value_numeric == 350.0
    assert len(warnings) == 3


def test_observations_are_time_ordered_and_bounded_by_as_of():
    source, _ = build_cohort({"subjects": [{
        "subject_id": "A",
        "observations": [
            {"type": "CD4_COUNT", "timestamp": "2020-03-01", "value_numeric": 300},
            {"type": "CD4_COUNT", "timestamp": "2020-01-01", "value_numeric": 400},
            {"type": "CD4_COUNT", "timestamp": "2020-02-01", "value_numeric": 500},
            {"type": "WHO_STAGE", "timestamp": "2020-02-01", "value_coded": "WHO_STAGE_3_ADULT"},
        ],
    }]})
    all_cd4 = source.observations("A", ObservationType.CD4_COUNT, MODE_ALL)
    assert [o.timestamp for o in all_cd4] == [dt("2020-01-01"), dt("2020-02-01"), dt("2020-03-01")]

    latest = source.observations("A", ObservationType.CD4_COUNT, MODE_MOST_RECENT, as_of=dt("2020-02-15"))
    assert [o.value_numeric for o in latest] == [500.0]

    assert source.observations("A", ObservationType.PREGNANCY_STATUS, MODE_MOST_RECENT) == []

    with pytest.raises(ValueError):
        source.observations("A", ObservationType.CD4_COUNT, "first")


def test_enrollment_and_program_membership():
    source, _ = build_cohort({"subjects": [{
        "subject_id": "A",
        "programs": {
            "hiv": [
                {"date_enrolled": "2019-06-01", "date_completed": "2019-09-01"},
                {"date_enrolled": "2020-01-01"},
            ],
            "tb": {"date_enrolled": "2020-02-01", "date_completed": "2020-05-01"},
        },
    }]})
    assert source.enrollment("A", "hiv").date_enrolled == dt("2019-06-01")
    assert source.enrollment("A", "tb").date_enrolled == dt("2020-02-01")
    assert source.enrollment("A", "pmtct") is None

    assert source.in_program("A", "hiv", dt("2020-03-01"))
    assert not source.in_program("A", "hiv", dt("2019-10-01"))
    assert source.in_program("A", "tb", dt("2020-03-01"))
    assert not source.in_program("A", "tb", dt("2020-06-01"))


def test_age_lookup():
    source, _ = build_cohort({"subjects": [
        {"subject_id": "A", "age_months": 150},
        {"subject_id": "B", "birth_date": "2000-01-31"},
        {"subject_id": "C"},
    ]})
    assert source.age_months("A", dt("2030-01-01")) == 150
    assert source.age_months("B", dt("2010-01-30")) == 119
    assert source.age_months("B", dt("2010-01-31")) == 120
    with pytest.raises(EligibilityError):
        source.age_months("C", dt("2010-01-01"))


def test_full_months_between():
    assert full_months_between(dt("2020-01-15"), dt("2020-03-14")) == 1
    assert full_months_between(dt("2020-01-15"), dt("2020-03-15")) == 2


def test_treatment_start_lookup():
    source, _ = build_cohort({"subjects": [
        {"subject_id": "A", "art_start_date": "2020-01-15"},
        {"subject_id": "B"},
        {"subject_id": "C", "art_start_date": "15th of Jan"},
    ]})
    assert source.treatment_start_date("A") == dt("2020-01-15")
    assert source.treatment_start_date("B") is None
    with pytest.raises(UpstreamLookupError):
        source.treatment_start_date("C")


def test_load_cohort_file_errors(tmp_path):
    with pytest.raises(SystemExit):
        load_cohort_file(tmp_path / "missing.json")

    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(SystemExit):
        load_cohort_file(bad)

    no_subjects = tmp_path / "empty.json"
    no_subjects.write_text(json.dumps({"meta": {}}), encoding="utf-8")
    with pytest.raises(SystemExit):
        load_cohort_file(no_subjects)
