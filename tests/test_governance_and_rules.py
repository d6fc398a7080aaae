import json

import pytest

from arteligibility.eligibility_logic.concepts import YES, ConceptDecoder
from arteligibility.eligibility_logic.model import EvaluationContext
from arteligibility.eligibility_logic.rules_loader import default_horizon, load_contract, validate_contract
from arteligibility.governance.failure_log import (
    FailureEntry,
    FailureLog,
    log_dropped_input,
    log_inconsistent_state,
    log_subject_fault,
    log_upstream_failure,
)

from conftest import dt


def test_contract_loads_and_is_locked(contract):
    assert contract["meta"]["locked"] is True
    assert contract["programs"] == {"primary": "hiv", "secondary": "tb"}
    assert contract["thresholds"]["cd4_max"] == 500
    assert default_horizon(contract) is None


def test_unlocked_contract_fails_closed(tmp_path):
    p = tmp_path / "contract.json"
    p.write_text(json.dumps({"meta": {"locked": False}}), encoding="utf-8")
    with pytest.raises(SystemExit):
        load_contract(p)


def test_overlapping_age_bands_fail_closed(contract):
    broken = json.loads(json.dumps(contract))
    broken["thresholds"]["child_max_age_months"] = 200
    with pytest.raises(SystemExit):
        validate_contract(broken)


def test_missing_concepts_fail_closed(contract):
    broken = json.loads(json.dumps(contract))
    del broken["concepts"]["who_stages"]
    with pytest.raises(SystemExit):
        validate_contract(broken)


def test_concept_decoder(decoder):
    assert decoder.who_stage("WHO_STAGE_4_ADULT") == 4
    assert decoder.who_stage(" who_stage_3_peds ") == 3
    assert decoder.who_stage("1207") == 4
    assert decoder.who_stage("nonsense") is None
    assert decoder.who_stage(None) is None
    assert decoder.is_answer("yes", YES)
    assert decoder.is_answer("1065", YES)
    assert not decoder.is_answer("NO", YES)
    assert not decoder.is_answer(None, YES)


def test_decoder_strips_dictionary_keys():
    d = ConceptDecoder({
        "answers": {YES: [" yes ", "1065 "]},
        "who_stages": {" WHO_STAGE_3_ADULT ": 3, "1206\n": 3},
    })
    assert d.who_stage("WHO_STAGE_3_ADULT") == 3
    assert d.who_stage("1206") == 3
    assert d.is_answer("YES", YES)
    assert d.is_answer("1065", YES)


def test_empty_decoder_matches_nothing():
    d = ConceptDecoder({})
    assert d.who_stage("WHO_STAGE_4_ADULT") is None
    assert not d.is_answer("YES", YES)


def test_context_shift_is_a_copy():
    ctx = EvaluationContext(now=dt("2020-01-31"), horizon_months=1)
    shifted = ctx.shifted()
    assert shifted.now == dt("2020-02-29")
    assert ctx.now == dt("2020-01-31")
    assert EvaluationContext(now=dt("2020-01-31")).shifted().now == dt("2020-01-31")


def test_failure_log_round_trip(tmp_path):
    log = FailureLog(tmp_path / "logs" / "failure_log.jsonl")
    assert log.read_all() == []
    assert log.count() == 0

    log_inconsistent_state(log, "S1", "tb_coinfection", "TB program member has no TB status")
    log_upstream_failure(log, "S2", "treatment_start", "timeout")
    log_subject_fault(log, "S3", "boom", "ValueError")
    log_dropped_input(log, "S4", "Unparseable timestamp")

    assert log.count() == 4
    assert log.summary() == {
        "inconsistent_state": 1,
        "upstream": 1,
        "subject_fault": 1,
        "data_quality": 1,
    }
    entries = log.read_all()
    assert entries[1].metadata == {"error": "timeout"}
    assert entries[3].detection_source == "ingestion"


def test_failure_log_skips_malformed_lines(tmp_path):
    path = tmp_path / "failure_log.jsonl"
    log = FailureLog(path)
    log.append(FailureEntry(
        timestamp="2020-01-01T00:00:00",
        section="evaluation",
        category="subject_fault",
        description="x",
        command="",
        detection_source="execution",
    ))
    with open(path, "a", encoding="utf-8") as f:
        f.write("{broken\n\n")
    assert len(log.read_all()) == 1
    assert "subject_id" not in path.read_text(encoding="utf-8").splitlines()[0]
