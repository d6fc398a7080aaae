#!/usr/bin/env python3
"""
ARTEligibility — Build SubjectRecords from a JSON cohort export (v1)

Expected shape:

    {
      "meta": {...},
      "subjects": [
        {
          "subject_id": "1001",
          "sex": "F",
          "birth_date": "1990-05-01",          # or "age_months": 200
          "programs": {
            "hiv": [{"date_enrolled": "2020-01-01", "date_completed": null}],
            "tb":  []
          },
          "art_start_date": "2020-01-15",
          "observations": [
            {"type": "CD4_COUNT", "timestamp": "2020-02-01", "value_numeric": 480},
            {"type": "WHO_STAGE", "timestamp": "2020-02-01", "value_coded": "WHO_STAGE_4_ADULT"}
          ]
        }
      ]
    }

Design:
- Deterministic
- Fail-closed: unparseable timestamps → observation dropped with a warning
  (never guessed)
- An unparseable art_start_date is kept as an upstream lookup failure for
  that subject, not a load error
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from arteligibility.eligibility_logic.model import Enrollment, Observation, ObservationType
from arteligibility.ingestion.sources import InMemoryCohortSource, SubjectRecord


_TS_PATTERNS = [
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
]


def parse_ts(ts: Optional[str]) -> Optional[datetime]:
    if not ts:
        return None
    s = str(ts).strip()
    if s.endswith("Z"):
        s = s[:-1]
    for fmt in _TS_PATTERNS:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue
    return None


def _parse_observation(subject_id: str, raw: Dict[str, Any]) -> Tuple[Optional[Observation], Optional[str]]:
    type_name = str(raw.get("type") or "").upper()
    try:
        obs_type = ObservationType(type_name)
    except ValueError:
        return None, f"Unknown observation type '{type_name}'"

    ts = parse_ts(raw.get("timestamp"))
    if ts is None:
        return None, f"Unparseable timestamp '{raw.get('timestamp')}' on {type_name} observation"

    numeric = raw.get("value_numeric")
    if numeric is not None:
        try:
            numeric = float(numeric)
        except (TypeError, ValueError):
            return None, f"Non-numeric value '{numeric}' on {type_name} observation"

    coded = raw.get("value_coded")
    return Observation(
        subject_id=subject_id,
        obs_type=obs_type,
        timestamp=ts,
        value_coded=str(coded) if coded is not None else None,
        value_numeric=numeric,
    ), None


def _parse_enrollments(programs: Dict[str, Any]) -> List[Enrollment]:
    out: List[Enrollment] = []
    for program, entries in (programs or {}).items():
        if isinstance(entries, dict):
            entries = [entries]
        for entry in entries or []:
            enrolled = parse_ts(entry.get("date_enrolled"))
            if enrolled is None:
                continue
            out.append(Enrollment(
                program=str(program),
                date_enrolled=enrolled,
                date_completed=parse_ts(entry.get("date_completed")),
            ))
    return out


def build_subject_record(raw: Dict[str, Any]) -> Tuple[SubjectRecord, List[str]]:
    """Parse one subject entry. Returns the record and any load warnings."""
    subject_id = str(raw.get("subject_id"))
    warnings: List[str] = []

    observations: List[Observation] = []
    for o in raw.get("observations", []) or []:
        obs, warning = _parse_observation(subject_id, o)
        if obs is not None:
            observations.append(obs)
        if warning:
            warnings.append(warning)

    art_raw = raw.get("art_start_date")
    art_start = parse_ts(art_raw)
    art_error = None
    if art_raw and art_start is None:
        art_error = f"Unparseable treatment start date '{art_raw}'"

    age = raw.get("age_months")
    if age is not None:
        try:
            age = int(age)
        except (TypeError, ValueError):
            warnings.append(f"Non-integer age_months '{age}'")
            age = None

    record = SubjectRecord(
        subject_id=subject_id,
        sex=raw.get("sex"),
        birth_date=parse_ts(raw.get("birth_date")),
        age_months=age,
        enrollments=_parse_enrollments(raw.get("programs", {})),
        art_start_date=art_start,
        art_start_error=art_error,
        observations=observations,
    )
    return record, warnings


def build_cohort(payload: Dict[str, Any]) -> Tuple[InMemoryCohortSource, Dict[str, List[str]]]:
    records: List[SubjectRecord] = []
    load_warnings: Dict[str, List[str]] = {}
    for raw in payload.get("subjects", []) or []:
        record, warnings = build_subject_record(raw)
        records.append(record)
        if warnings:
            load_warnings[record.subject_id] = warnings
    return InMemoryCohortSource(records), load_warnings


def load_cohort_file(path: Path) -> Tuple[InMemoryCohortSource, Dict[str, List[str]]]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise SystemExit(f"Missing cohort file: {path}")
    except json.JSONDecodeError as e:
        raise SystemExit(f"Invalid cohort JSON: {path}\n{e}")
    if not isinstance(payload.get("subjects"), list):
        raise SystemExit(f"{path} missing subjects[]")
    return build_cohort(payload)
