#!/usr/bin/env python3
"""
ARTEligibility — Eligibility Contract Loader (v1)

Loads:
- rules/eligibility/contract_v1.json

Design:
- Deterministic
- Minimal validation (fail-closed)
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

REPO_ROOT = Path(__file__).resolve().parents[2]

CONTRACT_PATH = REPO_ROOT / "rules" / "eligibility" / "contract_v1.json"

_REQUIRED_THRESHOLDS = ("cd4_max", "child_max_age_months", "adolescent_max_age_months")


def _read_json(path: Path) -> Dict[str, Any]:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise SystemExit(f"Missing JSON: {path}")
    except json.JSONDecodeError as e:
        raise SystemExit(f"Invalid JSON: {path}\n{e}")


def validate_contract(obj: Dict[str, Any], name: str = "contract_v1.json") -> Dict[str, Any]:
    if obj.get("meta", {}).get("locked") is not True:
        raise SystemExit(f"{name} must have meta.locked=true")

    programs = obj.get("programs", {})
    if not isinstance(programs, dict) or not programs.get("primary") or not programs.get("secondary"):
        raise SystemExit(f"{name} missing programs.primary / programs.secondary")

    thresholds = obj.get("thresholds", {})
    if not isinstance(thresholds, dict):
        raise SystemExit(f"{name} missing thresholds")
    for key in _REQUIRED_THRESHOLDS:
        if not isinstance(thresholds.get(key), (int, float)):
            raise SystemExit(f"{name} missing thresholds.{key}")
    if thresholds["child_max_age_months"] >= thresholds["adolescent_max_age_months"]:
        raise SystemExit(f"{name} age bands overlap: child_max_age_months >= adolescent_max_age_months")

    concepts = obj.get("concepts", {})
    if not isinstance(concepts.get("answers"), dict) or not isinstance(concepts.get("who_stages"), dict):
        raise SystemExit(f"{name} missing concepts.answers / concepts.who_stages")

    return obj


def load_contract(path: Optional[Path] = None) -> Dict[str, Any]:
    path = path or CONTRACT_PATH
    return validate_contract(_read_json(path), name=path.name)


def default_horizon(contract: Dict[str, Any]) -> Optional[int]:
    value = (contract.get("horizon") or {}).get("default_months")
    return int(value) if value is not None else None
