#!/usr/bin/env python3
"""
Concept dictionary lookups.

Coded observation values are opaque strings in the input; the contract maps
them onto WHO stage integers and a small set of named answers.
"""

from __future__ import annotations

from typing import Any, Dict, FrozenSet, Optional

YES = "yes"
HEPATITIS_B = "hepatitis_b"
DISEASE_DIAGNOSED = "disease_diagnosed"
ON_TREATMENT_FOR_DISEASE = "on_treatment_for_disease"
DISCORDANT_COUPLE = "discordant_couple"


class ConceptDecoder:
    """Decode coded values using the contract's concept dictionary."""

    def __init__(self, concepts: Dict[str, Any]):
        self._answers: Dict[str, FrozenSet[str]] = {
            name: frozenset(str(c).strip().upper() for c in codes)
            for name, codes in (concepts.get("answers") or {}).items()
        }
        self._who_stages: Dict[str, int] = {
            str(code).strip().upper(): int(stage)
            for code, stage in (concepts.get("who_stages") or {}).items()
        }

    @classmethod
    def from_contract(cls, contract: Dict[str, Any]) -> "ConceptDecoder":
        return cls(contract.get("concepts", {}))

    def who_stage(self, coded: Optional[str]) -> Optional[int]:
        if coded is None:
            return None
        return self._who_stages.get(str(coded).strip().upper())

    def is_answer(self, coded: Optional[str], answer: str) -> bool:
        if coded is None:
            return False
        return str(coded).strip().upper() in self._answers.get(answer, frozenset())
