#!/usr/bin/env python3
"""
ARTEligibility Governance Failure Log — append-only observational record.

Records per-subject data problems and faults detected during a cohort
evaluation. Never modifies evaluation behavior.

Storage: JSON Lines format (one JSON object per line) at outputs/failure_log.jsonl

Categories:
- inconsistent_state: inputs contradict each other; a rule was skipped
- upstream: a collaborator lookup failed; the value was treated as absent
- subject_fault: the subject could not be evaluated; result degraded to absent
- data_quality: input rows dropped while loading

Detection sources:
- execution: Detected during a normal evaluation run
- ingestion: Detected while loading the cohort export
"""
from __future__ import annotations

import json
import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass
class FailureEntry:
    """A single governance failure record."""
    timestamp: str           # ISO 8601 timestamp
    section: str             # Rule or stage involved (e.g., "tb_coinfection", "treatment_start")
    category: str            # "inconsistent_state", "upstream", "subject_fault", "data_quality"
    description: str         # Factual, non-interpretive description
    command: str             # Triggering command or context (e.g., "batch_eval cohort.json")
    detection_source: str    # "execution", "ingestion"
    subject_id: Optional[str] = None   # Subject identifier if applicable
    metadata: Optional[Dict[str, Any]] = None  # Additional structured data


_DEFAULT_LOG_PATH = Path("outputs") / "failure_log.jsonl"


class FailureLog:
    """
    Append-only governance failure log.

    Appends are serialized with a lock so worker threads of one cohort run can
    share a log.
    """

    def __init__(self, log_path: Optional[Path] = None):
        self._path = log_path or _DEFAULT_LOG_PATH
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def append(self, entry: FailureEntry) -> None:
        """Append a failure entry to the log file."""
        record = asdict(entry)
        # Remove None values for cleaner output
        record = {k: v for k, v in record.items() if v is not None}
        line = json.dumps(record, default=str) + "\n"
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(line)

    def read_all(self) -> List[FailureEntry]:
        """Read all failure entries from the log file."""
        if not self._path.exists():
            return []

        entries: List[FailureEntry] = []
        with open(self._path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    continue  # Skip malformed lines
                entries.append(FailureEntry(
                    timestamp=data.get("timestamp", ""),
                    section=data.get("section", ""),
                    category=data.get("category", ""),
                    description=data.get("description", ""),
                    command=data.get("command", ""),
                    detection_source=data.get("detection_source", ""),
                    subject_id=data.get("subject_id"),
                    metadata=data.get("metadata"),
                ))

        return entries

    def count(self) -> int:
        """Count total entries without loading all into memory."""
        if not self._path.exists():
            return 0
        count = 0
        with open(self._path, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    count += 1
        return count

    def summary(self) -> Dict[str, int]:
        """Return counts by category."""
        counts: Dict[str, int] = {}
        for entry in self.read_all():
            counts[entry.category] = counts.get(entry.category, 0) + 1
        return counts


# ---------------------------------------------------------------------------
# Convenience functions for common failure types
# ---------------------------------------------------------------------------

def log_inconsistent_state(
    log: FailureLog,
    subject_id: str,
    rule_id: str,
    description: str,
    command: str = "",
) -> None:
    """Log a rule that was skipped because the subject's inputs conflict."""
    log.append(FailureEntry(
        timestamp=datetime.now().isoformat(),
        section=rule_id,
        category="inconsistent_state",
        description=description,
        command=command,
        detection_source="execution",
        subject_id=subject_id,
    ))


def log_upstream_failure(
    log: FailureLog,
    subject_id: str,
    lookup: str,
    error: str,
    command: str = "",
) -> None:
    """Log a collaborator lookup failure whose value was treated as absent."""
    log.append(FailureEntry(
        timestamp=datetime.now().isoformat(),
        section=lookup,
        category="upstream",
        description=f"{lookup} lookup failed; treated as absent",
        command=command,
        detection_source="execution",
        subject_id=subject_id,
        metadata={"error": error},
    ))


def log_subject_fault(
    log: FailureLog,
    subject_id: str,
    error: str,
    error_type: str,
    command: str = "",
) -> None:
    """Log a subject whose evaluation failed and whose result was degraded to absent."""
    log.append(FailureEntry(
        timestamp=datetime.now().isoformat(),
        section="evaluation",
        category="subject_fault",
        description=f"Subject evaluation failed: {error}",
        command=command,
        detection_source="execution",
        subject_id=subject_id,
        metadata={"error_type": error_type},
    ))


def log_dropped_input(
    log: FailureLog,
    subject_id: str,
    description: str,
    command: str = "",
) -> None:
    """Log an input row dropped while loading the cohort export."""
    log.append(FailureEntry(
        timestamp=datetime.now().isoformat(),
        section="ingestion",
        category="data_quality",
        description=description,
        command=command,
        detection_source="ingestion",
        subject_id=subject_id,
    ))
