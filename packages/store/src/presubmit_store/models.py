"""Dispatch history data models.

Decoupled from presubmit_core so the store layer can be used independently
and presubmit_core has no knowledge of persistence concerns.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class DispatchRecord:
    """What one poll round did with one CL list.

    Created by the CLI layer after run_query() returns a QuerySummary.
    The CLI maps each DispatchOutcome → DispatchRecord before calling store.save().
    """

    refs: list[str]
    cl_numbers: list[int]
    projects: list[str]
    outcome: str  # "PASS" | "FAIL" | "SKIP"
    reason: str
    dispatched_at: str  # ISO-8601 UTC timestamp
    tests: list[str] = field(default_factory=list)
