"""Gerrit change model and query result parsing.

A Change is an immutable snapshot of one CL at one patchset, as returned by
the Gerrit ``/changes/`` endpoint. Only the fields the presubmit engine needs
are kept. The commit message carries three optional footers that drive the
engine:

    MultiPart: 2/3        this CL is part 2 of a 3-CL set sharing a topic
    PresubmitTest: none   skip presubmit tests for this CL
    AutoSubmit            submit automatically once all labels are approved
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum

from presubmit_core.gerrit.refs import parse_ref

_XSSI_GUARD = ")]}'"
_MULTI_PART_RE = re.compile(r"MultiPart:\s*(\d+)\s*/\s*(\d+)")
_PRESUBMIT_TEST_RE = re.compile(r"PresubmitTest:\s*(.*)")
_AUTO_SUBMIT_RE = re.compile(r"AutoSubmit")

# Gerrit LabelInfo keys that describe a vote state (the rest are
# "value", "default_value", "all", ...).
LABEL_STATES = ("approved", "rejected", "recommended", "disliked")


class PresubmitTestType(str, Enum):
    NONE = "none"
    ALL = "all"


@dataclass(frozen=True)
class MultiPart:
    """Position of a CL within a multi-part set. ``index`` is 1-based."""

    topic: str
    index: int
    total: int

    def is_well_formed(self) -> bool:
        return self.total > 0 and 1 <= self.index <= self.total


@dataclass(frozen=True)
class Change:
    ref: str
    project: str
    change_id: str = ""
    owner_email: str = ""
    labels: dict[str, frozenset[str]] = field(default_factory=dict)
    multi_part: MultiPart | None = None
    presubmit_test: PresubmitTestType = PresubmitTestType.ALL
    auto_submit: bool = False

    @property
    def cl_number(self) -> int:
        return parse_ref(self.ref)[0]

    @property
    def patchset(self) -> int:
        return parse_ref(self.ref)[1]

    def has_label(self, label: str) -> bool:
        return label in self.labels

    def label_approved(self, label: str) -> bool:
        return "approved" in self.labels.get(label, ())

    def to_dict(self) -> dict:
        """Serialise for the snapshot file."""
        d = {
            "ref": self.ref,
            "project": self.project,
            "change_id": self.change_id,
            "owner_email": self.owner_email,
            "labels": {name: sorted(states) for name, states in self.labels.items()},
            "presubmit_test": self.presubmit_test.value,
            "auto_submit": self.auto_submit,
            "multi_part": None,
        }
        if self.multi_part is not None:
            d["multi_part"] = {
                "topic": self.multi_part.topic,
                "index": self.multi_part.index,
                "total": self.multi_part.total,
            }
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Change:
        mp = d.get("multi_part")
        return cls(
            ref=d.get("ref", ""),
            project=d.get("project", ""),
            change_id=d.get("change_id", ""),
            owner_email=d.get("owner_email", ""),
            labels={name: frozenset(states) for name, states in (d.get("labels") or {}).items()},
            multi_part=MultiPart(mp.get("topic", ""), mp.get("index", 0), mp.get("total", 0)) if mp else None,
            presubmit_test=PresubmitTestType(d.get("presubmit_test", PresubmitTestType.ALL.value)),
            auto_submit=bool(d.get("auto_submit", False)),
        )


def parse_multi_part(message: str, topic: str) -> MultiPart | None:
    """Return the MultiPart footer of a commit message, or None."""
    match = _MULTI_PART_RE.search(message)
    if match is None:
        return None
    return MultiPart(topic=topic or "", index=int(match.group(1)), total=int(match.group(2)))


def parse_presubmit_test_type(message: str) -> PresubmitTestType:
    """Unknown or missing values mean ``all``."""
    match = _PRESUBMIT_TEST_RE.search(message)
    if match is not None and match.group(1).strip() == PresubmitTestType.NONE.value:
        return PresubmitTestType.NONE
    return PresubmitTestType.ALL


def parse_labels(labels: dict | None) -> dict[str, frozenset[str]]:
    result = {}
    for name, info in (labels or {}).items():
        info = info or {}
        result[name] = frozenset(state for state in LABEL_STATES if state in info)
    return result


def strip_xssi_guard(body: str) -> str:
    """Drop the ``)]}'`` line Gerrit prefixes every JSON response with."""
    if body.startswith(_XSSI_GUARD):
        _, _, body = body.partition("\n")
    return body


def parse_change(info: dict) -> Change:
    """Build a Change from one Gerrit ChangeInfo dict.

    The ref comes from the current revision. Gerrit leaves it empty for
    revisions it cannot serve (e.g. while a rebase conflict is pending);
    such changes are kept with an empty ref and skipped downstream.
    """
    revision = (info.get("revisions") or {}).get(info.get("current_revision") or "", {})
    ref = revision.get("ref") or revision.get("fetch", {}).get("http", {}).get("ref", "")
    message = revision.get("commit", {}).get("message", "")
    return Change(
        ref=ref,
        project=info.get("project", ""),
        change_id=info.get("change_id", ""),
        owner_email=(info.get("owner") or {}).get("email", ""),
        labels=parse_labels(info.get("labels")),
        multi_part=parse_multi_part(message, info.get("topic", "")),
        presubmit_test=parse_presubmit_test_type(message),
        auto_submit=bool(_AUTO_SUBMIT_RE.search(message)),
    )


def parse_query_results(body: str) -> list[Change]:
    """Parse the raw text of a Gerrit ``/changes/`` response."""
    changes = json.loads(strip_xssi_guard(body))
    return [parse_change(info) for info in changes]
