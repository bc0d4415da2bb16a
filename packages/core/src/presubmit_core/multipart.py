"""Accumulator for the parts of a multi-part CL set."""

from __future__ import annotations

from presubmit_core.errors import DuplicateIndexError, NotMultiPartError, TopicMismatchError, TotalMismatchError
from presubmit_core.gerrit.change import Change

_UNSET_TOTAL = -1


class MultiPartCLSet:
    """Collects the CLs sharing a topic until every part has been seen.

    The first part added fixes the expected total and topic; later parts
    must agree with both and must not reuse an index. A rejected part leaves
    the set exactly as it was.
    """

    def __init__(self) -> None:
        self._parts: dict[int, Change] = {}
        self.expected_total = _UNSET_TOTAL
        self.expected_topic = ""

    def add_cl(self, change: Change) -> None:
        mp = change.multi_part
        if mp is None:
            raise NotMultiPartError(change.ref)

        if self.expected_total == _UNSET_TOTAL:
            expected_total, expected_topic = mp.total, mp.topic
        else:
            expected_total, expected_topic = self.expected_total, self.expected_topic

        if mp.total != expected_total:
            raise TotalMismatchError(change.ref, expected_total, mp.total)
        if mp.topic != expected_topic:
            raise TopicMismatchError(change.ref, expected_topic, mp.topic)
        if mp.index in self._parts:
            raise DuplicateIndexError(change.ref, mp.index)

        self.expected_total = expected_total
        self.expected_topic = expected_topic
        self._parts[mp.index] = change

    def complete(self) -> bool:
        return self.expected_total > 0 and len(self._parts) == self.expected_total

    def cls(self) -> list[Change]:
        """Return the parts ordered by their 1-based index."""
        return [self._parts[index] for index in sorted(self._parts)]

    def __len__(self) -> int:
        return len(self._parts)

    def __repr__(self) -> str:
        return f"MultiPartCLSet(topic={self.expected_topic!r}, parts={len(self._parts)}/{self.expected_total})"
