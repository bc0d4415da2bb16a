"""Find the CL lists that became testable since the previous poll."""

from __future__ import annotations

import logging
from typing import Callable, Mapping, Sequence

from presubmit_core.errors import MultiPartError
from presubmit_core.gerrit.change import Change
from presubmit_core.multipart import MultiPartCLSet

logger = logging.getLogger(__name__)

CLList = list[Change]


def new_open_cls(
    previous_refs: Mapping[str, Change],
    current_changes: Sequence[Change],
    on_error: Callable[[Change, MultiPartError], None] | None = None,
) -> list[CLList]:
    """Return the CL lists to test, comparing this poll to the previous one.

    Standalone changes whose ref was not seen last time come out as
    singletons, in query order. Multi-part changes are grouped by topic, but
    only topics with at least one new ref are considered, so a set that was
    already complete last round is not dispatched again. Complete sets follow
    the singletons, in the order their topics were first seen; incomplete
    sets are left for a later poll.

    ``on_error`` is called for every part that a set rejects (wrong total,
    topic or a duplicate index); the part is then ignored.
    """
    singletons: list[CLList] = []
    topics_with_new_cls: set[str] = set()
    multi_part_changes: list[Change] = []

    for change in current_changes:
        if not change.ref:
            continue
        is_new = change.ref not in previous_refs
        if change.multi_part is None:
            if is_new:
                singletons.append([change])
            continue
        if not change.multi_part.is_well_formed():
            logger.warning(
                "Ignoring %s: malformed MultiPart %d/%d",
                change.ref,
                change.multi_part.index,
                change.multi_part.total,
            )
            continue
        multi_part_changes.append(change)
        if is_new:
            topics_with_new_cls.add(change.multi_part.topic)

    # dict preserves first-seen topic order.
    sets: dict[str, MultiPartCLSet] = {}
    for change in multi_part_changes:
        topic = change.multi_part.topic
        if topic not in topics_with_new_cls:
            continue
        cl_set = sets.setdefault(topic, MultiPartCLSet())
        try:
            cl_set.add_cl(change)
        except MultiPartError as e:
            logger.error("Failed to add %s to multi-part set %r: %s", change.ref, topic, e)
            if on_error is not None:
                on_error(change, e)

    groups = [cl_set.cls() for cl_set in sets.values() if cl_set.complete()]
    return singletons + groups
